"""Run the VoxEdit relay server: ``python -m voxedit``."""

from voxedit.server import main

main()
