"""VoxEdit — voice and text editing relay for live design trees.

Quickstart::

    from voxedit.config import load_settings
    from voxedit.server import create_app

    settings = load_settings()          # reads .env + environment
    app = create_app(settings)          # FastAPI app with /ws and /api/*

or simply ``python -m voxedit``.
"""

__version__ = "1.0.0"
