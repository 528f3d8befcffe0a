"""Exception hierarchy shared across VoxEdit."""

from __future__ import annotations


class VoxEditError(Exception):
    """Base error for all VoxEdit failures."""


class ConfigError(VoxEditError):
    """Raised when required configuration is missing or invalid."""


class GatewayError(VoxEditError):
    """Raised when natural-language input cannot be turned into a command."""


class GatewayTimeoutError(GatewayError):
    """Raised when the translation gateway does not answer in time."""


class ResolutionError(VoxEditError):
    """Raised when a command target matches no element in the tree.

    ``candidates`` holds a few element names the caller can retry with.
    """

    def __init__(self, target: str, candidates: list[str] | None = None) -> None:
        self.target = target
        self.candidates = candidates or []
        super().__init__(self._message())

    def _message(self) -> str:
        msg = f'No nodes found matching "{self.target}".'
        if self.candidates:
            msg += ' Available nodes include: "' + '", "'.join(self.candidates) + '".'
        msg += " Try using exact node names or create the element first."
        return msg
