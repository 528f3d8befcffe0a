"""Abstract translation gateway: human input in, structured command out."""

from __future__ import annotations

import abc
from typing import Any

from voxedit.models import GatewayResult


class TranslationGateway(abc.ABC):
    """Turns free-form text or speech into a :class:`GatewayResult`."""

    @abc.abstractmethod
    async def process_command(
        self,
        text: str | None = None,
        audio: str | None = None,
        context: str = "",
    ) -> GatewayResult:
        """Translate one instruction.

        Exactly one of *text* or *audio* (base64 WAV) is used, audio first.
        *context* is a JSON string describing the current tree.  Raises
        :class:`~voxedit.errors.GatewayError` when the output cannot be
        understood.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def get_suggestions(self, state: Any) -> list[str]:
        """Suggest a few spoken commands for *state*.  Never raises."""
        raise NotImplementedError

    async def health(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass
