"""LLM provider interface for VoxEdit.

A provider turns a chat transcript, optionally carrying one spoken clip,
into model text.  The translation gateway only needs
:meth:`LLMProvider.complete`, a single-turn wrapper around
:meth:`LLMProvider.chat`.
"""

from __future__ import annotations

import abc
from typing import Any

import httpx


class ProviderError(Exception):
    """Raised when a backend rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMProvider(abc.ABC):
    """Abstract interface for any LLM backend.

    Concrete providers create ``self._client`` (an :class:`httpx.AsyncClient`
    bound to the backend's base URL) in ``__init__``.
    """

    name = "llm"
    _client: httpx.AsyncClient

    @abc.abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        audio: str | None = None,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send a chat completion request.

        *audio* is a base64-encoded WAV clip attached to the last user turn;
        only providers whose :meth:`supports_audio` is true accept it.
        *json_mode* asks the backend to constrain its answer to one JSON
        object where it supports that.

        Returns a dict with ``content``, ``model`` and ``done``.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def health(self) -> bool:
        """Check if the backend is reachable. Returns True when healthy."""
        raise NotImplementedError

    def supports_audio(self) -> bool:
        """Whether this provider can take spoken input directly."""
        return False

    async def complete(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.2,
        audio: str | None = None,
        json_mode: bool = False,
    ) -> str:
        """Single user turn in, full reply text out."""
        if audio is not None and not self.supports_audio():
            raise ProviderError(f"{self.name} provider does not accept audio input")
        resp = await self.chat(
            [{"role": "user", "content": prompt}],
            model=model,
            temperature=temperature,
            audio=audio,
            json_mode=json_mode,
        )
        return resp.get("content", "") if isinstance(resp, dict) else ""

    async def aclose(self) -> None:
        """Release pooled connections."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport helpers shared by the httpx-based providers
    # ------------------------------------------------------------------

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._client.post(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ProviderError(
                f"{self.name} returned {status}: {exc.response.text[:200]}", status
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name} request to {path} failed: {exc}") from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(f"{self.name} sent a non-JSON body") from exc

    async def _probe(self, path: str) -> bool:
        try:
            resp = await self._client.get(path, timeout=5.0)
            return resp.status_code == 200
        except Exception:
            return False
