"""Ollama provider: a locally hosted model behind ``/api/chat``."""

from __future__ import annotations

from typing import Any

import httpx

from .base import LLMProvider, ProviderError


class OllamaProvider(LLMProvider):
    """Text-only provider for an Ollama daemon.

    ``json_mode`` maps onto Ollama's ``format: "json"``.
    """

    name = "ollama"
    DEFAULT_MODEL = "qwen2.5:14b"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        api_key: str = "",
        model: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_model = model or self.DEFAULT_MODEL
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        self._client = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=120.0)

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
        if audio is not None:
            raise ProviderError("ollama provider does not accept audio input")

        options: dict[str, Any] = {"temperature": temperature, **kwargs}
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            # Ollama streams unless told otherwise
            "stream": False,
            "options": options,
        }
        if json_mode:
            payload["format"] = "json"

        data = await self._post_json("/api/chat", payload)
        return {
            "content": (data.get("message") or {}).get("content", ""),
            "model": data.get("model", payload["model"]),
            "done": True,
        }

    async def health(self) -> bool:
        return await self._probe("/api/tags")
