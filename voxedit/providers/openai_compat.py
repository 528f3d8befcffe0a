"""OpenAI-compatible provider for VoxEdit.

Covers vLLM, LocalAI, LM Studio, llama.cpp server and OpenAI itself.
Spoken input travels as an ``input_audio`` content part, which only
audio-capable models understand.
"""

from __future__ import annotations

from typing import Any

import httpx

from .base import LLMProvider


class OpenAICompatibleProvider(LLMProvider):
    """Speaks ``/v1/chat/completions``."""

    name = "openai_compatible"

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        api_key: str = "sk-no-key",
        model: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_model = model
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=120.0,
        )

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
        body: dict[str, Any] = {
            "model": model or self.default_model or "default",
            "messages": with_audio(messages, audio) if audio else messages,
            "stream": False,
            "temperature": temperature,
            **kwargs,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        data = await self._post_json("/v1/chat/completions", body)
        choice = (data.get("choices") or [{}])[0]
        return {
            "content": (choice.get("message") or {}).get("content") or "",
            "model": data.get("model", body["model"]),
            "done": True,
        }

    async def health(self) -> bool:
        return await self._probe("/v1/models")

    def supports_audio(self) -> bool:
        return True


def with_audio(messages: list[dict[str, Any]], audio: str) -> list[dict[str, Any]]:
    """Copy of *messages* whose last user turn also carries *audio* (WAV)."""
    out = [dict(m) for m in messages]
    clip = {"type": "input_audio", "input_audio": {"data": audio, "format": "wav"}}
    for msg in reversed(out):
        if msg.get("role") == "user":
            msg["content"] = [{"type": "text", "text": msg.get("content", "")}, clip]
            return out
    out.append({"role": "user", "content": [clip]})
    return out
