"""Google Gemini provider for VoxEdit.

Uses the Generative Language REST API (``:generateContent``) directly over
httpx.  Audio clips are sent inline as ``audio/wav``.
"""

from __future__ import annotations

from typing import Any

import httpx

from .base import LLMProvider

DEFAULT_MODEL = "gemini-2.0-flash-exp"


class GeminiProvider(LLMProvider):
    """Speaks the Gemini ``v1beta`` generateContent API."""

    name = "gemini"

    def __init__(
        self,
        base_url: str = "https://generativelanguage.googleapis.com",
        api_key: str = "",
        model: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_model = model or DEFAULT_MODEL
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"x-goog-api-key": self.api_key},
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
        model_name = model or self.default_model
        payload = build_payload(messages, temperature, max_tokens, audio, json_mode, **kwargs)
        data = await self._post_json(f"/v1beta/models/{model_name}:generateContent", payload)
        return {"content": _candidate_text(data), "model": model_name, "done": True}

    async def health(self) -> bool:
        return await self._probe("/v1beta/models")

    def supports_audio(self) -> bool:
        return True


def build_payload(
    messages: list[dict[str, Any]],
    temperature: float = 0.7,
    max_tokens: int | None = None,
    audio: str | None = None,
    json_mode: bool = False,
    **kwargs: Any,
) -> dict[str, Any]:
    """Translate OpenAI-style chat messages into a generateContent body.

    System messages become ``systemInstruction``; ``assistant`` turns map to
    the ``model`` role.  *audio* is attached to the last user turn.
    """
    system = [m["content"] for m in messages if m.get("role") == "system"]
    contents: list[dict[str, Any]] = []
    for m in messages:
        role = m.get("role")
        if role == "system":
            continue
        contents.append({
            "role": "model" if role == "assistant" else "user",
            "parts": [{"text": m.get("content", "")}],
        })

    if audio:
        part = {"inlineData": {"mimeType": "audio/wav", "data": audio}}
        for entry in reversed(contents):
            if entry["role"] == "user":
                entry["parts"].append(part)
                break
        else:
            contents.append({"role": "user", "parts": [part]})

    generation: dict[str, Any] = {"temperature": temperature}
    if max_tokens is not None:
        generation["maxOutputTokens"] = max_tokens
    if json_mode:
        generation["responseMimeType"] = "application/json"
    generation.update(kwargs)

    payload: dict[str, Any] = {"contents": contents, "generationConfig": generation}
    if system:
        payload["systemInstruction"] = {"parts": [{"text": "\n\n".join(system)}]}
    return payload


def _candidate_text(data: dict[str, Any]) -> str:
    candidates = data.get("candidates") or [{}]
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)
