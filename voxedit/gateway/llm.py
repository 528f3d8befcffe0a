"""Translation gateway backed by an :class:`~voxedit.providers.LLMProvider`."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from voxedit.errors import GatewayError
from voxedit.gateway.base import TranslationGateway
from voxedit.gateway.prompts import (
    build_audio_prompt,
    build_suggestions_prompt,
    build_text_prompt,
)
from voxedit.models import GatewayResult, now_ms
from voxedit.providers.base import LLMProvider

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def strip_fences(text: str) -> str:
    """Remove markdown code fences the model may wrap its JSON in."""
    return _FENCE_RE.sub("", text).strip()


def parse_result(text: str, raw_text: str = "") -> GatewayResult:
    """Parse model output into a :class:`GatewayResult`.

    The outermost ``{...}`` span is taken as the payload.  A missing
    ``rawText`` is filled from *raw_text* and a missing or unusable
    ``timestamp`` with the current time.
    """
    match = _OBJECT_RE.search(strip_fences(text))
    if not match:
        raise GatewayError("Could not parse model response")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise GatewayError(f"Could not parse model response: {exc}") from exc

    command = payload.get("command") if isinstance(payload, dict) else None
    if not isinstance(command, dict):
        raise GatewayError("Model response has no command object")

    command = dict(command)
    if raw_text and not command.get("rawText"):
        command["rawText"] = raw_text

    try:
        result = GatewayResult.model_validate({**payload, "command": command})
    except ValidationError as exc:
        raise GatewayError(f"Invalid command in model response: {exc}") from exc
    if result.command.timestamp is None:
        result.command = result.command.model_copy(update={"timestamp": now_ms()})
    return result


class LLMTranslationGateway(TranslationGateway):
    """Prompts an LLM to emit a JSON command and validates the answer.

    Parameters
    ----------
    provider:
        Any LLM provider; audio input needs ``provider.supports_audio()``.
    model:
        Model override passed to every provider call.
    temperature:
        Sampling temperature for every call.
    """

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        temperature: float = 0.2,
    ) -> None:
        self.provider = provider
        self.model = model
        self.temperature = temperature

    async def process_command(
        self,
        text: str | None = None,
        audio: str | None = None,
        context: str = "",
    ) -> GatewayResult:
        if audio:
            return await self._process_audio(audio, context)
        if text:
            return await self._process_text(text, context)
        raise GatewayError("No audio or text data provided")

    async def _process_text(self, text: str, context: str) -> GatewayResult:
        try:
            content = await self._complete(build_text_prompt(text, context))
            return parse_result(content, raw_text=text)
        except Exception as exc:
            logger.error("Error processing text command %r: %s", text, exc)
            raise GatewayError(f"Failed to process text command: {exc}") from exc

    async def _process_audio(self, audio: str, context: str) -> GatewayResult:
        try:
            content = await self._complete(build_audio_prompt(context), audio=audio)
            return parse_result(content)
        except Exception as exc:
            logger.error("Error processing voice command: %s", exc)
            raise GatewayError(f"Failed to process voice command: {exc}") from exc

    async def get_suggestions(self, state: Any) -> list[str]:
        try:
            # JSON modes only allow a top-level object
            content = await self._complete(build_suggestions_prompt(state), json_mode=False)
            suggestions = json.loads(strip_fences(content))
        except Exception:
            logger.exception("Error getting suggestions")
            return []
        if not isinstance(suggestions, list):
            return []
        return [str(s) for s in suggestions]

    async def health(self) -> bool:
        return await self.provider.health()

    async def aclose(self) -> None:
        await self.provider.aclose()

    async def _complete(
        self, prompt: str, audio: str | None = None, json_mode: bool = True
    ) -> str:
        return await self.provider.complete(
            prompt,
            model=self.model,
            temperature=self.temperature,
            audio=audio,
            json_mode=json_mode,
        )
