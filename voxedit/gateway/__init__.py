"""Translation gateway: natural language → structured :class:`~voxedit.models.Command`."""

from __future__ import annotations

from .base import TranslationGateway
from .llm import LLMTranslationGateway, parse_result

__all__ = ["LLMTranslationGateway", "TranslationGateway", "parse_result"]
