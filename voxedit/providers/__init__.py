"""LLM providers behind the translation gateway.

Usage::

    from voxedit.providers import get_provider
    provider = get_provider()                      # LLM_PROVIDER, default gemini
    provider = get_provider("ollama", model="llama3.1:8b")
    provider = get_provider("openai-compatible", base_url="http://vllm:8000")
"""

from __future__ import annotations

import logging
import os
from typing import Any

from .base import LLMProvider, ProviderError
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai_compat import OpenAICompatibleProvider

__all__ = [
    "GeminiProvider",
    "LLMProvider",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "ProviderError",
    "get_provider",
]

logger = logging.getLogger(__name__)

_PROVIDERS: dict[str, type[LLMProvider]] = {
    cls.name: cls for cls in (GeminiProvider, OllamaProvider, OpenAICompatibleProvider)
}


def get_provider(
    provider_name: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    **kwargs: Any,
) -> LLMProvider:
    """Build a provider by name.

    Arguments left out fall back to ``LLM_PROVIDER``, ``LLM_URL`` and
    ``LLM_API_KEY``; Gemini also accepts ``GEMINI_API_KEY``.  Extra keyword
    arguments (``model=...``) go to the provider constructor.
    """
    name = (provider_name or os.environ.get("LLM_PROVIDER", "gemini")).strip().lower()
    name = name.replace("-", "_")
    cls = _PROVIDERS.get(name)
    if cls is None:
        raise ValueError(f"Unknown provider '{name}'. Choose from: {sorted(_PROVIDERS)}")

    base_url = base_url or os.environ.get("LLM_URL")
    api_key = api_key or os.environ.get("LLM_API_KEY")
    if not api_key and name == "gemini":
        api_key = os.environ.get("GEMINI_API_KEY")

    if base_url:
        kwargs["base_url"] = base_url
    if api_key:
        kwargs["api_key"] = api_key
    logger.debug("Using %s provider at %s", name, base_url or "default URL")
    return cls(**kwargs)
