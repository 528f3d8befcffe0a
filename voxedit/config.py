"""Runtime configuration for the VoxEdit server.

Settings come from environment variables; a ``.env`` file in the working
directory is loaded first without overriding variables already set.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from voxedit.errors import ConfigError
from voxedit.figma import DEFAULT_API_URL

logger = logging.getLogger(__name__)

# Providers that cannot work without an API key
_KEYED_PROVIDERS = frozenset({"gemini"})


@dataclass
class Settings:
    """Server configuration — see :func:`load_settings`."""

    host: str = "0.0.0.0"
    port: int = 8080

    # Translation gateway
    llm_provider: str = "gemini"
    llm_url: str = ""
    llm_api_key: str = ""
    llm_model: str = ""
    gateway_timeout: float = 60.0

    # Tree access
    figma_access_token: str = ""
    figma_file_key: str = ""
    figma_api_url: str = DEFAULT_API_URL

    log_level: str = "INFO"

    def missing(self) -> list[str]:
        """Names of required settings that are empty."""
        required = {
            "FIGMA_ACCESS_TOKEN": self.figma_access_token,
            "FIGMA_FILE_KEY": self.figma_file_key,
        }
        if self.llm_provider in _KEYED_PROVIDERS:
            required["LLM_API_KEY"] = self.llm_api_key
        return [name for name, value in required.items() if not value]

    def validate(self) -> None:
        missing = self.missing()
        if missing:
            raise ConfigError(
                f"Missing required configuration: {', '.join(missing)}. "
                "Please check your .env file."
            )
        if self.gateway_timeout < 0:
            raise ConfigError("GATEWAY_TIMEOUT must not be negative")


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def load_settings(env_file: str | Path | None = ".env") -> Settings:
    """Build :class:`Settings` from the environment (and *env_file*)."""
    if env_file and Path(env_file).is_file():
        load_dotenv(env_file, override=False)
        logger.debug("Loaded environment from %s", env_file)

    provider = os.environ.get("LLM_PROVIDER", "gemini").lower().replace("-", "_")
    api_key = os.environ.get("LLM_API_KEY", "")
    if not api_key and provider == "gemini":
        api_key = os.environ.get("GEMINI_API_KEY", "")

    return Settings(
        host=os.environ.get("VOXEDIT_HOST", "0.0.0.0"),
        port=_int("VOXEDIT_PORT", 8080),
        llm_provider=provider,
        llm_url=os.environ.get("LLM_URL", ""),
        llm_api_key=api_key,
        llm_model=os.environ.get("LLM_MODEL", ""),
        gateway_timeout=_float("GATEWAY_TIMEOUT", 60.0),
        figma_access_token=os.environ.get("FIGMA_ACCESS_TOKEN", ""),
        figma_file_key=os.environ.get("FIGMA_FILE_KEY", ""),
        figma_api_url=os.environ.get("FIGMA_API_URL", DEFAULT_API_URL),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
