"""Figma REST API client: read-only access to the design tree.

Uses httpx for async HTTP.  No live Figma access is required to import;
errors surface as :class:`FigmaClientError` at call time.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from voxedit.models import Element
from voxedit.resolver import count_elements, resolve

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.figma.com/v1"


class FigmaClientError(Exception):
    """Base error for Figma client failures."""


class FigmaConnectionError(FigmaClientError):
    """Raised when the Figma API is network-unreachable."""


class FigmaAuthError(FigmaClientError):
    """Raised when Figma returns 401 or 403."""


class FigmaClient:
    """Thin async wrapper around the Figma files API for one file.

    A single :class:`httpx.AsyncClient` is reused across calls.  Call
    :meth:`aclose` (or use as an async context manager) when done.
    """

    def __init__(
        self,
        access_token: str,
        file_key: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.file_key = file_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-Figma-Token": access_token},
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "FigmaClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def get_file(self) -> dict[str, Any]:
        """Return the whole file (GET /files/{key})."""
        return await self._get(f"/files/{self.file_key}")

    async def get_node(self, node_id: str) -> dict[str, Any] | None:
        """Return one node entry (GET /files/{key}/nodes?ids=...)."""
        data = await self._get(f"/files/{self.file_key}/nodes", params={"ids": node_id})
        return (data.get("nodes") or {}).get(node_id)

    async def snapshot(self) -> Element:
        """The file's document tree as an :class:`Element`."""
        data = await self.get_file()
        return Element.model_validate(data.get("document") or {"id": "0:0"})

    async def find_nodes_by_name(self, query: str) -> list[dict[str, str]]:
        """Elements whose names match *query*, ranked like command targets."""
        document = await self.snapshot()
        return [e.summary() for e in resolve(query, document)]

    async def get_file_metadata(self) -> dict[str, Any]:
        data = await self.get_file()
        document = Element.model_validate(data.get("document") or {"id": "0:0"})
        return {
            "name": document.name,
            "schemaVersion": data.get("schemaVersion"),
            "nodeCount": count_elements(document),
        }

    async def get_context(self) -> dict[str, Any]:
        """Minimal command context: document name and top-level child count."""
        document = (await self.get_file()).get("document") or {}
        return {
            "name": document.get("name", ""),
            "childCount": len(document.get("children") or []),
        }

    async def get_images(self, node_ids: list[str], fmt: str = "png") -> dict[str, str]:
        """Render URLs for *node_ids* (GET /images/{key})."""
        data = await self._get(
            f"/images/{self.file_key}",
            params={"ids": ",".join(node_ids), "format": fmt},
        )
        return data.get("images") or {}

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            raise FigmaConnectionError(f"Cannot reach Figma at {self.base_url}{path}: {exc}") from exc
        if response.status_code in (401, 403):
            raise FigmaAuthError(f"Figma returned {response.status_code} — check your access token")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FigmaClientError(f"Figma request {path} failed: {exc}") from exc
        return response.json()
