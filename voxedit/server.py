"""VoxEdit relay server — FastAPI app serving the hub and a small HTTP API.

Exposes:
  WS   /ws  (and /)              — envelope protocol (see :mod:`voxedit.protocol`)
  GET  /health                   — liveness + hub stats
  GET  /api/figma/file           — file metadata
  GET  /api/figma/search?query=  — elements ranked by the node resolver
  GET  /api/file-data            — last tree snapshot pushed by the render host
  POST /api/file-data/refresh    — ask the render host for a new snapshot
  POST /api/command/text         — translate text without relaying it
  POST /api/suggestions          — spoken-command suggestions for a state

Start with::

    python -m voxedit
    # or
    voxedit-server
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from voxedit import __version__
from voxedit.config import Settings, load_settings
from voxedit.errors import ConfigError, GatewayError
from voxedit.figma import FigmaClient, FigmaClientError
from voxedit.gateway import LLMTranslationGateway, TranslationGateway
from voxedit.hub import ConnectionHub, context_string
from voxedit.providers import get_provider

logger = logging.getLogger(__name__)

SERVICE_NAME = "VoxEdit"


# ──────────────────────────────────────────────────────────────────
# Request models
# ──────────────────────────────────────────────────────────────────

class TextCommandRequest(BaseModel):
    text: str = ""
    context: Any = None


class SuggestionsRequest(BaseModel):
    state: Any = None


# ──────────────────────────────────────────────────────────────────
# Wiring
# ──────────────────────────────────────────────────────────────────

def build_gateway(settings: Settings) -> TranslationGateway:
    kwargs: dict[str, Any] = {}
    if settings.llm_model:
        kwargs["model"] = settings.llm_model
    provider = get_provider(
        settings.llm_provider,
        base_url=settings.llm_url or None,
        api_key=settings.llm_api_key or None,
        **kwargs,
    )
    return LLMTranslationGateway(provider)


def build_figma(settings: Settings) -> FigmaClient | None:
    if not (settings.figma_access_token and settings.figma_file_key):
        return None
    return FigmaClient(
        settings.figma_access_token,
        settings.figma_file_key,
        base_url=settings.figma_api_url,
    )


async def _check_figma(figma: FigmaClient) -> None:
    try:
        metadata = await figma.get_file_metadata()
        logger.info(
            "Connected to Figma: file %r, %d nodes",
            metadata["name"], metadata["nodeCount"],
        )
    except FigmaClientError as exc:
        logger.error("Failed to connect to Figma: %s", exc)
        logger.error("Please check your FIGMA_ACCESS_TOKEN and FIGMA_FILE_KEY")


def create_app(
    settings: Settings | None = None,
    gateway: TranslationGateway | None = None,
    figma: FigmaClient | None = None,
) -> FastAPI:
    """Build the app with its collaborators injected.

    Missing collaborators are constructed from *settings*.
    """
    settings = settings or Settings()
    gateway = gateway or build_gateway(settings)
    if figma is None:
        figma = build_figma(settings)
    hub = ConnectionHub(gateway, figma=figma, gateway_timeout=settings.gateway_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if figma is not None:
            await _check_figma(figma)
        yield
        logger.info("Shutting down gracefully...")
        await hub.close()
        await gateway.aclose()
        if figma is not None:
            await figma.aclose()

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.hub = hub
    app.state.gateway = gateway
    app.state.figma = figma

    app.add_api_websocket_route("/ws", hub.serve)
    app.add_api_websocket_route("/", hub.serve)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **hub.stats(),
        }

    @app.get("/api/figma/file")
    async def figma_file(request: Request):
        client = _require_figma(request)
        try:
            return await client.get_file_metadata()
        except FigmaClientError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/api/figma/search")
    async def figma_search(request: Request, query: str | None = None):
        if not query:
            raise HTTPException(status_code=400, detail="Query parameter required")
        client = _require_figma(request)
        try:
            return {"nodes": await client.find_nodes_by_name(query)}
        except FigmaClientError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    @app.get("/api/file-data")
    async def file_data():
        if hub.last_file_data is None:
            raise HTTPException(status_code=404, detail="No file data received yet")
        return hub.last_file_data

    @app.post("/api/file-data/refresh")
    async def refresh_file_data():
        return {"requested": await hub.request_file_data()}

    @app.post("/api/command/text")
    async def command_text(req: TextCommandRequest):
        if not req.text:
            raise HTTPException(status_code=400, detail="Text parameter required")
        try:
            result = await gateway.process_command(
                text=req.text, context=context_string(req.context)
            )
        except GatewayError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return result.to_wire()

    @app.post("/api/suggestions")
    async def suggestions(req: SuggestionsRequest):
        return {"suggestions": await gateway.get_suggestions(req.state)}

    return app


def _require_figma(request: Request) -> FigmaClient:
    client = request.app.state.figma
    if client is None:
        raise HTTPException(status_code=503, detail="Figma access is not configured")
    return client


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn

    try:
        settings = load_settings()
        logging.basicConfig(level=settings.log_level)
        logger.info("Validating configuration...")
        settings.validate()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Failed to start server: %s", exc)
        sys.exit(1)

    app = create_app(settings)
    logger.info("Starting %s on %s:%d", SERVICE_NAME, settings.host, settings.port)
    logger.info("HTTP API: http://localhost:%d", settings.port)
    logger.info("WebSocket: ws://localhost:%d/ws", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
