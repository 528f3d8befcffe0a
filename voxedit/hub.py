"""Connection hub: fans envelopes between control clients and the render client.

Every connection is treated the same at the transport layer; by convention
exactly one of them is the render host, which receives ``execute-command``
broadcasts and answers with ``command-executed`` reports.

Delivery semantics:

  * broadcast — serialized once, sent to every ready connection, at most
    once.  Connections that are not ready or fail are skipped; nothing is
    retried or buffered.
  * unicast   — sent to one connection; transport failures are logged and
    swallowed.

Messages from one connection are handled strictly in arrival order; the
hub awaits each handler before reading the next frame.  Handlers for
different connections interleave only at awaits.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable

from fastapi import WebSocket
from fastapi.websockets import WebSocketState
from pydantic import ValidationError

from voxedit import protocol
from voxedit.errors import GatewayError, GatewayTimeoutError
from voxedit.figma import FigmaClient
from voxedit.gateway.base import TranslationGateway
from voxedit.models import GatewayResult
from voxedit.protocol import Envelope, ProtocolError, VoiceCommandData

logger = logging.getLogger(__name__)

# Oldest unanswered execute-command request ids are forgotten beyond this
MAX_PENDING_REPORTS = 256


class Connection:
    """One live WebSocket and its identity."""

    def __init__(self, websocket: WebSocket, conn_id: str | None = None) -> None:
        self.websocket = websocket
        self.id = conn_id or f"conn-{uuid.uuid4().hex[:8]}"
        self.connected_at = time.time()
        self.closed = False

    @property
    def ready(self) -> bool:
        return (
            not self.closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close(self, code: int = 1001) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.websocket.close(code=code)
        except Exception as exc:
            logger.debug("Error closing %s: %s", self.id, exc)

    def __repr__(self) -> str:
        return f"<Connection {self.id}>"


EnvelopeHandler = Callable[[Connection, Envelope], Awaitable[None]]


class ConnectionHub:
    """Owns the live connection set and routes envelopes.

    Parameters
    ----------
    gateway:
        Translates ``voice-command`` input into commands.
    figma:
        Optional tree-access client used to build context for text commands
        that arrive without one.
    gateway_timeout:
        Seconds to wait for the gateway; ``None`` or ``0`` waits forever.
    """

    def __init__(
        self,
        gateway: TranslationGateway,
        figma: FigmaClient | None = None,
        gateway_timeout: float | None = 60.0,
    ) -> None:
        self.gateway = gateway
        self.figma = figma
        self.gateway_timeout = gateway_timeout or None
        self.last_file_data: Any = None
        self._connections: set[Connection] = set()
        self._pending: dict[str, Connection] = {}
        self._closing = False
        self._handlers: dict[str, EnvelopeHandler] = {
            protocol.VOICE_COMMAND: self._handle_voice_command,
            protocol.FILE_DATA: self._handle_file_data,
            protocol.PING: self._handle_ping,
            protocol.COMMAND_EXECUTED: self._handle_command_executed,
        }

    @property
    def connections(self) -> frozenset[Connection]:
        return frozenset(self._connections)

    def stats(self) -> dict[str, Any]:
        return {
            "connections": len(self._connections),
            "pending_reports": len(self._pending),
            "has_file_data": self.last_file_data is not None,
        }

    # ── Lifecycle ──────────────────────────────────────────────────

    async def serve(self, websocket: WebSocket) -> None:
        """Run one WebSocket from handshake to disconnect.

        Mount it in FastAPI via::

            app.add_api_websocket_route("/ws", hub.serve)
        """
        await websocket.accept()
        conn = Connection(websocket)
        if not await self.accept(conn):
            return
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.info("Client disconnected: %s", conn.id)
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await self.dispatch(conn, raw)
        except Exception:
            logger.exception("Error in WebSocket connection %s", conn.id)
        finally:
            conn.closed = True
            self.remove(conn)

    async def accept(self, conn: Connection) -> bool:
        """Register *conn* and greet it.  Refused only after :meth:`close`."""
        if self._closing:
            await conn.close()
            return False
        self._connections.add(conn)
        logger.info("New client connected: %s (%d live)", conn.id, len(self._connections))
        await self.send(conn, protocol.connected())
        return True

    def remove(self, conn: Connection) -> None:
        """Forget *conn*.  Safe to call more than once."""
        if conn in self._connections:
            self._connections.discard(conn)
            logger.info("Client removed: %s (%d live)", conn.id, len(self._connections))
        stale = [rid for rid, origin in self._pending.items() if origin is conn]
        for rid in stale:
            del self._pending[rid]

    async def close(self) -> None:
        """Close every connection and refuse new ones."""
        self._closing = True
        conns = list(self._connections)
        for conn in conns:
            await conn.close()
        self._connections.clear()
        self._pending.clear()
        logger.info("Hub closed (%d connections terminated)", len(conns))

    # ── Delivery ───────────────────────────────────────────────────

    async def send(self, conn: Connection, envelope: dict[str, Any]) -> bool:
        """Unicast *envelope* to *conn*.  Returns whether it was sent."""
        if not conn.ready:
            logger.debug("Not sending %s to %s: connection not ready", envelope.get("type"), conn.id)
            return False
        try:
            await conn.send_text(protocol.encode(envelope))
            return True
        except Exception as exc:
            logger.warning("Failed to send %s to %s: %s", envelope.get("type"), conn.id, exc)
            return False

    async def broadcast(self, envelope: dict[str, Any]) -> int:
        """Send *envelope* to every ready connection.  Returns the delivery count."""
        return len(await self._fan_out(envelope))

    async def _fan_out(self, envelope: dict[str, Any]) -> list[Connection]:
        message = protocol.encode(envelope)
        reached: list[Connection] = []
        for conn in list(self._connections):
            if not conn.ready:
                continue
            try:
                await conn.send_text(message)
                reached.append(conn)
            except Exception as exc:
                logger.debug("Skipping %s during broadcast: %s", conn.id, exc)
        return reached

    async def request_file_data(self) -> int:
        """Ask the render host to push a fresh ``file-data`` snapshot."""
        return await self.broadcast(protocol.get_file_data())

    # ── Dispatch ───────────────────────────────────────────────────

    async def dispatch(self, conn: Connection, raw: str | bytes) -> None:
        """Handle one inbound frame from *conn*."""
        try:
            envelope = protocol.decode(raw)
        except ProtocolError as exc:
            logger.warning("Malformed message from %s: %s", conn.id, exc)
            await self.send(conn, protocol.error(str(exc)))
            return

        handler = self._handlers.get(envelope.type)
        if handler is None:
            logger.info("Unknown message type from %s: %r", conn.id, envelope.type)
            return

        logger.debug("Received %s from %s", envelope.type, conn.id)
        try:
            await handler(conn, envelope)
        except Exception as exc:
            logger.exception("Error handling %s from %s", envelope.type, conn.id)
            await self.send(conn, protocol.error(str(exc)))

    async def _handle_ping(self, conn: Connection, envelope: Envelope) -> None:
        await self.send(conn, protocol.pong())

    async def _handle_file_data(self, conn: Connection, envelope: Envelope) -> None:
        self.last_file_data = envelope.data
        count = envelope.data.get("nodeCount") if isinstance(envelope.data, dict) else None
        logger.info("Received file data from %s (nodeCount=%s)", conn.id, count)

    async def _handle_voice_command(self, conn: Connection, envelope: Envelope) -> None:
        try:
            data = protocol.decode_voice_command(envelope.data or {})
        except (ProtocolError, ValidationError) as exc:
            await self.send(conn, protocol.error(str(exc)))
            return

        if not data.audio and not data.text:
            await self.send(conn, protocol.error(protocol.NO_INPUT_MESSAGE))
            return

        try:
            result = await self._translate(data)
        except GatewayError as exc:
            logger.error("Error processing voice command from %s: %s", conn.id, exc)
            await self.send(conn, protocol.error(str(exc)))
            return

        logger.info(
            "Translated %r → %s %r (confidence %.2f)",
            result.command.raw_text, result.command.type.value,
            result.command.target, result.confidence,
        )
        await self._relay(conn, result)

    async def _relay(self, origin: Connection, result: GatewayResult) -> None:
        request_id = uuid.uuid4().hex
        track = origin in self._connections
        if track:
            self._pending[request_id] = origin
            while len(self._pending) > MAX_PENDING_REPORTS:
                self._pending.pop(next(iter(self._pending)))

        reached = await self._fan_out(protocol.execute_command(result.command, request_id))
        if all(conn is origin for conn in reached):
            logger.warning("No connected client to execute %s command", result.command.type.value)
            self._pending.pop(request_id, None)

        # the origin may have gone away while the gateway was working
        await self.send(origin, protocol.command_processed(result))

    async def _translate(self, data: VoiceCommandData) -> GatewayResult:
        if data.audio:
            logger.info("Processing audio command...")
            context = context_string(data.context)
        else:
            logger.info("Processing text command: %s", data.text)
            context = context_string(data.context) or await self._fetch_context()

        call = self.gateway.process_command(text=data.text, audio=data.audio, context=context)
        if self.gateway_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.gateway_timeout)
        except asyncio.TimeoutError as exc:
            raise GatewayTimeoutError(
                f"Translation timed out after {self.gateway_timeout:g}s"
            ) from exc

    async def _fetch_context(self) -> str:
        if self.figma is None:
            return ""
        try:
            return json.dumps(await self.figma.get_context())
        except Exception as exc:
            logger.warning("Could not fetch tree context: %s", exc)
            return ""

    async def _handle_command_executed(self, conn: Connection, envelope: Envelope) -> None:
        fields = envelope.extras
        request_id = fields.get("requestId")
        origin = self._pending.pop(request_id, None) if isinstance(request_id, str) else None
        if origin is None:
            logger.info("Dropping command report with unknown request id %r", request_id)
            return

        logger.info(
            "Command %s %s on %s",
            request_id, "succeeded" if fields.get("success") else "failed", conn.id,
        )
        report = {"type": protocol.COMMAND_EXECUTED, **fields}
        if envelope.data is not None:
            report["data"] = envelope.data
        await self.send(origin, report)


def context_string(context: Any) -> str:
    if context is None or context == "":
        return ""
    if isinstance(context, str):
        return context
    return json.dumps(context)
