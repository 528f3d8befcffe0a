"""Render-side WebSocket client.

Connects a :class:`~voxedit.executor.CommandExecutor` to the hub:

  Hub → render:  connected, execute-command, get-file-data
  Render → hub:  command-executed, file-data

A fresh ``file-data`` snapshot is pushed after connecting and after every
executed command so text commands always have current context.

Usage::

    voxedit-render --server ws://localhost:8080/ws --snapshot tree.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any, Optional

import websockets
from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection

from voxedit import protocol
from voxedit.executor import CommandExecutor, InMemoryCanvas
from voxedit.models import Command, Element

logger = logging.getLogger(__name__)


class RenderClient:
    """Receives commands from the hub and applies them with *executor*."""

    def __init__(self, server_url: str, executor: CommandExecutor) -> None:
        self.server_url = server_url
        self.executor = executor
        self._ws: Optional[ClientConnection] = None
        self._connected = False
        self._running = False
        self._reconnect_delay = 2
        self._max_reconnect_delay = 60

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Open the socket and wait for the hub's greeting."""
        try:
            self._ws = await websockets.connect(
                self.server_url,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )
            raw = await asyncio.wait_for(self._ws.recv(), timeout=10)
            greeting = json.loads(raw)
            if greeting.get("type") != protocol.CONNECTED:
                logger.error("Unexpected greeting from hub: %s", greeting)
                await self._drop_socket()
                return False

            self._connected = True
            self._reconnect_delay = 2
            logger.info("Connected to %s: %s", self.server_url, greeting.get("message", ""))
            await self.send_file_data()
            return True
        except Exception:
            logger.exception("Failed to connect to %s", self.server_url)
            await self._drop_socket()
            return False

    async def _send(self, message: dict[str, Any]) -> None:
        if self._ws:
            await self._ws.send(protocol.encode(message))

    async def send_file_data(self) -> None:
        await self._send(protocol.file_data(self.executor.file_context()))

    async def handle_message(self, msg: dict[str, Any]) -> None:
        msg_type = msg.get("type", "")
        if msg_type == protocol.EXECUTE_COMMAND:
            await self._handle_execute(msg)
        elif msg_type == protocol.GET_FILE_DATA:
            await self.send_file_data()
        elif msg_type == protocol.ERROR:
            logger.warning("Hub error: %s", msg.get("error"))
        else:
            logger.debug("Unhandled message type: %s", msg_type)

    async def _handle_execute(self, msg: dict[str, Any]) -> None:
        request_id = msg.get("requestId")
        try:
            command = Command.model_validate(msg.get("data") or {})
        except ValidationError as exc:
            logger.warning("Rejecting malformed command: %s", exc)
            await self._send({
                "type": protocol.COMMAND_EXECUTED,
                "requestId": request_id,
                "success": False,
                "error": f"Invalid command: {exc}",
                "command": msg.get("data"),
            })
            return

        report = await self.executor.execute(command)
        if report.success:
            logger.info("Executed %s on %s", command.type.value, report.affected)
        else:
            logger.info("Command %s failed: %s", command.type.value, report.error)
        await self._send(protocol.command_executed(report, request_id))
        await self.send_file_data()

    async def listen(self) -> None:
        """Handle hub messages until the socket closes."""
        if not self._ws:
            return
        try:
            async for raw in self._ws:
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON frame from hub")
                    continue
                try:
                    await self.handle_message(msg)
                except Exception:
                    logger.exception("Handler error for %s", msg.get("type"))
        except websockets.ConnectionClosed:
            logger.info("Hub connection closed")
        finally:
            self._connected = False

    async def run(self) -> None:
        """Connect, listen, and reconnect with exponential backoff."""
        self._running = True
        while self._running:
            if await self.connect():
                await self.listen()
            if not self._running:
                break
            logger.info("Reconnecting in %ds...", self._reconnect_delay)
            await asyncio.sleep(self._reconnect_delay)
            self._reconnect_delay = min(self._reconnect_delay * 2, self._max_reconnect_delay)

    async def disconnect(self) -> None:
        self._running = False
        await self._drop_socket()

    async def _drop_socket(self) -> None:
        ws, self._ws = self._ws, None
        self._connected = False
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("Error closing hub socket", exc_info=True)


def load_snapshot(path: Path) -> list[Element]:
    """Read a tree snapshot: one element object or a list of them."""
    data = json.loads(path.read_text())
    if isinstance(data, dict) and "document" in data:
        data = data["document"].get("children") or []
    if isinstance(data, dict):
        data = [data]
    return [Element.model_validate(item) for item in data]


def main() -> None:
    parser = argparse.ArgumentParser(description="VoxEdit headless render client")
    parser.add_argument(
        "--server", "-s",
        default="ws://localhost:8080/ws",
        help="Hub WebSocket URL",
    )
    parser.add_argument(
        "--snapshot",
        type=Path,
        default=None,
        help="JSON tree snapshot to start from (element, list, or Figma file)",
    )
    parser.add_argument("--name", default="Untitled", help="File name reported to the hub")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    elements = load_snapshot(args.snapshot) if args.snapshot else []
    client = RenderClient(args.server, InMemoryCanvas(elements, name=args.name))

    async def _run() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(client.disconnect()))
        await client.run()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
