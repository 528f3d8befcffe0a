"""Connectivity probe: connect to the hub, send a ping, print what comes back.

Usage::

    voxedit-probe [--server ws://localhost:8080/ws] [--seconds 5] [--text "..."]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import websockets

from voxedit import protocol

logger = logging.getLogger(__name__)


async def probe(server_url: str, seconds: float = 5.0, text: str | None = None) -> list[dict]:
    """Collect every envelope received within *seconds* after a ping.

    When *text* is given a ``voice-command`` is sent as well.
    """
    received: list[dict] = []
    async with websockets.connect(server_url, open_timeout=10) as ws:
        logger.info("Connected to %s", server_url)
        await ws.send(json.dumps({"type": protocol.PING}))
        if text:
            await ws.send(json.dumps({"type": protocol.VOICE_COMMAND, "data": {"text": text}}))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds
        while (remaining := deadline - loop.time()) > 0:
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=remaining)
            except asyncio.TimeoutError:
                break
            except websockets.ConnectionClosed:
                logger.info("Connection closed by server")
                break
            try:
                received.append(json.loads(raw))
            except json.JSONDecodeError:
                logger.warning("Non-JSON frame: %r", raw)
    return received


def main() -> None:
    parser = argparse.ArgumentParser(description="Check that a VoxEdit hub answers")
    parser.add_argument("--server", "-s", default="ws://localhost:8080/ws")
    parser.add_argument("--seconds", type=float, default=5.0, help="How long to listen")
    parser.add_argument("--text", default=None, help="Also send this text command")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        messages = asyncio.run(probe(args.server, args.seconds, args.text))
    except (OSError, websockets.InvalidURI, websockets.InvalidHandshake) as exc:
        logger.error("WebSocket error: %s", exc)
        sys.exit(1)

    for msg in messages:
        print(json.dumps(msg))
    if not any(m.get("type") == protocol.PONG for m in messages):
        logger.error("No pong received")
        sys.exit(1)


if __name__ == "__main__":
    main()
