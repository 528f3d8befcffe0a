"""Tests for the render-side WebSocket client."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from unittest.mock import AsyncMock, patch

from voxedit.executor import InMemoryCanvas
from voxedit.render_client import RenderClient, load_snapshot


class FakeWS:
    """Scripted client socket: ``recv`` pops *greeting*, iteration yields *frames*."""

    def __init__(self, greeting: dict[str, Any] | None = None, frames: list[str] | None = None):
        self.greeting = greeting or {"type": "connected", "message": "hi"}
        self.frames = list(frames or [])
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def recv(self):
        return json.dumps(self.greeting)

    async def send(self, text: str):
        self.sent.append(json.loads(text))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for frame in self.frames:
            yield frame

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


@pytest.fixture
def canvas(sample_tree) -> InMemoryCanvas:
    return InMemoryCanvas(sample_tree, name="Landing")


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_pushes_file_data(self, canvas):
        ws = FakeWS()
        client = RenderClient("ws://hub/ws", canvas)
        with patch("voxedit.render_client.websockets.connect", new_callable=AsyncMock, return_value=ws):
            assert await client.connect() is True
        assert client.connected
        assert ws.sent[0]["type"] == "file-data"
        assert ws.sent[0]["data"]["name"] == "Landing"
        assert ws.sent[0]["data"]["nodeCount"] == 7

    @pytest.mark.asyncio
    async def test_unexpected_greeting(self, canvas):
        ws = FakeWS(greeting={"type": "error", "error": "go away"})
        client = RenderClient("ws://hub/ws", canvas)
        with patch("voxedit.render_client.websockets.connect", new_callable=AsyncMock, return_value=ws):
            assert await client.connect() is False
        assert ws.closed
        assert not client.connected

    @pytest.mark.asyncio
    async def test_connection_refused(self, canvas):
        client = RenderClient("ws://hub/ws", canvas)
        with patch("voxedit.render_client.websockets.connect", new_callable=AsyncMock,
                   side_effect=OSError("refused")):
            assert await client.connect() is False

    @pytest.mark.asyncio
    async def test_unexpected_greeting_keeps_running(self, canvas):
        ws = FakeWS(greeting={"type": "pong"})
        client = RenderClient("ws://hub/ws", canvas)
        client._running = True
        with patch("voxedit.render_client.websockets.connect", new_callable=AsyncMock, return_value=ws):
            assert await client.connect() is False
        assert client._running is True
        assert client._ws is None

    @pytest.mark.asyncio
    async def test_greeting_timeout_closes_socket(self, canvas):
        ws = FakeWS()
        ws.recv = AsyncMock(side_effect=asyncio.TimeoutError())
        client = RenderClient("ws://hub/ws", canvas)
        with patch("voxedit.render_client.websockets.connect", new_callable=AsyncMock, return_value=ws):
            assert await client.connect() is False
        assert ws.closed
        assert client._ws is None

    @pytest.mark.asyncio
    async def test_run_retries_after_bad_greeting(self, canvas):
        bad = FakeWS(greeting={"type": "error", "error": "busy"})
        good = FakeWS()
        client = RenderClient("ws://hub/ws", canvas)
        connect = AsyncMock(side_effect=[bad, good])

        async def fake_sleep(delay):
            if connect.await_count >= 2:
                client._running = False

        with patch("voxedit.render_client.websockets.connect", connect), \
                patch("voxedit.render_client.asyncio.sleep", side_effect=fake_sleep):
            await client.run()
        assert connect.await_count == 2
        assert bad.closed
        assert good.types() == ["file-data"]


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_execute_reports_with_request_id(self, canvas):
        client = RenderClient("ws://hub/ws", canvas)
        client._ws = ws = FakeWS()
        await client.handle_message({
            "type": "execute-command",
            "requestId": "r-1",
            "data": {"type": "delete", "target": "Footer"},
        })
        report, snapshot = ws.sent
        assert report["type"] == "command-executed"
        assert report["requestId"] == "r-1"
        assert report["success"] is True
        assert report["affected"] == ["3:1"]
        assert snapshot["type"] == "file-data"
        assert snapshot["data"]["nodeCount"] == 6

    @pytest.mark.asyncio
    async def test_execute_failure_reported(self, canvas):
        client = RenderClient("ws://hub/ws", canvas)
        client._ws = ws = FakeWS()
        await client.handle_message({
            "type": "execute-command",
            "requestId": "r-2",
            "data": {"type": "delete", "target": "Sidebar"},
        })
        report = ws.sent[0]
        assert report["success"] is False
        assert 'No nodes found matching "Sidebar"' in report["error"]

    @pytest.mark.asyncio
    async def test_malformed_command(self, canvas):
        client = RenderClient("ws://hub/ws", canvas)
        client._ws = ws = FakeWS()
        await client.handle_message({
            "type": "execute-command",
            "requestId": "r-3",
            "data": {"type": "modify"},
        })
        assert ws.sent == [{
            "type": "command-executed",
            "requestId": "r-3",
            "success": False,
            "error": ws.sent[0]["error"],
            "command": {"type": "modify"},
        }]
        assert ws.sent[0]["error"].startswith("Invalid command:")

    @pytest.mark.asyncio
    async def test_get_file_data(self, canvas):
        client = RenderClient("ws://hub/ws", canvas)
        client._ws = ws = FakeWS()
        await client.handle_message({"type": "get-file-data"})
        assert ws.types() == ["file-data"]

    @pytest.mark.asyncio
    async def test_other_types_ignored(self, canvas):
        client = RenderClient("ws://hub/ws", canvas)
        client._ws = ws = FakeWS()
        await client.handle_message({"type": "command-processed", "data": {}})
        await client.handle_message({"type": "error", "error": "boom"})
        assert ws.sent == []


class TestListen:
    @pytest.mark.asyncio
    async def test_processes_frames_in_order(self, canvas):
        frames = [
            "garbage",
            json.dumps({"type": "execute-command", "requestId": "a",
                        "data": {"type": "create", "properties": {"name": "Box"}}}),
            json.dumps({"type": "execute-command", "requestId": "b",
                        "data": {"type": "delete", "target": "Box"}}),
        ]
        client = RenderClient("ws://hub/ws", canvas)
        client._ws = ws = FakeWS(frames=frames)
        client._connected = True
        await client.listen()

        reports = [m for m in ws.sent if m["type"] == "command-executed"]
        assert [r["requestId"] for r in reports] == ["a", "b"]
        assert all(r["success"] for r in reports)
        assert not client.connected

    @pytest.mark.asyncio
    async def test_disconnect(self, canvas):
        client = RenderClient("ws://hub/ws", canvas)
        client._ws = ws = FakeWS()
        await client.disconnect()
        assert ws.closed
        assert client._ws is None


class TestLoadSnapshot:
    def test_list(self, tmp_path):
        path = tmp_path / "tree.json"
        path.write_text(json.dumps([{"id": "1", "name": "A"}, {"id": "2", "name": "B"}]))
        assert [e.name for e in load_snapshot(path)] == ["A", "B"]

    def test_single_element(self, tmp_path):
        path = tmp_path / "tree.json"
        path.write_text(json.dumps({"id": "1", "name": "A", "children": [{"id": "2", "name": "B"}]}))
        (root,) = load_snapshot(path)
        assert root.children[0].name == "B"

    def test_figma_file(self, tmp_path):
        path = tmp_path / "file.json"
        path.write_text(json.dumps({
            "name": "Landing",
            "document": {"id": "0:0", "children": [{"id": "0:1", "name": "Page 1", "type": "CANVAS"}]},
        }))
        assert [e.name for e in load_snapshot(path)] == ["Page 1"]
