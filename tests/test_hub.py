"""Tests for the connection hub (routing, relay, failure isolation)."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.websockets import WebSocketState

from voxedit.errors import GatewayError
from voxedit.gateway.base import TranslationGateway
from voxedit.hub import MAX_PENDING_REPORTS, Connection, ConnectionHub, context_string
from voxedit.models import Command, GatewayResult


# ── Fakes ─────────────────────────────────────────────────────────


class FakeWebSocket:
    """Records outbound frames; optionally replays scripted inbound ones."""

    def __init__(self, inbound: list[dict[str, Any]] | None = None, fail: bool = False):
        self.sent: list[dict[str, Any]] = []
        self.inbound = list(inbound or [])
        self.fail = fail
        self.accepted = False
        self.close_code: int | None = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def accept(self):
        self.accepted = True

    async def receive(self):
        if self.inbound:
            return self.inbound.pop(0)
        return {"type": "websocket.disconnect", "code": 1000}

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000):
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == kind]


class FakeGateway(TranslationGateway):
    def __init__(self, result: GatewayResult | None = None, error: Exception | None = None,
                 delay: float = 0.0, gate: asyncio.Event | None = None):
        self.result = result or GatewayResult(
            command=Command(type="delete", target="footer", rawText="delete the footer"),
            confidence=0.9,
        )
        self.error = error
        self.delay = delay
        self.gate = gate
        self.calls: list[dict[str, Any]] = []

    async def process_command(self, text=None, audio=None, context=""):
        self.calls.append({"text": text, "audio": audio, "context": context})
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result

    async def get_suggestions(self, state):
        return []


def _frame(payload: Any) -> str:
    return json.dumps(payload)


async def _join(hub: ConnectionHub, **kwargs) -> tuple[Connection, FakeWebSocket]:
    ws = FakeWebSocket(**kwargs)
    conn = Connection(ws)
    await hub.accept(conn)
    return conn, ws


VOICE_TEXT = {"type": "voice-command", "data": {"text": "delete the footer"}}


# ── Connection lifecycle ──────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_accept_sends_greeting(self):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        assert ws.sent == [{"type": "connected", "message": "Connected to VoxEdit relay server"}]
        assert conn in hub.connections

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self):
        hub = ConnectionHub(FakeGateway())
        conn, _ = await _join(hub)
        hub.remove(conn)
        hub.remove(conn)
        assert hub.stats()["connections"] == 0

    @pytest.mark.asyncio
    async def test_close_refuses_new_connections(self):
        hub = ConnectionHub(FakeGateway())
        _, ws1 = await _join(hub)
        await hub.close()
        assert ws1.close_code == 1001
        assert hub.connections == frozenset()

        ws2 = FakeWebSocket()
        assert await hub.accept(Connection(ws2)) is False
        assert ws2.sent == []
        assert ws2.close_code == 1001

    @pytest.mark.asyncio
    async def test_serve_runs_until_disconnect(self):
        hub = ConnectionHub(FakeGateway())
        ws = FakeWebSocket(inbound=[
            {"type": "websocket.receive", "text": _frame({"type": "ping"})},
            {"type": "websocket.receive", "bytes": _frame({"type": "ping"}).encode()},
        ])
        await hub.serve(ws)
        assert ws.accepted
        assert ws.types() == ["connected", "pong", "pong"]
        assert hub.stats()["connections"] == 0

    @pytest.mark.asyncio
    async def test_serve_removes_on_error(self):
        hub = ConnectionHub(FakeGateway())
        ws = FakeWebSocket()
        ws.receive = AsyncMock(side_effect=RuntimeError("transport broke"))
        await hub.serve(ws)
        assert hub.stats()["connections"] == 0


# ── Dispatch ──────────────────────────────────────────────────────


class TestDispatch:
    @pytest.mark.asyncio
    async def test_ping(self):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        await hub.dispatch(conn, _frame({"type": "ping"}))
        assert ws.types() == ["connected", "pong"]

    @pytest.mark.asyncio
    async def test_unknown_type_ignored(self):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        await hub.dispatch(conn, _frame({"type": "dance"}))
        await hub.dispatch(conn, _frame({"data": 1}))
        assert ws.types() == ["connected"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["{not json", "[1]", '{"type": 3}'])
    async def test_malformed_reported_to_sender(self, raw):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        await hub.dispatch(conn, raw)
        assert ws.types() == ["connected", "error"]
        # connection survives
        await hub.dispatch(conn, _frame({"type": "ping"}))
        assert ws.types()[-1] == "pong"

    @pytest.mark.asyncio
    async def test_file_data_recorded(self):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        await hub.dispatch(conn, _frame({"type": "file-data", "data": {"nodeCount": 3}}))
        assert hub.last_file_data == {"nodeCount": 3}
        assert hub.stats()["has_file_data"] is True
        assert ws.types() == ["connected"]

    @pytest.mark.asyncio
    async def test_handler_crash_becomes_error(self, monkeypatch):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        monkeypatch.setitem(hub._handlers, "ping", AsyncMock(side_effect=RuntimeError("kaboom")))
        await hub.dispatch(conn, _frame({"type": "ping"}))
        assert ws.of_type("error") == [{"type": "error", "error": "kaboom"}]


# ── Voice commands ────────────────────────────────────────────────


class TestVoiceCommand:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [None, {}, {"text": ""}, {"audio": None, "text": None}])
    async def test_no_input(self, data):
        gateway = FakeGateway()
        hub = ConnectionHub(gateway)
        conn, ws = await _join(hub)
        await hub.dispatch(conn, _frame({"type": "voice-command", "data": data}))
        assert ws.of_type("error") == [{"type": "error", "error": "No audio or text data provided"}]
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_non_object_data(self):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        await hub.dispatch(conn, _frame({"type": "voice-command", "data": "delete it"}))
        assert ws.types() == ["connected", "error"]

    @pytest.mark.asyncio
    async def test_success_broadcasts_then_replies(self):
        hub = ConnectionHub(FakeGateway())
        control, control_ws = await _join(hub)
        _, render_ws = await _join(hub)

        await hub.dispatch(control, _frame(VOICE_TEXT))

        executes = render_ws.of_type("execute-command")
        assert len(executes) == 1
        assert executes[0]["data"]["type"] == "delete"
        assert executes[0]["data"]["target"] == "footer"
        assert executes[0]["requestId"] in hub._pending

        # origin sees the broadcast and then its own result
        assert control_ws.types() == ["connected", "execute-command", "command-processed"]
        processed = control_ws.of_type("command-processed")[0]
        assert processed["data"]["confidence"] == 0.9
        assert processed["data"]["command"]["rawText"] == "delete the footer"

    @pytest.mark.asyncio
    async def test_gateway_error_only_to_origin(self):
        hub = ConnectionHub(FakeGateway(error=GatewayError("Could not parse model response")))
        control, control_ws = await _join(hub)
        _, render_ws = await _join(hub)

        await hub.dispatch(control, _frame(VOICE_TEXT))

        assert control_ws.of_type("error") == [
            {"type": "error", "error": "Could not parse model response"}
        ]
        assert render_ws.types() == ["connected"]

    @pytest.mark.asyncio
    async def test_gateway_timeout(self):
        hub = ConnectionHub(FakeGateway(delay=1.0), gateway_timeout=0.05)
        control, control_ws = await _join(hub)
        _, render_ws = await _join(hub)

        await hub.dispatch(control, _frame(VOICE_TEXT))

        assert control_ws.of_type("error") == [
            {"type": "error", "error": "Translation timed out after 0.05s"}
        ]
        assert render_ws.of_type("execute-command") == []

    @pytest.mark.asyncio
    async def test_zero_timeout_waits(self):
        hub = ConnectionHub(FakeGateway(delay=0.01), gateway_timeout=0)
        assert hub.gateway_timeout is None
        control, control_ws = await _join(hub)
        await hub.dispatch(control, _frame(VOICE_TEXT))
        assert "command-processed" in control_ws.types()

    @pytest.mark.asyncio
    async def test_origin_gone_during_translation(self):
        gate = asyncio.Event()
        hub = ConnectionHub(FakeGateway(gate=gate))
        control, control_ws = await _join(hub)
        _, render_ws = await _join(hub)

        task = asyncio.create_task(hub.dispatch(control, _frame(VOICE_TEXT)))
        await asyncio.sleep(0)
        control.closed = True
        hub.remove(control)
        gate.set()
        await task

        assert len(render_ws.of_type("execute-command")) == 1
        assert control_ws.types() == ["connected"]
        assert hub.stats()["pending_reports"] == 0

    @pytest.mark.asyncio
    async def test_failing_peer_does_not_block_others(self):
        hub = ConnectionHub(FakeGateway())
        control, control_ws = await _join(hub)
        _, broken_ws = await _join(hub)
        _, render_ws = await _join(hub)
        broken_ws.fail = True

        await hub.dispatch(control, _frame(VOICE_TEXT))

        assert len(render_ws.of_type("execute-command")) == 1
        assert control_ws.types()[-1] == "command-processed"

    @pytest.mark.asyncio
    async def test_no_receivers_drops_request_id(self):
        hub = ConnectionHub(FakeGateway())
        control, control_ws = await _join(hub)
        control_ws.client_state = WebSocketState.DISCONNECTED
        await hub.dispatch(control, _frame(VOICE_TEXT))
        assert hub.stats()["pending_reports"] == 0

    @pytest.mark.asyncio
    async def test_origin_alone_drops_request_id(self):
        hub = ConnectionHub(FakeGateway())
        control, control_ws = await _join(hub)
        await hub.dispatch(control, _frame(VOICE_TEXT))
        assert control_ws.types() == ["connected", "execute-command", "command-processed"]
        assert hub.stats()["pending_reports"] == 0

    @pytest.mark.asyncio
    async def test_context_passed_as_json(self):
        gateway = FakeGateway()
        hub = ConnectionHub(gateway)
        control, _ = await _join(hub)
        data = {"text": "delete the footer", "context": {"allNodes": [{"name": "Footer"}]}}
        await hub.dispatch(control, _frame({"type": "voice-command", "data": data}))
        assert json.loads(gateway.calls[0]["context"]) == data["context"]

    @pytest.mark.asyncio
    async def test_text_context_falls_back_to_figma(self):
        gateway = FakeGateway()
        figma = MagicMock()
        figma.get_context = AsyncMock(return_value={"name": "Landing", "childCount": 2})
        hub = ConnectionHub(gateway, figma=figma)
        control, _ = await _join(hub)

        await hub.dispatch(control, _frame(VOICE_TEXT))

        assert json.loads(gateway.calls[0]["context"]) == {"name": "Landing", "childCount": 2}

    @pytest.mark.asyncio
    async def test_figma_failure_gives_empty_context(self):
        gateway = FakeGateway()
        figma = MagicMock()
        figma.get_context = AsyncMock(side_effect=RuntimeError("403"))
        hub = ConnectionHub(gateway, figma=figma)
        control, control_ws = await _join(hub)

        await hub.dispatch(control, _frame(VOICE_TEXT))

        assert gateway.calls[0]["context"] == ""
        assert control_ws.types()[-1] == "command-processed"

    @pytest.mark.asyncio
    async def test_audio_skips_figma(self):
        gateway = FakeGateway()
        figma = MagicMock()
        figma.get_context = AsyncMock()
        hub = ConnectionHub(gateway, figma=figma)
        control, _ = await _join(hub)

        await hub.dispatch(control, _frame({"type": "voice-command", "data": {"audio": "UklGRg=="}}))

        figma.get_context.assert_not_called()
        assert gateway.calls[0]["audio"] == "UklGRg=="


# ── Execution reports ─────────────────────────────────────────────


class TestCommandExecuted:
    @pytest.mark.asyncio
    async def test_report_relayed_to_origin(self):
        hub = ConnectionHub(FakeGateway())
        control, control_ws = await _join(hub)
        render, render_ws = await _join(hub)
        await hub.dispatch(control, _frame(VOICE_TEXT))
        request_id = render_ws.of_type("execute-command")[0]["requestId"]

        report = {
            "type": "command-executed",
            "requestId": request_id,
            "success": False,
            "error": 'No nodes found matching "footer".',
            "command": {"type": "delete", "target": "footer"},
        }
        await hub.dispatch(render, _frame(report))

        assert control_ws.of_type("command-executed") == [report]
        assert render_ws.of_type("command-executed") == []
        assert hub.stats()["pending_reports"] == 0

    @pytest.mark.asyncio
    async def test_unknown_request_id_dropped(self):
        hub = ConnectionHub(FakeGateway())
        control, control_ws = await _join(hub)
        render, _ = await _join(hub)
        await hub.dispatch(render, _frame({"type": "command-executed", "requestId": "nope", "success": True}))
        await hub.dispatch(render, _frame({"type": "command-executed", "success": True}))
        assert control_ws.types() == ["connected"]

    @pytest.mark.asyncio
    async def test_pending_bounded(self):
        hub = ConnectionHub(FakeGateway())
        control, _ = await _join(hub)
        await _join(hub)
        for _ in range(MAX_PENDING_REPORTS + 5):
            await hub.dispatch(control, _frame(VOICE_TEXT))
        assert hub.stats()["pending_reports"] == MAX_PENDING_REPORTS

    @pytest.mark.asyncio
    async def test_remove_purges_pending(self):
        hub = ConnectionHub(FakeGateway())
        control, _ = await _join(hub)
        await _join(hub)
        await hub.dispatch(control, _frame(VOICE_TEXT))
        assert hub.stats()["pending_reports"] == 1
        hub.remove(control)
        assert hub.stats()["pending_reports"] == 0


# ── Delivery ──────────────────────────────────────────────────────


class TestDelivery:
    @pytest.mark.asyncio
    async def test_broadcast_counts_ready_connections(self):
        hub = ConnectionHub(FakeGateway())
        _, ws1 = await _join(hub)
        _, ws2 = await _join(hub)
        _, ws3 = await _join(hub)
        ws2.application_state = WebSocketState.DISCONNECTED
        ws3.fail = True
        assert await hub.broadcast({"type": "get-file-data"}) == 1
        assert ws1.types()[-1] == "get-file-data"
        assert ws2.types() == ["connected"]

    @pytest.mark.asyncio
    async def test_send_swallows_failures(self):
        hub = ConnectionHub(FakeGateway())
        conn, ws = await _join(hub)
        ws.fail = True
        assert await hub.send(conn, {"type": "pong"}) is False

    @pytest.mark.asyncio
    async def test_request_file_data(self):
        hub = ConnectionHub(FakeGateway())
        _, ws = await _join(hub)
        assert await hub.request_file_data() == 1
        assert ws.types()[-1] == "get-file-data"


class TestContextString:
    def test_values(self):
        assert context_string(None) == ""
        assert context_string("") == ""
        assert context_string('{"a": 1}') == '{"a": 1}'
        assert context_string({"a": 1}) == '{"a": 1}'
