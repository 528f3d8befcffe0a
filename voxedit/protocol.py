"""Envelope protocol spoken on every hub connection.

Every frame is a JSON object with a ``type`` field::

  Control client → Hub:
    voice-command {data: {audio?, text?, context?}}, file-data, ping

  Render client → Hub:
    command-executed {requestId, success, error?, command}, file-data

  Hub → clients:
    connected, execute-command, command-processed, command-executed,
    pong, error

  Hub → render client (requests):
    get-file-data
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from voxedit.models import Command, ExecutionReport, GatewayResult

# Inbound
VOICE_COMMAND = "voice-command"
FILE_DATA = "file-data"
PING = "ping"
COMMAND_EXECUTED = "command-executed"

# Outbound
CONNECTED = "connected"
EXECUTE_COMMAND = "execute-command"
COMMAND_PROCESSED = "command-processed"
PONG = "pong"
ERROR = "error"
GET_FILE_DATA = "get-file-data"

WELCOME_MESSAGE = "Connected to VoxEdit relay server"
NO_INPUT_MESSAGE = "No audio or text data provided"


class ProtocolError(ValueError):
    """Raised for frames that are not a JSON object."""


class Envelope(BaseModel):
    """An inbound frame.  Fields beyond ``type`` and ``data`` are kept."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    data: Any = None

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class VoiceCommandData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audio: str | None = None
    text: str | None = None
    context: Any = None


def decode(raw: str | bytes) -> Envelope:
    """Parse one frame.  Raises :class:`ProtocolError` if it is not an object."""
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ProtocolError("Envelope must be a JSON object")
    if not isinstance(payload.get("type", ""), str):
        raise ProtocolError("Envelope type must be a string")
    try:
        return Envelope.model_validate(payload)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid envelope: {exc}") from exc


def encode(envelope: dict[str, Any]) -> str:
    return json.dumps(envelope)


def decode_voice_command(data: Any) -> VoiceCommandData:
    if not isinstance(data, dict):
        raise ProtocolError("voice-command data must be an object")
    return VoiceCommandData.model_validate(data)


# ── Outbound builders ─────────────────────────────────────────────


def connected(message: str = WELCOME_MESSAGE) -> dict[str, Any]:
    return {"type": CONNECTED, "message": message}


def pong() -> dict[str, Any]:
    return {"type": PONG}


def error(message: str) -> dict[str, Any]:
    return {"type": ERROR, "error": message}


def execute_command(command: Command, request_id: str) -> dict[str, Any]:
    return {"type": EXECUTE_COMMAND, "data": command.to_wire(), "requestId": request_id}


def command_processed(result: GatewayResult) -> dict[str, Any]:
    return {"type": COMMAND_PROCESSED, "data": result.to_wire()}


def command_executed(report: ExecutionReport, request_id: str | None = None) -> dict[str, Any]:
    envelope = {"type": COMMAND_EXECUTED, **report.to_wire()}
    if request_id:
        envelope["requestId"] = request_id
    return envelope


def file_data(data: dict[str, Any]) -> dict[str, Any]:
    return {"type": FILE_DATA, "data": data}


def get_file_data() -> dict[str, Any]:
    return {"type": GET_FILE_DATA}
