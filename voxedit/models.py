"""Data model for VoxEdit: tree elements, commands and their results.

Wire shapes use the camelCase keys the render host and the language model
speak (``rawText``, ``elementType``, ``fontSize`` ...); Python attributes
are snake_case.  Every model ignores keys it does not know so that newer
clients and chatty model output never break decoding.
"""

from __future__ import annotations

import math
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ──────────────────────────────────────────────────────────────────
# Tree snapshot
# ──────────────────────────────────────────────────────────────────

class Element(BaseModel):
    """One node of the render tree.

    ``id`` is assigned by the host and stable for the node's lifetime;
    ``name`` is human-assigned and need not be unique.  Leaf types carry
    ``children=None``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    type: str = ""
    children: list[Element] | None = None

    # Geometry and paint, only populated by hosts that track them
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    opacity: float | None = None
    fills: list[Any] | None = None
    strokes: list[Any] | None = None
    effects: list[Any] | None = None
    corner_radius: float | None = Field(None, alias="cornerRadius")
    font_size: float | None = Field(None, alias="fontSize")
    characters: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("name", "type", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def summary(self) -> dict[str, str]:
        """The ``{id, name, type}`` triple used in context payloads."""
        return {"id": self.id, "name": self.name, "type": self.type}


# ──────────────────────────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────────────────────────

class CommandType(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    STYLE = "style"
    MOVE = "move"
    RESIZE = "resize"


class Command(BaseModel):
    """A structured edit instruction.  Immutable once built."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: CommandType
    target: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    raw_text: str = Field("", alias="rawText")
    timestamp: float | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("properties", mode="before")
    @classmethod
    def _properties_default(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("raw_text", mode="before")
    @classmethod
    def _raw_text_default(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("timestamp", mode="before")
    @classmethod
    def _lenient_timestamp(cls, v: Any) -> float | None:
        # advisory only; anything that is not a finite number is dropped
        if v is None or isinstance(v, bool):
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        return value if math.isfinite(value) else None

    @model_validator(mode="after")
    def _target_required(self) -> Command:
        if self.type is not CommandType.CREATE and not (self.target and self.target.strip()):
            raise ValueError(f"'{self.type.value}' commands require a target")
        return self

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def typed_properties(self) -> CommandProperties:
        return decode_properties(self)


class _Properties(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class CreateProperties(_Properties):
    element_type: str = Field("rectangle", alias="elementType")
    width: float = 100
    height: float = 100
    x: float = 0
    y: float = 0
    fills: Any = None
    name: str | None = None
    text: str | None = None


class ModifyProperties(_Properties):
    name: str | None = None
    font_size: float | None = Field(None, alias="fontSize")
    characters: str | None = None
    opacity: float | None = None


class StyleProperties(_Properties):
    fills: Any = None
    strokes: Any = None
    effects: list[Any] | None = None
    corner_radius: float | None = Field(None, alias="cornerRadius")


class MoveProperties(_Properties):
    x: float | None = None
    y: float | None = None


class ResizeProperties(_Properties):
    width: float | None = None
    height: float | None = None


class DeleteProperties(_Properties):
    pass


CommandProperties = (
    CreateProperties
    | ModifyProperties
    | StyleProperties
    | MoveProperties
    | ResizeProperties
    | DeleteProperties
)

_PROPERTY_MODELS: dict[CommandType, type[_Properties]] = {
    CommandType.CREATE: CreateProperties,
    CommandType.MODIFY: ModifyProperties,
    CommandType.STYLE: StyleProperties,
    CommandType.MOVE: MoveProperties,
    CommandType.RESIZE: ResizeProperties,
    CommandType.DELETE: DeleteProperties,
}


def decode_properties(command: Command) -> CommandProperties:
    """Decode ``command.properties`` into the variant for its type.

    Unknown keys are dropped and explicit ``null`` values fall back to the
    variant's defaults.
    """
    model = _PROPERTY_MODELS[command.type]
    cleaned = {k: v for k, v in command.properties.items() if v is not None}
    return model.model_validate(cleaned)


# ──────────────────────────────────────────────────────────────────
# Results
# ──────────────────────────────────────────────────────────────────

class GatewayResult(BaseModel):
    """What the translation gateway returns for one human instruction."""

    model_config = ConfigDict(extra="ignore")

    command: Command
    confidence: float = 0.0
    explanation: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return min(1.0, max(0.0, value))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExecutionReport(BaseModel):
    """Outcome of applying one command on the render host."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    command: Command
    error: str | None = None
    affected: list[str] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def now_ms() -> int:
    """Current wall-clock time in milliseconds (advisory command timestamp)."""
    return int(time.time() * 1000)
