"""Command executor contract and an in-memory reference canvas.

The render host owns the real tree; VoxEdit only fixes the contract it is
driven through.  :meth:`CommandExecutor.execute` resolves the command
target before any non-``create`` operation and reports a failure listing a
few candidate names when nothing matches.  Subclasses implement one
handler per command type.
"""

from __future__ import annotations

import abc
import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from voxedit.errors import ResolutionError
from voxedit.models import (
    Command,
    CommandType,
    CreateProperties,
    Element,
    ExecutionReport,
    ModifyProperties,
    MoveProperties,
    ResizeProperties,
    StyleProperties,
)
from voxedit.resolver import collect_candidates, resolve, suggest_names

logger = logging.getLogger(__name__)

Handler = Callable[[list[Element], Any], Awaitable[None] | None]


class CommandExecutor(abc.ABC):
    """Applies :class:`Command` objects to a tree the subclass owns."""

    @abc.abstractmethod
    def snapshot(self) -> list[Element]:
        """Current top-level elements, used for target resolution."""

    @abc.abstractmethod
    async def create(self, props: CreateProperties) -> Element:
        """Create and attach a new element."""

    @abc.abstractmethod
    async def modify(self, nodes: list[Element], props: ModifyProperties) -> None: ...

    @abc.abstractmethod
    async def delete(self, nodes: list[Element], props: Any) -> None: ...

    @abc.abstractmethod
    async def style(self, nodes: list[Element], props: StyleProperties) -> None: ...

    @abc.abstractmethod
    async def move(self, nodes: list[Element], props: MoveProperties) -> None: ...

    @abc.abstractmethod
    async def resize(self, nodes: list[Element], props: ResizeProperties) -> None: ...

    def _handlers(self) -> dict[CommandType, Handler]:
        return {
            CommandType.MODIFY: self.modify,
            CommandType.DELETE: self.delete,
            CommandType.STYLE: self.style,
            CommandType.MOVE: self.move,
            CommandType.RESIZE: self.resize,
        }

    def file_context(self) -> dict[str, Any]:
        """Context payload sent to the hub as ``file-data``."""
        all_nodes = collect_candidates(self.snapshot())
        return {"allNodes": all_nodes, "selection": [], "nodeCount": len(all_nodes)}

    def find_targets(self, target: str) -> list[Element]:
        """Resolve *target*; raise :class:`ResolutionError` if nothing matches."""
        tree = self.snapshot()
        nodes = resolve(target, tree)
        if not nodes:
            raise ResolutionError(target, suggest_names(tree))
        return nodes

    async def execute(self, command: Command) -> ExecutionReport:
        """Apply *command* and report the outcome.  Never raises."""
        try:
            props = command.typed_properties()
            if command.type is CommandType.CREATE:
                node = await self.create(props)
                return ExecutionReport(success=True, command=command, affected=[node.id])

            nodes = self.find_targets(command.target or "")
            logger.info(
                "Applying %s to %d node(s) matching %r",
                command.type.value, len(nodes), command.target,
            )
            result = self._handlers()[command.type](nodes, props)
            if inspect.isawaitable(result):
                await result
            return ExecutionReport(
                success=True, command=command, affected=[n.id for n in nodes]
            )
        except ResolutionError as exc:
            logger.info("Target not found: %s", exc)
            return ExecutionReport(success=False, command=command, error=str(exc))
        except ValidationError as exc:
            logger.warning("Bad %s properties: %s", command.type.value, exc)
            return ExecutionReport(
                success=False, command=command, error=f"Invalid properties: {exc}"
            )
        except Exception as exc:
            logger.exception("Error executing %s command", command.type.value)
            return ExecutionReport(success=False, command=command, error=str(exc))


# ──────────────────────────────────────────────────────────────────
# Paint parsing
# ──────────────────────────────────────────────────────────────────

GRAY = {"r": 0.5, "g": 0.5, "b": 0.5}

NAMED_COLORS: dict[str, dict[str, float]] = {
    "red": {"r": 1, "g": 0, "b": 0},
    "green": {"r": 0, "g": 1, "b": 0},
    "blue": {"r": 0, "g": 0, "b": 1},
    "yellow": {"r": 1, "g": 1, "b": 0},
    "cyan": {"r": 0, "g": 1, "b": 1},
    "magenta": {"r": 1, "g": 0, "b": 1},
    "white": {"r": 1, "g": 1, "b": 1},
    "black": {"r": 0, "g": 0, "b": 0},
    "gray": GRAY,
    "orange": {"r": 1, "g": 0.5, "b": 0},
    "purple": {"r": 0.5, "g": 0, "b": 0.5},
}


def parse_color(value: str) -> dict[str, float]:
    """Named colour or ``#rgb``/``#rrggbb`` hex to 0-1 RGB; gray otherwise."""
    lower = value.strip().lower()
    if lower in NAMED_COLORS:
        return dict(NAMED_COLORS[lower])
    if lower.startswith("#"):
        digits = lower[1:]
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        if len(digits) == 6:
            try:
                r, g, b = (int(digits[i:i + 2], 16) / 255 for i in (0, 2, 4))
                return {"r": r, "g": g, "b": b}
            except ValueError:
                pass
    return dict(GRAY)


def parse_fills(value: Any) -> list[Any]:
    """Paint list as-is; a colour string becomes one SOLID paint."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [{"type": "SOLID", "color": parse_color(value)}]
    return []


# ──────────────────────────────────────────────────────────────────
# Reference implementation
# ──────────────────────────────────────────────────────────────────

_CREATE_TYPES = {
    "rectangle": "RECTANGLE",
    "ellipse": "ELLIPSE",
    "circle": "ELLIPSE",
    "text": "TEXT",
    "frame": "FRAME",
}


class InMemoryCanvas(CommandExecutor):
    """A page of elements held in memory.

    Useful as a headless render host and in tests.  New elements are
    appended to the page and become the selection.
    """

    def __init__(
        self,
        elements: list[Element] | None = None,
        name: str = "Untitled",
        page_name: str = "Page 1",
    ) -> None:
        self.name = name
        self.page = Element(id="0:1", name=page_name, type="CANVAS", children=list(elements or []))
        self.selection: list[Element] = []
        self._ids = itertools.count(1)

    def snapshot(self) -> list[Element]:
        return list(self.page.children or [])

    def file_context(self) -> dict[str, Any]:
        """Context payload sent to the hub as ``file-data``."""
        all_nodes = collect_candidates(self.snapshot())
        return {
            "name": self.name,
            "pageName": self.page.name,
            "allNodes": all_nodes,
            "selection": [e.summary() for e in self.selection],
            "nodeCount": len(all_nodes),
        }

    def _new_id(self) -> str:
        return f"100:{next(self._ids)}"

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def create(self, props: CreateProperties) -> Element:
        kind = _CREATE_TYPES.get(props.element_type.lower(), "RECTANGLE")
        node = Element(
            id=self._new_id(),
            name=props.name or kind.title(),
            type=kind,
            x=props.x,
            y=props.y,
            width=props.width,
            height=props.height,
        )
        if kind == "TEXT":
            node.characters = props.text or "New Text"
        if props.fills is not None:
            node.fills = parse_fills(props.fills)

        if self.page.children is None:
            self.page.children = []
        self.page.children.append(node)
        self.selection = [node]
        logger.info("Created %s %r (%s)", kind, node.name, node.id)
        return node

    async def modify(self, nodes: list[Element], props: ModifyProperties) -> None:
        for node in nodes:
            if props.name:
                node.name = props.name
            if node.type == "TEXT":
                if props.font_size is not None:
                    node.font_size = props.font_size
                if props.characters is not None:
                    node.characters = props.characters
            if props.opacity is not None:
                node.opacity = props.opacity

    async def delete(self, nodes: list[Element], props: Any) -> None:
        doomed = {id(n) for n in nodes}
        self._prune(self.page, doomed)
        self.selection = [e for e in self.selection if id(e) not in doomed]

    def _prune(self, parent: Element, doomed: set[int]) -> None:
        if not parent.children:
            return
        parent.children = [c for c in parent.children if id(c) not in doomed]
        for child in parent.children:
            self._prune(child, doomed)

    async def style(self, nodes: list[Element], props: StyleProperties) -> None:
        for node in nodes:
            if props.fills is not None:
                node.fills = parse_fills(props.fills)
            if props.strokes is not None:
                node.strokes = parse_fills(props.strokes)
            if props.effects is not None:
                node.effects = props.effects
            if props.corner_radius is not None:
                node.corner_radius = props.corner_radius

    async def move(self, nodes: list[Element], props: MoveProperties) -> None:
        for node in nodes:
            if props.x is not None:
                node.x = props.x
            if props.y is not None:
                node.y = props.y

    async def resize(self, nodes: list[Element], props: ResizeProperties) -> None:
        if props.width is None or props.height is None:
            return
        for node in nodes:
            node.width = props.width
            node.height = props.height
