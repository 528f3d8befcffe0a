"""Prompt templates for the translation gateway."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

_RESPONSE_SCHEMA = """\
{
  "command": {
    "type": "create" | "modify" | "delete" | "style" | "move" | "resize",
    "target": "exact node name to find (omit for create)",
    "properties": {
      // create: { "elementType": "rectangle|ellipse|text|frame", "width": 200, "height": 100, "x": 0, "y": 0, "fills": [...], "name": "Button" }
      // modify: { "name": "New name", "fontSize": 32, "characters": "new text", "opacity": 0.5 }
      // style:  { "fills": [...], "strokes": [...], "effects": [...], "cornerRadius": 8 }
      // move:   { "x": 100, "y": 200 }
      // resize: { "width": 300, "height": 150 }
    },
    "rawText": "the instruction as given"
  },
  "confidence": 0.0-1.0,
  "explanation": "brief explanation of the interpretation"
}"""

_RULES = """\
RULES:
1. For CREATE commands use "properties" with "elementType", "width", "height", "x", "y", "fills" and "name".
2. For MODIFY/STYLE/DELETE/MOVE/RESIZE commands use the EXACT node names from the available nodes list. \
If the user says "header" or "headers", pick nodes whose name contains "header".
3. Colour fills use { "fills": [{ "type": "SOLID", "color": { "r": 0-1, "g": 0-1, "b": 0-1 } }] }.
4. fontSize is a number (24, 32, 48), never a word like "larger".
5. "button"/"buttons" matches any node whose name contains "button", case-insensitively.
6. For plurals ("headers", "buttons") use the singular form."""

_EXAMPLES = """\
Examples:
- "Create a blue button" -> {"command": {"type": "create", "properties": {"elementType": "rectangle", "width": 120, "height": 40, "fills": [{"type": "SOLID", "color": {"r": 0.2, "g": 0.4, "b": 1}}], "name": "Button"}}}
- "Make header larger" (if "My Header" exists) -> {"command": {"type": "modify", "target": "header", "properties": {"fontSize": 48}}}
- "Move the login button to the right" -> {"command": {"type": "move", "target": "login button", "properties": {"x": 400}}}
- "Delete the footer" -> {"command": {"type": "delete", "target": "footer"}}
- "Change background to red" -> {"command": {"type": "style", "target": "background", "properties": {"fills": [{"type": "SOLID", "color": {"r": 1, "g": 0, "b": 0}}]}}}"""


def _node_lines(nodes: Any) -> list[str]:
    if not isinstance(nodes, list):
        return []
    lines = []
    for n in nodes:
        if isinstance(n, dict) and n.get("name"):
            lines.append(f'- "{n["name"]}" ({n.get("type", "")})')
    return lines


def describe_context(context: str) -> str:
    """Render a JSON context string as node listings for the prompt.

    Context that is not a JSON object is ignored.
    """
    if not context:
        return ""
    try:
        ctx = json.loads(context)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Ignoring non-JSON command context")
        return ""
    if not isinstance(ctx, dict):
        return ""

    out = ""
    selected = _node_lines(ctx.get("selection"))
    if selected:
        out += "\n\nCURRENTLY SELECTED:\n" + "\n".join(selected)
    available = _node_lines(ctx.get("allNodes"))
    if available:
        out += "\n\nAVAILABLE NODES IN FILE:\n" + "\n".join(available)
    return out


def build_text_prompt(text: str, context: str = "") -> str:
    return (
        "You are a design assistant. Convert commands into structured design operations."
        f"{describe_context(context)}\n\n"
        "Analyze the command and respond ONLY with a valid JSON object (no markdown, no extra text).\n\n"
        f"{_RULES}\n\n"
        f"Response format:\n{_RESPONSE_SCHEMA}\n\n"
        f"{_EXAMPLES}\n\n"
        f"Command: {text}"
    )


def build_audio_prompt(context: str = "") -> str:
    current = f"\n\nCurrent design context: {context}" if context else ""
    return (
        "You are a design assistant. Listen to the attached voice command and convert it "
        f"into a structured design operation.{current}\n\n"
        "Respond ONLY with a valid JSON object (no markdown, no extra text). "
        'Put a transcript of what was said in "rawText".\n\n'
        f"{_RULES}\n\n"
        f"Response format:\n{_RESPONSE_SCHEMA}\n\n"
        f"{_EXAMPLES}"
    )


def build_suggestions_prompt(state: Any) -> str:
    return (
        f"Based on this design file state: {json.dumps(state, indent=2, default=str)}\n\n"
        "Suggest 3-5 helpful voice commands the user could say to improve or modify this design.\n"
        "Return ONLY a JSON array of suggestion strings."
    )
