"""Renderers that write an observer event stream to disk.

Three formats are supported:

* Markdown: a readable step-by-step report.  Screenshot bytes are
  written to ``images_dir`` as files when one is given.
* HTML: a single self-contained page with inline screenshots.
* JSON: one object per event; bytes become base64, enums their values.

Dependencies: ``models.events`` only; ``json``, ``html`` and ``base64``
(stdlib).
"""

from __future__ import annotations

import base64
import html
import json
import os
from collections.abc import Sequence
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from lux_agent.models.actions import (
    Action,
    ActionType,
    parse_coords,
    parse_drag_coords,
    parse_scroll,
)
from lux_agent.models.events import (
    ActionEvent,
    ImageEvent,
    LogEvent,
    ObserverEvent,
    PlanEvent,
    SplitEvent,
    StepEvent,
)

_CLICK_TYPES = (
    ActionType.CLICK,
    ActionType.LEFT_DOUBLE,
    ActionType.LEFT_TRIPLE,
    ActionType.RIGHT_SINGLE,
)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def _json_safe(data: Any) -> Any:
    """Recursively make *data* JSON-serialisable.

    Enum members become their values, bytes become base64 strings and
    tuples become lists.
    """
    if isinstance(data, dict):
        return {k: _json_safe(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_json_safe(item) for item in data]
    if isinstance(data, Enum):
        return data.value
    if isinstance(data, (bytes, bytearray)):
        return base64.b64encode(bytes(data)).decode("ascii")
    return data


def event_to_dict(event: ObserverEvent) -> dict[str, Any]:
    """Convert an event dataclass into a JSON-safe dict.

    The event type is included under ``"type"`` and a derived ``stop``
    flag is added to step payloads.
    """
    raw: dict[str, Any] = asdict(event) if is_dataclass(event) else dict(vars(event))
    if isinstance(event, StepEvent):
        raw["step"]["stop"] = event.step.stop
    raw["type"] = event.type.value
    return _json_safe(raw)


def _clock(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")


def action_coords(action: Action) -> dict[str, Any] | None:
    """Return the screen coordinates an action refers to, if any.

    Used to annotate reports.  Returns ``None`` for actions without
    coordinates or with an unparseable argument.
    """
    if action.type in _CLICK_TYPES:
        coords = parse_coords(action.argument)
        if coords:
            return {"kind": "click", "x": coords[0], "y": coords[1]}
    elif action.type is ActionType.DRAG:
        drag = parse_drag_coords(action.argument)
        if drag:
            return {"kind": "drag", "x1": drag[0], "y1": drag[1], "x2": drag[2], "y2": drag[3]}
    elif action.type is ActionType.SCROLL:
        scroll = parse_scroll(action.argument)
        if scroll:
            return {"kind": "scroll", "x": scroll[0], "y": scroll[1], "direction": scroll[2]}
    return None


def _format_action(action: Action) -> str:
    count = f" (x{action.count})" if action.count > 1 else ""
    return f"`{action.type.value}`: {action.argument}{count}"


def _blockquote(text: str) -> str:
    return "\n".join(f"> {line}" if line else ">" for line in text.splitlines())


def _image_type(data: bytes) -> tuple[str, str]:
    """Return ``(extension, mime type)`` for encoded screenshot bytes."""
    if data[:2] == b"\xff\xd8":
        return "jpg", "image/jpeg"
    return "png", "image/png"


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


def export_to_markdown(
    events: Sequence[ObserverEvent],
    path: str | Path,
    images_dir: str | Path | None = None,
) -> None:
    """Write *events* as a Markdown report.

    Args:
        events: Recorded events, in order.
        path: Output ``.md`` file.
        images_dir: Directory for screenshot files.  Links in the report
            are relative to the report's directory.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    image_root = Path(images_dir) if images_dir else None
    if image_root is not None:
        image_root.mkdir(parents=True, exist_ok=True)

    lines: list[str] = ["# Agent Execution Report\n"]

    for event in events:
        clock = _clock(event.timestamp)

        if isinstance(event, StepEvent):
            lines.append(f"\n## Step {event.step_num}\n")
            lines.append(f"**Time:** {clock}\n")
            if event.task_id:
                lines.append(f"**Task ID:** `{event.task_id}`\n")
            lines.append(_markdown_image(event.image, f"step_{event.step_num}", image_root, target))
            if event.step.reason:
                lines.append(f"\n**Reasoning:**\n{_blockquote(event.step.reason)}\n")
            if event.step.actions:
                lines.append("\n**Planned Actions:**\n")
                for action in event.step.actions:
                    lines.append(f"- {_format_action(action)}\n")
            if event.step.stop:
                lines.append("\n**Status:** Task Complete\n")

        elif isinstance(event, ActionEvent):
            lines.append(f"\n### Actions Executed ({clock})\n")
            if event.error:
                lines.append(f"\n**Error:** {event.error}\n")
            else:
                lines.append("\n**Result:** Success\n")

        elif isinstance(event, PlanEvent):
            lines.append(f"\n### Plan: {event.phase} ({clock})\n")
            if event.reasoning:
                lines.append(f"\n**Reasoning:**\n{_blockquote(event.reasoning)}\n")
            if event.result:
                lines.append(f"\n**Result:** {event.result}\n")
            if event.request_id:
                lines.append(f"\n**Request ID:** `{event.request_id}`\n")

        elif isinstance(event, LogEvent):
            lines.append(f"\n> **Log ({clock}):** {event.message}\n")

        elif isinstance(event, SplitEvent):
            if event.label:
                lines.append(f"\n---\n\n### {event.label}\n")
            else:
                lines.append("\n---\n")

        elif isinstance(event, ImageEvent):
            lines.append(
                _markdown_image(event.image, f"image_{event.step_num}", image_root, target)
            )

    target.write_text("".join(lines), encoding="utf-8")


def _markdown_image(
    image: bytes | str | None,
    stem: str,
    image_root: Path | None,
    report: Path,
) -> str:
    if image is None:
        return ""
    if isinstance(image, str):
        return f"\n**Screenshot URL:** {image}\n"
    if image_root is None:
        return f"\n*[Screenshot captured - {len(image)} bytes]*\n"
    extension, _ = _image_type(image)
    image_path = image_root / f"{stem}.{extension}"
    image_path.write_bytes(image)
    rel = os.path.relpath(image_path, report.parent).replace(os.sep, "/")
    return f"\n![{stem}]({rel})\n"


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

_HTML_HEAD = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Agent Execution Report</title>
<style>
body { font-family: sans-serif; margin: 2em; }
.event { border-left: 3px solid #ccc; padding: 0.5em 1em; margin: 1em 0; }
.step { border-color: #2b7bb9; }
.action.error { border-color: #c0392b; }
.plan { border-color: #8e44ad; }
.time { color: #777; font-size: 0.9em; }
img { max-width: 100%; border: 1px solid #ddd; }
</style>
</head>
<body>
<h1>Agent Execution Report</h1>
"""


def export_to_html(events: Sequence[ObserverEvent], path: str | Path) -> None:
    """Write *events* as a single self-contained HTML page."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    parts: list[str] = [_HTML_HEAD]
    for event in events:
        clock = html.escape(_clock(event.timestamp))

        if isinstance(event, StepEvent):
            parts.append('<div class="event step">')
            parts.append(f"<h2>Step {event.step_num}</h2>")
            parts.append(f'<div class="time">{clock}</div>')
            parts.append(_html_image(event.image))
            if event.step.reason:
                parts.append(f"<blockquote>{html.escape(event.step.reason)}</blockquote>")
            if event.step.actions:
                parts.append("<ul>")
                for action in event.step.actions:
                    count = f" (x{action.count})" if action.count > 1 else ""
                    parts.append(
                        f"<li><code>{html.escape(action.type.value)}</code>: "
                        f"{html.escape(action.argument)}{count}</li>"
                    )
                parts.append("</ul>")
            if event.step.stop:
                parts.append("<p><strong>Task Complete</strong></p>")
            parts.append("</div>")

        elif isinstance(event, ActionEvent):
            css = "event action error" if event.error else "event action"
            outcome = f"Error: {html.escape(event.error)}" if event.error else "Success"
            parts.append(f'<div class="{css}"><span class="time">{clock}</span> {outcome}</div>')

        elif isinstance(event, PlanEvent):
            parts.append('<div class="event plan">')
            parts.append(f"<h3>Plan: {html.escape(event.phase)}</h3>")
            parts.append(f'<div class="time">{clock}</div>')
            parts.append(_html_image(event.image))
            if event.reasoning:
                parts.append(f"<blockquote>{html.escape(event.reasoning)}</blockquote>")
            if event.result:
                parts.append(f"<p>Result: {html.escape(event.result)}</p>")
            parts.append("</div>")

        elif isinstance(event, LogEvent):
            parts.append(f'<div class="event log"><span class="time">{clock}</span> {html.escape(event.message)}</div>')

        elif isinstance(event, SplitEvent):
            parts.append("<hr>")
            if event.label:
                parts.append(f"<h3>{html.escape(event.label)}</h3>")

        elif isinstance(event, ImageEvent):
            parts.append(_html_image(event.image))

    parts.append("</body>\n</html>\n")
    target.write_text("\n".join(parts), encoding="utf-8")


def _html_image(image: bytes | str | None) -> str:
    if image is None:
        return ""
    if isinstance(image, str):
        src = html.escape(image, quote=True)
    else:
        _, mime = _image_type(image)
        src = f"data:{mime};base64," + base64.b64encode(image).decode("ascii")
    return f'<img src="{src}" alt="screenshot">'


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def export_to_json(events: Sequence[ObserverEvent], path: str | Path) -> None:
    """Write *events* as a JSON array."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as fh:
        json.dump([event_to_dict(e) for e in events], fh, indent=2, ensure_ascii=False)
        fh.write("\n")
