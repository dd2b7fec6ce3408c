"""Actions and steps returned by the Lux model.

An ``Action`` describes one input operation the model asked for (click
a point, type text, press a hotkey), while a ``Step`` groups the
actions of one model turn together with the model's reasoning.

Coordinates inside action arguments are normalised to the 0-1000 range
on both axes; executors map them to device pixels.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionType(Enum):
    """The kind of input action the model can request.

    Attributes:
        CLICK: Left click at ``x, y``.
        LEFT_DOUBLE: Left double-click at ``x, y``.
        LEFT_TRIPLE: Left triple-click at ``x, y``.
        RIGHT_SINGLE: Right click at ``x, y``.
        DRAG: Press at ``x1, y1``, move to ``x2, y2``, release.
        HOTKEY: Key combination joined with ``+``.
        TYPE: Text entry.
        SCROLL: Wheel scroll at ``x, y`` in a direction.
        WAIT: Pause for a moment.
        FINISH: The task is complete.
        CALL_USER: The model needs a human.
    """

    CLICK = "click"
    LEFT_DOUBLE = "left_double"
    LEFT_TRIPLE = "left_triple"
    RIGHT_SINGLE = "right_single"
    DRAG = "drag"
    HOTKEY = "hotkey"
    TYPE = "type"
    SCROLL = "scroll"
    WAIT = "wait"
    FINISH = "finish"
    CALL_USER = "call_user"


def coerce_count(value: Any) -> int:
    """Return *value* as a positive repeat count, or 1.

    Accepts ints and numeric strings; integral floats such as ``3.0``
    are accepted too.  Anything else (including zero and negatives)
    collapses to 1.
    """
    if isinstance(value, bool):
        return 1
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                return 1
    if isinstance(value, float):
        if not value.is_integer():
            return 1
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        return 1
    return value


@dataclass(frozen=True)
class Action:
    """A single parsed action.

    Attributes:
        type: What to do.
        argument: Action-specific raw text, e.g. ``"120,340"`` for a
            click, ``"ctrl+c"`` for a hotkey, ``"x,y,up"`` for a scroll.
        count: How many times to replay the action.  Always >= 1.
    """

    type: ActionType
    argument: str = ""
    count: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "count", coerce_count(self.count))


@dataclass(frozen=True)
class Usage:
    """Token accounting for one model call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class Step:
    """One model turn: reasoning plus the actions to replay.

    Attributes:
        reason: The model's reasoning text, if any.
        actions: Actions in replay order.
        usage: Token usage for the call that produced this step.
    """

    reason: str | None = None
    actions: tuple[Action, ...] = field(default_factory=tuple)
    usage: Usage | None = None

    @property
    def stop(self) -> bool:
        """True iff any action is ``finish``."""
        return any(a.type is ActionType.FINISH for a in self.actions)


# ---------------------------------------------------------------------------
# Coordinate helpers
# ---------------------------------------------------------------------------

_COORDS_RE = re.compile(r"(\d+),\s*(\d+)")
_DRAG_RE = re.compile(r"(\d+),\s*(\d+),\s*(\d+),\s*(\d+)")
_SCROLL_RE = re.compile(r"(\d+),\s*(\d+),\s*(\w+)")


def parse_coords(args: str) -> tuple[int, int] | None:
    """Extract ``(x, y)`` from an argument such as ``"500, 300"``.

    Returns:
        The two integers, or ``None`` when the text does not contain
        them.
    """
    match = _COORDS_RE.search(args)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def parse_drag_coords(args: str) -> tuple[int, int, int, int] | None:
    """Extract ``(x1, y1, x2, y2)`` from a drag argument."""
    match = _DRAG_RE.search(args)
    if match is None:
        return None
    return (
        int(match.group(1)),
        int(match.group(2)),
        int(match.group(3)),
        int(match.group(4)),
    )


def parse_scroll(args: str) -> tuple[int, int, str] | None:
    """Extract ``(x, y, direction)`` from a scroll argument.

    The direction is lower-cased.
    """
    match = _SCROLL_RE.search(args)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2)), match.group(3).lower()
