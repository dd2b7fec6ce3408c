"""Parser for raw Lux model output.

The model answers each step with two delimited sections::

    <|think_start|> reasoning text <|think_end|>
    <|action_start|> click(500, 300) & type("hello") <|action_end|>

``parse_raw_output`` turns that text into a ``Step``.  Parsing is
lossy: an action that does not match the grammar is dropped
from the step instead of failing the whole turn, and a missing section
simply yields empty text.

Known limitation: actions are split on ``&`` outside parentheses only,
so a literal ``&`` inside a quoted ``type(...)`` argument is still
treated as a separator.  The model is expected to avoid it.

Typical usage::

    from lux_agent.core.output_parser import parse_raw_output

    step = parse_raw_output(raw_text)
    for action in step.actions:
        print(action.type.value, action.argument, action.count)
"""

from __future__ import annotations

import logging
import re

from lux_agent.models.actions import Action, ActionType, Step

logger = logging.getLogger(__name__)

_THINK_RE = re.compile(r"<\|think_start\|>(.*?)<\|think_end\|>", re.DOTALL)
_ACTION_BLOCK_RE = re.compile(
    r"<\|action_start\|>(.*?)<\|action_end\|>", re.DOTALL
)
_ACTION_RE = re.compile(r"(\w+)\((.*)\)", re.DOTALL)

_ACTION_TYPES: dict[str, ActionType] = {t.value: t for t in ActionType}


def split_actions(action_block: str) -> list[str]:
    """Split an action block on ``&`` separators at paren depth 0.

    ``"drag(1,2,3,4) & wait()"`` becomes ``["drag(1,2,3,4)", "wait()"]``.
    Empty fragments are discarded.

    Args:
        action_block: Text between the action delimiters.

    Returns:
        Individual action strings, stripped, in order.
    """
    actions: list[str] = []
    current: list[str] = []
    depth = 0

    for char in action_block:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "&" and depth == 0:
            text = "".join(current).strip()
            if text:
                actions.append(text)
            current = []
            continue
        current.append(char)

    text = "".join(current).strip()
    if text:
        actions.append(text)
    return actions


def parse_action(text: str) -> Action | None:
    """Parse one ``name(args)`` string into an ``Action``.

    ``hotkey(keys, n)`` stores ``keys`` and replays ``n`` times;
    ``scroll(x, y, direction, n)`` stores ``x,y,direction`` and scrolls
    ``n`` times.  Invalid counts become 1.

    Args:
        text: A single action string.

    Returns:
        The parsed action, or ``None`` when the text does not match the
        grammar or names an unknown action.
    """
    match = _ACTION_RE.search(text)
    if match is None:
        return None

    action_type = _ACTION_TYPES.get(match.group(1))
    if action_type is None:
        return None

    argument = match.group(2).strip()
    args = argument.split(",")
    count: object = 1

    if action_type is ActionType.HOTKEY:
        if len(args) >= 2 and args[1].strip():
            argument = args[0].strip()
            count = args[1].strip()
    elif action_type is ActionType.SCROLL:
        if len(args) >= 4:
            x, y, direction = (a.strip() for a in args[:3])
            argument = f"{x},{y},{direction}"
            count = args[3].strip()

    return Action(type=action_type, argument=argument, count=count)  # type: ignore[arg-type]


def parse_raw_output(raw_output: str) -> Step:
    """Parse raw model text into a ``Step``.

    Args:
        raw_output: Complete reply text from the model.

    Returns:
        A ``Step`` with the reasoning text and every action that could
        be parsed.  ``stop`` is true when a ``finish`` action is present.
    """
    think = _THINK_RE.search(raw_output)
    reason = think.group(1).strip() if think else ""

    block = _ACTION_BLOCK_RE.search(raw_output)
    action_text = block.group(1) if block else ""

    actions: list[Action] = []
    for fragment in split_actions(action_text):
        action = parse_action(fragment)
        if action is None:
            logger.debug("Dropping unparseable action: %r", fragment)
            continue
        actions.append(action)

    return Step(reason=reason, actions=tuple(actions))
