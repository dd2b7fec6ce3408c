"""Observer events emitted by the agents.

Agents report what they do as a stream of typed events: a model step
was received, its actions were replayed, a planning phase finished, a
todo boundary was crossed, or a free-form log line was added.  Events
are passive records; observers never feed decisions back into the loop.

Screenshots attached to events are either raw image bytes or the URL
of an already-hosted image.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Union

from lux_agent.models.actions import Action, Step

# Raw encoded image bytes or a hosted image URL.
Image = Union[bytes, str]


class EventType(Enum):
    """Discriminator for observer events.

    Attributes:
        STEP: A model step was received.
        ACTION: The step's actions were replayed (or failed).
        PLAN: A planner phase (initial, reflection, summary) finished.
        SPLIT: A segment boundary, e.g. the start of a todo.
        LOG: A free-form log message.
        IMAGE: A standalone screenshot.
    """

    STEP = "step"
    ACTION = "action"
    PLAN = "plan"
    SPLIT = "split"
    LOG = "log"
    IMAGE = "image"


@dataclass
class StepEvent:
    """A model step together with the screenshot it was computed from.

    Attributes:
        step_num: 1-based step number within the run.
        image: Screenshot sent to the model.
        step: Parsed model reply.
        task_id: Actor task identifier, if known.
        timestamp: Unix timestamp of the event.
    """

    type: ClassVar[EventType] = EventType.STEP

    step_num: int
    image: Image | None
    step: Step
    task_id: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ActionEvent:
    """The outcome of replaying one step's actions.

    Attributes:
        step_num: Step the actions belong to.
        actions: Actions that were replayed.
        error: Error text when the executor failed, else ``None``.
        timestamp: Unix timestamp of the event.
    """

    type: ClassVar[EventType] = EventType.ACTION

    step_num: int
    actions: list[Action]
    error: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class PlanEvent:
    """A planner phase result.

    Attributes:
        phase: ``"initial"``, ``"reflection"`` or ``"summary"``.
        image: Screenshot the planner looked at, if any.
        reasoning: Planner reasoning or summary text.
        result: Planned instruction, or reflection decision
            (``"success"``, ``"continue"``, ``"pivot"``).
        request_id: Server request identifier for traceability.
        timestamp: Unix timestamp of the event.
    """

    type: ClassVar[EventType] = EventType.PLAN

    phase: str
    image: Image | None = None
    reasoning: str | None = None
    result: str | None = None
    request_id: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class SplitEvent:
    """A segment boundary in the event stream."""

    type: ClassVar[EventType] = EventType.SPLIT

    label: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class LogEvent:
    """A free-form log line."""

    type: ClassVar[EventType] = EventType.LOG

    message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class ImageEvent:
    """A standalone screenshot."""

    type: ClassVar[EventType] = EventType.IMAGE

    step_num: int
    image: Image
    timestamp: float = field(default_factory=time.time)


ObserverEvent = Union[
    StepEvent, ActionEvent, PlanEvent, SplitEvent, LogEvent, ImageEvent
]
