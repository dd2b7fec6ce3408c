"""Observers that consume the agents' event stream.

Agents call ``await observer.on_event(event)`` for every step, action
replay, planning phase and todo boundary.  Observers only record; they
never influence the agent loop.

* ``AgentObserver`` keeps every event in memory and exports the run as
  Markdown, HTML or JSON.
* ``StepTracker`` keeps one row per model step for tabular display.
* ``ChainedObserver`` fans one stream out to several observers.

Typical usage::

    observer = AgentObserver()
    agent = DefaultAgent(client, observer=observer.chain(StepTracker()))
    await agent.execute("Open the calculator", executor, provider)
    observer.export("markdown", "report/run.md", images_dir="report/images")
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from lux_agent.core import exporters
from lux_agent.models.actions import Action
from lux_agent.models.events import (
    ActionEvent,
    LogEvent,
    ObserverEvent,
    SplitEvent,
    StepEvent,
)

logger = logging.getLogger(__name__)


class ExportFormat(Enum):
    """Supported export formats."""

    MARKDOWN = "markdown"
    HTML = "html"
    JSON = "json"


class StepObserver(ABC):
    """Receives agent events in emission order."""

    @abstractmethod
    async def on_event(self, event: ObserverEvent) -> None:
        """Handle one event.

        Args:
            event: The event, already timestamped.
        """

    def chain(self, *others: StepObserver) -> ChainedObserver:
        """Return an observer forwarding to ``self`` then *others*."""
        return ChainedObserver([self, *others])


class ChainedObserver(StepObserver):
    """Forwards each event to several observers, in order.

    Args:
        observers: Targets; ``None`` entries are skipped.
    """

    def __init__(self, observers: list[StepObserver | None]) -> None:
        self.observers: list[StepObserver] = [o for o in observers if o is not None]

    async def on_event(self, event: ObserverEvent) -> None:
        for observer in self.observers:
            await observer.on_event(event)


# ---------------------------------------------------------------------------
# AgentObserver
# ---------------------------------------------------------------------------


class AgentObserver(StepObserver):
    """Records every event and exports the run to a file."""

    def __init__(self) -> None:
        self.events: list[ObserverEvent] = []

    async def on_event(self, event: ObserverEvent) -> None:
        self.events.append(event)

    def add_log(self, message: str) -> None:
        """Append a free-form log event."""
        self.events.append(LogEvent(message=message))

    def add_split(self, label: str = "") -> None:
        """Append a segment boundary."""
        self.events.append(SplitEvent(label=label))

    def clear(self) -> None:
        """Forget all recorded events."""
        self.events = []

    def get_events_by_step(self, step_num: int) -> list[ObserverEvent]:
        """Return the events that carry ``step_num``."""
        return [e for e in self.events if getattr(e, "step_num", None) == step_num]

    def export(
        self,
        format: ExportFormat | str,
        path: str | Path,
        images_dir: str | Path | None = None,
    ) -> Path:
        """Write the recorded events to *path*.

        Args:
            format: ``"markdown"``, ``"html"`` or ``"json"``
                (case-insensitive) or an ``ExportFormat``.
            path: Output file; parent directories are created.
            images_dir: Markdown only: directory for screenshot files.
                When omitted, screenshots are only mentioned.

        Returns:
            The written file path.

        Raises:
            ValueError: If *format* is not supported.
        """
        fmt = format if isinstance(format, ExportFormat) else ExportFormat(str(format).lower())
        target = Path(path)
        if fmt is ExportFormat.MARKDOWN:
            exporters.export_to_markdown(self.events, target, images_dir)
        elif fmt is ExportFormat.HTML:
            exporters.export_to_html(self.events, target)
        else:
            exporters.export_to_json(self.events, target)
        logger.info("Exported %d events to %s", len(self.events), target)
        return target


# ---------------------------------------------------------------------------
# StepTracker
# ---------------------------------------------------------------------------


@dataclass
class StepRecord:
    """One row of the step table.

    Attributes:
        step_num: Step number reported by the agent.
        timestamp: Unix time the step was received.
        reasoning: Model reasoning, if any.
        actions: Actions of the step.
        status: ``"running"`` until the replay finishes, then
            ``"completed"`` or ``"error"``.
    """

    step_num: int
    timestamp: float = field(default_factory=time.time)
    reasoning: str | None = None
    actions: list[Action] = field(default_factory=list)
    status: str = "running"

    @property
    def action_count(self) -> int:
        return len(self.actions)


class StepTracker(StepObserver):
    """Tracks step progress for display."""

    def __init__(self) -> None:
        self.steps: list[StepRecord] = []

    async def on_event(self, event: ObserverEvent) -> None:
        if isinstance(event, StepEvent):
            self.steps.append(
                StepRecord(
                    step_num=event.step_num,
                    timestamp=event.timestamp,
                    reasoning=event.step.reason,
                    actions=list(event.step.actions),
                )
            )
        elif isinstance(event, ActionEvent):
            for record in reversed(self.steps):
                if record.step_num == event.step_num:
                    record.status = "error" if event.error else "completed"
                    break
