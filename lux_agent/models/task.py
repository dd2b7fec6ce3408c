"""Workflow models shared by the Tasker, Taskee, Planner and memory.

A workflow is one task description broken into an ordered list of
``Todo`` items.  Each attempt at a todo produces a log of
``TaskerAction`` entries which is folded into a ``TodoHistory`` once the
attempt ends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TodoStatus(Enum):
    """Lifecycle status of a todo.

    Attributes:
        PENDING: Not attempted yet.
        IN_PROGRESS: Selected for execution, or attempted without
            success.
        COMPLETED: Finished successfully.
        SKIPPED: Deliberately not executed.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass
class Todo:
    """One unit of work within a workflow."""

    description: str
    status: TodoStatus = TodoStatus.PENDING


def _utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@dataclass
class TaskerAction:
    """A logged execution event inside one Taskee run.

    Attributes:
        action_type: An ``ActionType`` value (``"click"``, ...) or one of
            ``"plan"``, ``"reflect"``, ``"summary"``, ``"error"``.
        target: Action argument or phase label.
        reasoning: Model or planner reasoning attached to the entry.
        result: Outcome label (e.g. the planned instruction or the
            reflection decision).
        screenshot_uuid: Hosted screenshot the entry refers to.
        details: Free-form extra data.
        timestamp: ISO-8601 UTC creation time.
    """

    action_type: str
    target: str | None = None
    reasoning: str | None = None
    result: str | None = None
    screenshot_uuid: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now_iso)


@dataclass
class TodoHistory:
    """Record of one finished todo attempt."""

    todo_index: int
    todo: str
    actions: list[TaskerAction] = field(default_factory=list)
    summary: str | None = None
    completed: bool = False


@dataclass
class PlannerOutput:
    """Parsed reply of the initial-plan worker.

    Attributes:
        instruction: Instruction the Actor should follow.
        reasoning: Planner reasoning.
        subtodos: Optional finer-grained breakdown.
    """

    instruction: str
    reasoning: str = ""
    subtodos: list[str] = field(default_factory=list)


@dataclass
class ReflectionOutput:
    """Parsed reply of the reflection worker.

    Attributes:
        continue_current: Keep following the current instruction.
        new_instruction: Instruction to pivot to, if any.
        reasoning: Reflection text.
        success_assessment: The worker judged the todo done.
    """

    continue_current: bool
    new_instruction: str | None = None
    reasoning: str = ""
    success_assessment: bool = False


@dataclass
class ExecutionResult:
    """What a Taskee run hands back to its parent."""

    success: bool
    actions: list[TaskerAction] = field(default_factory=list)
    summary: str = ""
    total_steps: int = 0
    error: str | None = None
