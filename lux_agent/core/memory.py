"""Shared state of a multi-todo workflow.

``PlannerMemory`` holds the task description, the ordered todo list,
the append-only execution history and the running summaries.  The
Tasker agent is its only writer; the Planner reads it to build worker
payloads.

Todo order is execution priority: ``get_current_todo`` always returns
the first todo that is still pending or in progress.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from lux_agent.models.task import TaskerAction, Todo, TodoHistory, TodoStatus

logger = logging.getLogger(__name__)


class PlannerMemory:
    """Mutable workflow state.

    Attributes:
        task_description: Overall workflow task.
        todos: Ordered todo list.
        history: One entry per finished todo attempt.
        task_execution_summary: Rolling free-text summary, rewritten
            after every todo.
        todo_execution_summaries: Latest summary per todo index.
    """

    def __init__(self) -> None:
        self.task_description: str = ""
        self.todos: list[Todo] = []
        self.history: list[TodoHistory] = []
        self.task_execution_summary: str = ""
        self.todo_execution_summaries: dict[int, str] = {}

    # -- Writers --------------------------------------------------------------

    def set_task(
        self,
        task_description: str,
        todos: Sequence[str | Todo],
    ) -> None:
        """Replace the task and its todo list and clear all history.

        Args:
            task_description: Overall workflow task.
            todos: Descriptions (created ``pending``) or ``Todo`` items.
        """
        self.task_description = task_description
        self.todos = [
            t if isinstance(t, Todo) else Todo(description=t) for t in todos
        ]
        self.history = []
        self.task_execution_summary = ""
        self.todo_execution_summaries = {}

    def update_todo(
        self,
        index: int,
        status: TodoStatus,
        summary: str | None = None,
    ) -> None:
        """Set the status (and optionally the summary) of a todo.

        Out-of-range indices are ignored.
        """
        if not 0 <= index < len(self.todos):
            logger.warning("update_todo: index %d out of range", index)
            return
        self.todos[index].status = status
        if summary:
            self.todo_execution_summaries[index] = summary

    def add_history(
        self,
        todo_index: int,
        actions: Iterable[TaskerAction],
        summary: str | None = None,
        completed: bool = False,
    ) -> None:
        """Append a history entry for a finished attempt.

        Out-of-range indices are ignored so every stored entry refers
        to an existing todo.
        """
        if not 0 <= todo_index < len(self.todos):
            logger.warning("add_history: index %d out of range", todo_index)
            return
        self.history.append(
            TodoHistory(
                todo_index=todo_index,
                todo=self.todos[todo_index].description,
                actions=list(actions),
                summary=summary,
                completed=completed,
            )
        )

    def append_todo(self, description: str) -> None:
        """Add a new pending todo at the end of the list."""
        self.todos.append(Todo(description=description))

    # -- Readers --------------------------------------------------------------

    def get_current_todo(
        self, skip: Iterable[int] = ()
    ) -> tuple[Todo | None, int]:
        """Return the first pending or in-progress todo.

        Args:
            skip: Indices to pass over (e.g. todos already attempted in
                the current run).

        Returns:
            ``(todo, index)``, or ``(None, -1)`` when nothing is left.
        """
        skipped = set(skip)
        for index, todo in enumerate(self.todos):
            if index in skipped:
                continue
            if todo.status in (TodoStatus.PENDING, TodoStatus.IN_PROGRESS):
                return todo, index
        return None, -1

    def get_context(self) -> dict[str, Any]:
        """Return a plain-data snapshot for planning and reflection."""
        return {
            "task_description": self.task_description,
            "todos": [
                {"index": i, "description": t.description, "status": t.status.value}
                for i, t in enumerate(self.todos)
            ],
            "history": [
                {
                    "todo_index": h.todo_index,
                    "todo": h.todo,
                    "action_count": len(h.actions),
                    "summary": h.summary,
                    "completed": h.completed,
                }
                for h in self.history
            ],
            "task_execution_summary": self.task_execution_summary,
            "todo_execution_summaries": dict(self.todo_execution_summaries),
        }

    def get_todo_status_summary(self) -> dict[str, int]:
        """Count todos per status value."""
        summary = {status.value: 0 for status in TodoStatus}
        for todo in self.todos:
            summary[todo.status.value] += 1
        return summary

    def __repr__(self) -> str:
        return (
            f"PlannerMemory(todos={len(self.todos)}, "
            f"history={len(self.history)})"
        )
