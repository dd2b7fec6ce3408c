"""Tasker agent: orchestrates a multi-todo workflow.

The Tasker owns the ``PlannerMemory`` of a workflow and runs its todos
one at a time, each through a fresh ``TaskeeAgent``:

1. ``prepare`` selects the first pending or in-progress todo not yet
   attempted in this run and marks it in progress.
2. The Taskee executes the todo, bracketed by ``SplitEvent`` markers.
3. The result is folded back into memory (status, summary, history)
   and the rolling task summary is rebuilt.

A todo that fails without raising stays ``in_progress`` and the loop
moves on.  A todo whose Taskee raised (for example an executor failure)
and that is still ``in_progress`` afterwards stops the whole workflow.

Typical usage::

    agent = TaskerAgent(client)
    agent.set_task("Prepare the report", ["Open the sheet", "Export a PDF"])
    ok = await agent.execute("", executor, provider)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from lux_agent.config.constants import (
    DEFAULT_MAX_STEPS_TASKER,
    DEFAULT_REFLECTION_INTERVAL,
    DEFAULT_STEP_DELAY,
    DEFAULT_TEMPERATURE,
    MODEL_ACTOR,
)
from lux_agent.core.agent import Agent, check_cancelled
from lux_agent.core.client import LuxClient
from lux_agent.core.errors import AgentInterrupted
from lux_agent.core.memory import PlannerMemory
from lux_agent.core.observer import StepObserver
from lux_agent.core.planner import Planner
from lux_agent.core.taskee_agent import TaskeeAgent
from lux_agent.models.events import SplitEvent
from lux_agent.models.task import ExecutionResult, Todo, TodoStatus
from lux_agent.platform.interface import ActionExecutor, ScreenshotProvider

logger = logging.getLogger(__name__)

# Completed history entries quoted in the rolling task summary.
_SUMMARY_HISTORY_ENTRIES: int = 3
_SUMMARY_ENTRY_CHARS: int = 100


class TaskerAgent(Agent):
    """Hierarchical agent running an ordered list of todos.

    Args:
        client: API client shared by every Taskee.
        model: Actor model identifier.
        max_steps: Step budget per todo.
        temperature: Actor sampling temperature.
        reflection_interval: Replayed actions between reflections.
        planner: Planner shared by every Taskee; built from *client* if
            omitted.
        observer: Optional event sink.
        step_delay: Seconds to wait after each step.
        cancel_event: When set, the workflow stops before the next step.
    """

    def __init__(
        self,
        client: LuxClient,
        model: str = MODEL_ACTOR,
        max_steps: int = DEFAULT_MAX_STEPS_TASKER,
        temperature: float | None = DEFAULT_TEMPERATURE,
        reflection_interval: int = DEFAULT_REFLECTION_INTERVAL,
        planner: Planner | None = None,
        observer: StepObserver | None = None,
        step_delay: float = DEFAULT_STEP_DELAY,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.max_steps = max_steps
        self.temperature = temperature
        self.reflection_interval = reflection_interval
        self.planner = planner or Planner(client)
        self.observer = observer
        self.step_delay = step_delay
        self.cancel_event = cancel_event

        self.memory = PlannerMemory()
        self.current_taskee_agent: TaskeeAgent | None = None
        self.current_todo_index: int = -1
        self._attempted: set[int] = set()

    # ------------------------------------------------------------------
    # Workflow setup
    # ------------------------------------------------------------------

    def set_task(self, task: str, todos: Sequence[str | Todo]) -> None:
        """Set the workflow task and its todos, clearing prior state."""
        self.memory.set_task(task, todos)
        logger.info("Task set with %d todos", len(todos))

    def append_todo(self, description: str) -> None:
        """Add a todo to the end of the workflow."""
        self.memory.append_todo(description)
        logger.info("Appended new todo: %s", description)

    def get_memory(self) -> PlannerMemory:
        return self.memory

    # ------------------------------------------------------------------
    # Agent interface
    # ------------------------------------------------------------------

    async def execute(
        self,
        instruction: str,
        action_executor: ActionExecutor,
        screenshot_provider: ScreenshotProvider,
    ) -> bool:
        """Run every outstanding todo in order.

        Args:
            instruction: Used as the task and its only todo when no
                todos were set beforehand; otherwise ignored.
            action_executor: Replays the model's actions.
            screenshot_provider: Supplies the current screen.

        Returns:
            ``True`` only if every attempted todo succeeded.

        Raises:
            AgentInterrupted: If the cancel event was set.
        """
        if not self.memory.todos:
            if not instruction:
                logger.warning("No todos and no instruction; nothing to do")
                return False
            self.set_task(instruction, [instruction])

        action_executor.reset()
        self._attempted = set()
        overall_success = True

        while True:
            check_cancelled(self.cancel_event)
            prepared = self.prepare()
            if prepared is None:
                logger.info("No more todos to execute")
                break

            todo, todo_index = prepared
            logger.info("Executing todo %d: %s", todo_index, todo.description)
            await self._emit_split(f"Start of todo {todo_index + 1}: {todo.description}")

            success, raised = await self.execute_todo(
                todo_index, action_executor, screenshot_provider
            )

            await self._emit_split(f"End of todo {todo_index + 1}: {todo.description}")

            if not success:
                logger.warning("Todo %d failed", todo_index)
                overall_success = False
                status = self.memory.todos[todo_index].status
                if raised and status is TodoStatus.IN_PROGRESS:
                    logger.error("Todo failed with exception, stopping execution")
                    break

            self.update_task_summary()

        logger.info(
            "Workflow complete. Status summary: %s",
            self.memory.get_todo_status_summary(),
        )
        return overall_success

    # ------------------------------------------------------------------
    # Per-todo steps
    # ------------------------------------------------------------------

    def prepare(self) -> tuple[Todo, int] | None:
        """Select the next todo and build its Taskee.

        Returns:
            ``(todo, index)``, or ``None`` when no todo is left.
        """
        todo, todo_index = self.memory.get_current_todo(skip=self._attempted)
        if todo is None:
            return None

        self._attempted.add(todo_index)
        self.current_todo_index = todo_index
        self.current_taskee_agent = TaskeeAgent(
            self.client,
            model=self.model,
            max_steps=self.max_steps,
            reflection_interval=self.reflection_interval,
            temperature=self.temperature,
            planner=self.planner,
            memory=self.memory,
            todo_index=todo_index,
            observer=self.observer,
            step_delay=self.step_delay,
            cancel_event=self.cancel_event,
        )

        if todo.status is TodoStatus.PENDING:
            self.memory.update_todo(todo_index, TodoStatus.IN_PROGRESS)

        logger.info("Prepared taskee agent for todo %d", todo_index)
        return todo, todo_index

    async def execute_todo(
        self,
        todo_index: int,
        action_executor: ActionExecutor,
        screenshot_provider: ScreenshotProvider,
    ) -> tuple[bool, bool]:
        """Run the prepared Taskee on the todo at *todo_index*.

        Returns:
            ``(success, raised)``; *raised* is ``True`` when the Taskee
            ended with an exception.

        Raises:
            AgentInterrupted: Propagated from the Taskee.
        """
        taskee = self.current_taskee_agent
        if taskee is None or not 0 <= todo_index < len(self.memory.todos):
            logger.error("No taskee agent prepared")
            return False, False

        todo = self.memory.todos[todo_index]
        try:
            success = await taskee.execute(
                todo.description, action_executor, screenshot_provider
            )
        except AgentInterrupted:
            raise
        except Exception as exc:
            logger.error("Error executing todo %d: %s", todo_index, exc)
            self.memory.update_todo(
                todo_index, TodoStatus.IN_PROGRESS, f"Execution failed: {exc}"
            )
            self.memory.add_history(
                todo_index, taskee.actions, f"Execution failed: {exc}", False
            )
            return False, True

        self.update_memory_from_execution(
            todo_index, taskee.return_execution_results(), success
        )
        return success, False

    def update_memory_from_execution(
        self,
        todo_index: int,
        results: ExecutionResult,
        success: bool,
    ) -> None:
        """Fold a Taskee result into memory."""
        status = TodoStatus.COMPLETED if success else TodoStatus.IN_PROGRESS
        self.memory.update_todo(todo_index, status, results.summary)
        self.memory.add_history(todo_index, results.actions, results.summary, success)
        logger.info(
            "Updated memory for todo %d: status=%s, actions=%d",
            todo_index,
            status.value,
            len(results.actions),
        )

    def update_task_summary(self) -> None:
        """Rebuild the rolling task summary from progress and history."""
        completed = self.memory.get_todo_status_summary()[TodoStatus.COMPLETED.value]
        parts = [f"Progress: {completed}/{len(self.memory.todos)} todos completed"]

        recent = [h for h in self.memory.history if h.completed and h.summary]
        for entry in recent[-_SUMMARY_HISTORY_ENTRIES:]:
            parts.append(
                f"- Todo {entry.todo_index}: {entry.summary[:_SUMMARY_ENTRY_CHARS]}"
            )
        self.memory.task_execution_summary = "\n".join(parts)

    async def _emit_split(self, label: str) -> None:
        if self.observer is not None:
            await self.observer.on_event(SplitEvent(label=label))
