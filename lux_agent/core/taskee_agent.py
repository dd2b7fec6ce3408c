"""Taskee agent: executes exactly one todo with planning and reflection.

Lifecycle of one ``execute`` call::

    Planning(initial) -> Executing <-> Reflecting -> Summarizing -> done

1. **Planning**: the Planner turns the todo into an instruction for
   the Actor.
2. **Executing**: screenshot -> Actor step -> replay, until the model
   reports ``finish``, the step budget runs out, or
   ``reflection_interval`` actions have been replayed since the last
   reflection.
3. **Reflecting**: the Planner reviews the recent actions and decides
   to stop (todo done), pivot to a new instruction (the Actor is
   re-initialised) or continue.
4. **Summarizing**: runs exactly once before returning, whatever the
   outcome.

Every phase is logged as a ``TaskerAction`` entry which the parent
Tasker folds into the shared ``PlannerMemory``.

Error handling:

- Remote errors while uploading or stepping are logged as ``error``
  entries and end the executing phase; the summary still runs.
- ``ExecutionError`` from the action executor is logged and re-raised,
  aborting the todo.
- ``AgentInterrupted`` propagates.
- Any other error is logged and ``execute`` returns ``False``.
"""

from __future__ import annotations

import asyncio
import logging

from lux_agent.config.constants import (
    DEFAULT_MAX_STEPS,
    DEFAULT_REFLECTION_INTERVAL,
    DEFAULT_STEP_DELAY,
    DEFAULT_TEMPERATURE,
    MODEL_ACTOR,
)
from lux_agent.core.actor import Actor
from lux_agent.core.agent import Agent, check_cancelled
from lux_agent.core.client import LuxClient, extract_uuid_from_url
from lux_agent.core.errors import AgentInterrupted, ExecutionError, OAGIError
from lux_agent.core.memory import PlannerMemory
from lux_agent.core.observer import StepObserver
from lux_agent.core.planner import Planner
from lux_agent.models.events import ActionEvent, PlanEvent, StepEvent
from lux_agent.models.task import ExecutionResult, TaskerAction
from lux_agent.platform.interface import ActionExecutor, ScreenshotProvider

logger = logging.getLogger(__name__)


class TaskeeAgent(Agent):
    """Runs one todo through plan, execute, reflect and summarise.

    Args:
        client: API client shared with the Planner and Actor.
        model: Actor model identifier.
        max_steps: Total step budget for the todo.
        reflection_interval: Replayed actions between reflections.
        temperature: Actor sampling temperature.
        planner: Planner to use; one is built from *client* if omitted.
        memory: Shared workflow memory (read-only here).
        todo_index: Index of this todo in *memory*.
        observer: Optional event sink.
        step_delay: Seconds to wait after each step.
        cancel_event: When set, the loop stops before the next step.
    """

    def __init__(
        self,
        client: LuxClient,
        model: str = MODEL_ACTOR,
        max_steps: int = DEFAULT_MAX_STEPS,
        reflection_interval: int = DEFAULT_REFLECTION_INTERVAL,
        temperature: float | None = DEFAULT_TEMPERATURE,
        planner: Planner | None = None,
        memory: PlannerMemory | None = None,
        todo_index: int | None = None,
        observer: StepObserver | None = None,
        step_delay: float = DEFAULT_STEP_DELAY,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.max_steps = max_steps
        self.reflection_interval = reflection_interval
        self.temperature = temperature
        self.planner = planner or Planner(client)
        self.memory = memory
        self.todo_index = todo_index
        self.observer = observer
        self.step_delay = step_delay
        self.cancel_event = cancel_event

        self.actor: Actor | None = None
        self.current_todo: str = ""
        self.current_instruction: str = ""
        self.actions: list[TaskerAction] = []
        self.total_actions: int = 0
        self.since_reflection: int = 0
        self.step_count: int = 0
        self.success: bool = False
        self._halted: bool = False

    # ------------------------------------------------------------------
    # Agent interface
    # ------------------------------------------------------------------

    async def execute(
        self,
        instruction: str,
        action_executor: ActionExecutor,
        screenshot_provider: ScreenshotProvider,
    ) -> bool:
        action_executor.reset()

        self.current_todo = instruction
        self.current_instruction = ""
        self.actions = []
        self.total_actions = 0
        self.since_reflection = 0
        self.step_count = 0
        self.success = False
        self._halted = False

        try:
            self.actor = Actor(self.client, model=self.model, temperature=self.temperature)
            await self._initial_plan(screenshot_provider)
            self.actor.init_task(self.current_instruction, max_steps=self.max_steps)

            remaining_steps = self.max_steps
            while remaining_steps > 0 and not self.success and not self._halted:
                steps_taken = await self._execute_subtask(
                    min(self.max_steps, remaining_steps),
                    action_executor,
                    screenshot_provider,
                )
                remaining_steps -= steps_taken

                if self.success or self._halted or remaining_steps <= 0:
                    break
                if not await self._reflect_and_decide(screenshot_provider):
                    break

            if not self.success and remaining_steps <= 0:
                logger.warning(
                    "Todo reached max steps (%d) without completion", self.max_steps
                )

            await self._generate_summary()
            return self.success

        except (AgentInterrupted, ExecutionError) as exc:
            logger.error("Todo execution aborted: %s", exc)
            self._record_action("error", None, str(exc))
            raise
        except Exception as exc:
            logger.error("Error executing todo: %s", exc)
            self._record_action("error", None, str(exc))
            return False

    def return_execution_results(self) -> ExecutionResult:
        """Return the outcome of the last ``execute`` call.

        ``total_steps`` counts replayed actions.  ``summary`` is the
        reasoning of the last ``summary`` entry.
        """
        summary = ""
        for action in reversed(self.actions):
            if action.action_type == "summary":
                summary = action.reasoning or ""
                break
        error = None
        for action in reversed(self.actions):
            if action.action_type == "error":
                error = action.reasoning
                break
        return ExecutionResult(
            success=self.success,
            actions=list(self.actions),
            summary=summary,
            total_steps=self.total_actions,
            error=error,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _initial_plan(self, screenshot_provider: ScreenshotProvider) -> None:
        logger.info("Generating initial plan for todo")
        screenshot = await screenshot_provider.capture()

        plan, request_id = await self.planner.initial_plan(
            self.current_todo,
            self._get_context(),
            screenshot,
            memory=self.memory,
            todo_index=self.todo_index,
        )
        self._record_action("plan", "initial", plan.reasoning, plan.instruction)
        await self._emit(
            PlanEvent(
                phase="initial",
                image=screenshot,
                reasoning=plan.reasoning,
                result=plan.instruction,
                request_id=request_id,
            )
        )

        if plan.instruction:
            self.current_instruction = plan.instruction
        else:
            logger.warning("Planner returned no instruction; using the todo itself")
            self.current_instruction = self.current_todo
        logger.info("Initial instruction: %s", self.current_instruction)

    async def _execute_subtask(
        self,
        max_steps: int,
        action_executor: ActionExecutor,
        screenshot_provider: ScreenshotProvider,
    ) -> int:
        """Run up to *max_steps* steps with the current instruction.

        Returns:
            The number of model steps taken.
        """
        logger.info("Executing subtask with max %d steps", max_steps)
        if self.actor is None:
            return 0

        steps_taken = 0
        for _ in range(max_steps):
            check_cancelled(self.cancel_event)
            screenshot = await screenshot_provider.capture()

            try:
                screenshot_url, screenshot_uuid = await self._resolve_screenshot(screenshot)
            except OAGIError as exc:
                logger.error("Error uploading screenshot: %s", exc)
                self._record_action("error", "screenshot_upload", str(exc))
                self._halted = True
                break

            try:
                step = await self.actor.step(screenshot_url, temperature=self.temperature)
            except OAGIError as exc:
                logger.error("Error getting step from model: %s", exc)
                self._record_action(
                    "error", "model_step", str(exc), screenshot_uuid=screenshot_uuid
                )
                self._halted = True
                break

            self.step_count += 1
            step_num = self.step_count
            if step.reason:
                logger.info("Step %d: %s", step_num, step.reason)
            await self._emit(
                StepEvent(
                    step_num=step_num,
                    image=screenshot,
                    step=step,
                    task_id=self.actor.task_id,
                )
            )

            if step.actions:
                logger.info("Actions (%d):", len(step.actions))
                for action in step.actions:
                    suffix = f" x{action.count}" if action.count > 1 else ""
                    logger.info("  [%s] %s%s", action.type.value, action.argument, suffix)
                    self._record_action(
                        action.type.value,
                        action.argument,
                        step.reason,
                        screenshot_uuid=screenshot_uuid,
                    )

                error: str | None = None
                try:
                    await action_executor.execute(list(step.actions))
                except Exception as exc:
                    error = str(exc)
                    raise
                finally:
                    await self._emit(
                        ActionEvent(
                            step_num=step_num,
                            actions=list(step.actions),
                            error=error,
                        )
                    )

                self.total_actions += len(step.actions)
                self.since_reflection += len(step.actions)

            if self.step_delay > 0:
                await asyncio.sleep(self.step_delay)

            steps_taken += 1

            if step.stop:
                logger.info("Model signalled todo completion")
                self.success = True
                break

            if self.since_reflection >= self.reflection_interval:
                logger.info("Reflection interval reached")
                break

        return steps_taken

    async def _reflect_and_decide(self, screenshot_provider: ScreenshotProvider) -> bool:
        """Ask the Planner how to proceed.

        Returns:
            ``True`` to keep executing, ``False`` to stop (either
            because the todo is done or the Planner gave up).
        """
        logger.info("Reflecting on progress")
        check_cancelled(self.cancel_event)
        screenshot = await screenshot_provider.capture()

        context = self._get_context()
        context["current_todo"] = self.current_todo
        recent = self.actions[-self.since_reflection:] if self.since_reflection > 0 else []

        reflection, request_id = await self.planner.reflect(
            recent,
            context,
            screenshot,
            memory=self.memory,
            todo_index=self.todo_index,
            current_instruction=self.current_instruction,
            reflection_interval=self.reflection_interval,
        )

        if reflection.success_assessment:
            decision = "success"
        elif reflection.continue_current:
            decision = "continue"
        else:
            decision = "pivot"
        self._record_action(
            "reflect",
            None,
            reflection.reasoning,
            "continue" if reflection.continue_current else "pivot",
        )
        await self._emit(
            PlanEvent(
                phase="reflection",
                image=screenshot,
                reasoning=reflection.reasoning,
                result=decision,
                request_id=request_id,
            )
        )

        if reflection.success_assessment:
            self.success = True
            logger.info("Reflection indicates todo is complete")
            return False

        self.since_reflection = 0

        if not reflection.continue_current and reflection.new_instruction:
            logger.info("Pivoting to new instruction: %s", reflection.new_instruction)
            self.current_instruction = reflection.new_instruction
            if self.actor is not None:
                self.actor.init_task(self.current_instruction, max_steps=self.max_steps)
            return True

        return reflection.continue_current

    async def _generate_summary(self) -> None:
        logger.info("Generating execution summary")
        context = self._get_context()
        context["current_todo"] = self.current_todo

        summary, request_id = await self.planner.summarize(
            self.actions,
            context,
            memory=self.memory,
            todo_index=self.todo_index,
        )
        self._record_action("summary", None, summary)
        await self._emit(
            PlanEvent(phase="summary", reasoning=summary, request_id=request_id)
        )
        logger.info("Execution summary: %s", summary)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_screenshot(self, screenshot: bytes | str) -> tuple[str, str | None]:
        """Return ``(url, uuid)`` for *screenshot*, uploading bytes."""
        if isinstance(screenshot, str):
            return screenshot, extract_uuid_from_url(screenshot)
        upload = await self.client.put_s3_presigned_url(screenshot)
        return upload.download_url, upload.uuid

    def _record_action(
        self,
        action_type: str,
        target: str | None,
        reasoning: str | None = None,
        result: str | None = None,
        screenshot_uuid: str | None = None,
    ) -> None:
        self.actions.append(
            TaskerAction(
                action_type=action_type,
                target=target,
                reasoning=reasoning,
                result=result,
                screenshot_uuid=screenshot_uuid,
            )
        )

    def _get_context(self) -> dict:
        if self.memory is not None:
            return self.memory.get_context()
        return {}

    async def _emit(self, event) -> None:
        if self.observer is not None:
            await self.observer.on_event(event)
