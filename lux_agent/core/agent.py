"""Agent interface and the flat single-task agent.

Every agent exposes the same entry point::

    success = await agent.execute(instruction, action_executor, screenshot_provider)

``DefaultAgent`` drives one ``Actor`` through repeated
screenshot -> model step -> replay cycles until the model signals
``finish`` or the step budget runs out.  The hierarchical
``TaskerAgent`` implements the same interface on top of planning and
reflection.

The loop is strictly sequential: the screenshot for step N+1 is taken
only after the actions of step N have been replayed.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from lux_agent.config.constants import (
    DEFAULT_MAX_STEPS,
    DEFAULT_STEP_DELAY,
    DEFAULT_TEMPERATURE,
    MODEL_ACTOR,
)
from lux_agent.core.actor import Actor
from lux_agent.core.client import LuxClient
from lux_agent.core.errors import AgentInterrupted
from lux_agent.core.observer import StepObserver
from lux_agent.models.events import ActionEvent, StepEvent
from lux_agent.platform.interface import ActionExecutor, ScreenshotProvider

logger = logging.getLogger(__name__)


class Agent(ABC):
    """Common contract of every agent mode."""

    @abstractmethod
    async def execute(
        self,
        instruction: str,
        action_executor: ActionExecutor,
        screenshot_provider: ScreenshotProvider,
    ) -> bool:
        """Run *instruction* to completion.

        Args:
            instruction: Natural-language task.
            action_executor: Replays the model's actions.
            screenshot_provider: Supplies the current screen.

        Returns:
            ``True`` if the task was reported complete, else ``False``.

        Raises:
            AgentInterrupted: If the cancel event was set.
        """


def check_cancelled(cancel_event: asyncio.Event | None) -> None:
    """Raise ``AgentInterrupted`` if *cancel_event* is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise AgentInterrupted("Agent execution was interrupted")


class DefaultAgent(Agent):
    """Flat agent: one Actor, one conversation, one step budget.

    Args:
        client: API client.
        model: Model identifier.
        max_steps: Step budget (capped by the Actor to the model's
            ceiling).
        temperature: Sampling temperature.
        step_delay: Seconds to wait after each replay so the UI can
            settle.
        observer: Optional event sink.
        cancel_event: When set, the loop stops before the next step.
    """

    def __init__(
        self,
        client: LuxClient,
        model: str = MODEL_ACTOR,
        max_steps: int = DEFAULT_MAX_STEPS,
        temperature: float | None = DEFAULT_TEMPERATURE,
        step_delay: float = DEFAULT_STEP_DELAY,
        observer: StepObserver | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.max_steps = max_steps
        self.temperature = temperature
        self.step_delay = step_delay
        self.observer = observer
        self.cancel_event = cancel_event

    async def execute(
        self,
        instruction: str,
        action_executor: ActionExecutor,
        screenshot_provider: ScreenshotProvider,
    ) -> bool:
        actor = Actor(self.client, model=self.model, temperature=self.temperature)
        actor.init_task(instruction, max_steps=self.max_steps)
        action_executor.reset()

        logger.info("Starting task: '%s'", instruction)
        for step_num in range(1, actor.max_steps + 1):
            check_cancelled(self.cancel_event)
            logger.debug("Step %d/%d", step_num, actor.max_steps)

            screenshot = await screenshot_provider.capture()
            step = await actor.step(screenshot)

            if step.reason:
                logger.info("Step %d: %s", step_num, step.reason)
            if self.observer is not None:
                await self.observer.on_event(
                    StepEvent(
                        step_num=step_num,
                        image=screenshot,
                        step=step,
                        task_id=actor.task_id,
                    )
                )

            if step.actions:
                logger.info("Actions (%d):", len(step.actions))
                for action in step.actions:
                    suffix = f" x{action.count}" if action.count > 1 else ""
                    logger.info("  [%s] %s%s", action.type.value, action.argument, suffix)

                error: str | None = None
                try:
                    await action_executor.execute(list(step.actions))
                except Exception as exc:
                    error = str(exc)
                    raise
                finally:
                    if self.observer is not None:
                        await self.observer.on_event(
                            ActionEvent(
                                step_num=step_num,
                                actions=list(step.actions),
                                error=error,
                            )
                        )

            if step.stop:
                logger.info("Task completed successfully after %d steps", step_num)
                return True

            if self.step_delay > 0:
                await asyncio.sleep(self.step_delay)

        logger.warning("Task reached max steps (%d) without completion", actor.max_steps)
        return False
