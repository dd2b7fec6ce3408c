"""Actor: one linear conversation with the Lux model for one task.

The Actor owns the message history and the step bookkeeping of a flat
task.  Each call to ``step`` turns one screenshot into one model call
and one parsed ``Step``.  Only the first turn carries the task prompt;
later turns send just the screenshot and rely on the conversation
history for context.

The history is never truncated while a task is running.  Calling
``init_task`` starts a new conversation.

Typical usage::

    actor = Actor(client, model="lux-actor-1")
    actor.init_task("Open the settings page", max_steps=20)
    step = await actor.step(screenshot_bytes)
    await executor.execute(list(step.actions))
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any

from lux_agent.config.constants import (
    DEFAULT_MAX_STEPS,
    DEFAULT_TEMPERATURE,
    MODEL_ACTOR,
    max_steps_limit,
)
from lux_agent.core.client import LuxClient
from lux_agent.core.errors import StateError
from lux_agent.core.output_parser import parse_raw_output
from lux_agent.models.actions import Step

logger = logging.getLogger(__name__)


def build_prompt(task_description: str) -> str:
    """Return the first-turn prompt for *task_description*."""
    return (
        "Please complete the following task on the computer. "
        "Reply with your reasoning between <|think_start|> and "
        "<|think_end|>, then the actions between <|action_start|> and "
        f"<|action_end|>.\n\nTask: {task_description}"
    )


class Actor:
    """Drives a single task through repeated screenshot/model cycles.

    Args:
        client: API client used for uploads and step completions.
        model: Model identifier; also selects the step ceiling.
        temperature: Default sampling temperature for every step.
    """

    def __init__(
        self,
        client: LuxClient,
        model: str = MODEL_ACTOR,
        temperature: float | None = DEFAULT_TEMPERATURE,
    ) -> None:
        self._client = client
        self.model = model
        self.temperature = temperature
        self._task_id: str | None = None
        self._task_description: str | None = None
        self._messages: list[dict[str, Any]] = []
        self._max_steps: int = DEFAULT_MAX_STEPS
        self._current_step: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def init_task(
        self,
        task_description: str,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        """Start a new task and clear the conversation.

        A *max_steps* above the model's ceiling is capped with a
        warning rather than rejected.

        Args:
            task_description: Natural-language task.
            max_steps: Step budget for the task.
        """
        limit = max_steps_limit(self.model)
        if max_steps > limit:
            logger.warning(
                "max_steps (%d) exceeds limit for model '%s'. Capping to %d.",
                max_steps,
                self.model,
                limit,
            )
            max_steps = limit

        self._task_id = str(uuid.uuid4())
        self._task_description = task_description
        self._messages = []
        self._max_steps = max_steps
        self._current_step = 0
        logger.info(
            "Task initialised: '%s' (max_steps: %d)", task_description, max_steps
        )

    async def step(
        self,
        screenshot: bytes | str,
        instruction: str | None = None,
        temperature: float | None = None,
    ) -> Step:
        """Send a screenshot and return the model's next step.

        Args:
            screenshot: Encoded image bytes (uploaded first) or the URL
                of an already-hosted image.
            instruction: Extra text appended to this turn, if any.
            temperature: Overrides the default temperature for this
                step.

        Returns:
            The parsed step, with usage attached.

        Raises:
            StateError: If no task is initialised or the step ceiling
                has been reached.
            OAGIError: Any API error, propagated unchanged.
        """
        self._validate_and_increment_step()
        logger.debug("Executing step for task: '%s'", self._task_description)

        screenshot_url = await self._ensure_screenshot_url(screenshot)
        prompt = None
        if not self._messages:
            prompt = build_prompt(self._task_description or "")
        self._add_user_message(screenshot_url, prompt, instruction)

        completion = await self._client.chat_completions(
            model=self.model,
            messages=self._messages,
            temperature=temperature if temperature is not None else self.temperature,
            task_id=self._task_id,
        )
        if completion.raw_output:
            self._messages.append(
                {
                    "role": "assistant",
                    "content": [{"type": "text", "text": completion.raw_output}],
                }
            )

        step = dataclasses.replace(
            parse_raw_output(completion.raw_output), usage=completion.usage
        )
        if step.stop:
            logger.info("Task completed.")
        else:
            logger.debug("Step completed with %d actions", len(step.actions))
        return step

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def task_id(self) -> str | None:
        """Identifier of the current task, or ``None`` before init."""
        return self._task_id

    @property
    def task_description(self) -> str | None:
        return self._task_description

    @property
    def current_step(self) -> int:
        """Number of steps taken in the current task."""
        return self._current_step

    @property
    def max_steps(self) -> int:
        """Step ceiling of the current task (after capping)."""
        return self._max_steps

    @property
    def history(self) -> list[dict[str, Any]]:
        """A copy of the conversation history."""
        return list(self._messages)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate_and_increment_step(self) -> None:
        if not self._task_description:
            raise StateError("Task description must be set. Call init_task() first.")
        if self._current_step >= self._max_steps:
            raise StateError(
                f"Max steps limit ({self._max_steps}) reached. "
                "Call init_task() to start a new task."
            )
        self._current_step += 1

    async def _ensure_screenshot_url(self, screenshot: bytes | str) -> str:
        if isinstance(screenshot, str):
            return screenshot
        upload = await self._client.put_s3_presigned_url(screenshot)
        return upload.download_url

    def _add_user_message(
        self,
        screenshot_url: str,
        prompt: str | None,
        instruction: str | None,
    ) -> None:
        content: list[dict[str, Any]] = []
        if prompt:
            content.append({"type": "text", "text": prompt})
        content.append({"type": "image_url", "image_url": {"url": screenshot_url}})
        if instruction:
            content.append({"type": "text", "text": instruction})
        self._messages.append({"role": "user", "content": content})

    def __repr__(self) -> str:
        return (
            f"Actor(model={self.model!r}, task_id={self._task_id!r}, "
            f"step={self._current_step}/{self._max_steps})"
        )
