"""Side-effect-free executor and screenshot provider.

``RecordingActionExecutor`` stores the actions it is given instead of
touching the machine; the CLI uses it for ``--dry-run`` and tests use
it to assert what an agent replayed.  ``StaticScreenshotProvider``
cycles through a fixed list of images.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from lux_agent.core.errors import ExecutionError
from lux_agent.models.actions import Action, ActionType
from lux_agent.platform.interface import ActionExecutor, ScreenshotProvider

logger = logging.getLogger(__name__)


class RecordingActionExecutor(ActionExecutor):
    """Records replayed actions without executing them.

    Args:
        fail_on: Action type that triggers an ``ExecutionError`` when
            replayed, to simulate a broken backend.

    Attributes:
        executed: Every replayed action, repeated ``count`` times.
        batches: One list per ``execute`` call.
        reset_count: Number of ``reset`` calls.
    """

    def __init__(self, fail_on: ActionType | None = None) -> None:
        self.fail_on = fail_on
        self.executed: list[Action] = []
        self.batches: list[list[Action]] = []
        self.reset_count = 0

    async def execute(self, actions: Sequence[Action]) -> None:
        self.batches.append(list(actions))
        for action in actions:
            if action.type is self.fail_on:
                raise ExecutionError(
                    f"Simulated failure for {action.type.value}({action.argument})"
                )
            for _ in range(action.count):
                self.executed.append(action)
                logger.info("[dry-run] %s(%s)", action.type.value, action.argument)

    def reset(self) -> None:
        self.reset_count += 1


class StaticScreenshotProvider(ScreenshotProvider):
    """Returns fixed images in round-robin order.

    Args:
        images: Encoded images or hosted URLs.  Must not be empty.

    Raises:
        ValueError: If *images* is empty.
    """

    def __init__(self, images: Sequence[bytes | str]) -> None:
        if not images:
            raise ValueError("StaticScreenshotProvider needs at least one image")
        self._images = list(images)
        self.capture_count = 0

    async def capture(self) -> bytes | str:
        image = self._images[self.capture_count % len(self._images)]
        self.capture_count += 1
        return image
