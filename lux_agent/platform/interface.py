"""Abstract capabilities the agents need from the host machine.

An agent never touches the screen, mouse or keyboard directly.  It asks
a ``ScreenshotProvider`` for the current screen and hands the model's
actions to an ``ActionExecutor``.  The factory ``create_platform()``
returns the desktop implementations of both; the desktop module is
imported lazily so ``pynput`` and ``mss`` are only needed when it is
actually used.

Model coordinates are normalised to a 0-1000 grid on both axes and are
mapped to device pixels with ``denormalize_coords``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from lux_agent.config.settings import Settings, get_default_settings
from lux_agent.models.actions import Action

# Side length of the model's normalised coordinate grid.
NORMALIZED_RANGE: int = 1000


class ActionExecutor(ABC):
    """Replays model actions on some target.

    Implementations replay each action ``action.count`` times, in
    order, before moving on to the next action.
    """

    @abstractmethod
    async def execute(self, actions: Sequence[Action]) -> None:
        """Replay *actions* sequentially.

        Args:
            actions: Actions of one model step.

        Raises:
            ExecutionError: If any action cannot be replayed.  Actions
                after the failing one are not attempted.
        """

    def reset(self) -> None:
        """Return to a clean state before a new task.

        The default does nothing; executors with per-task state
        (e.g. a tracked caps-lock flag) override it.
        """


class ScreenshotProvider(ABC):
    """Supplies the current screen on demand."""

    @abstractmethod
    async def capture(self) -> bytes | str:
        """Return the current screen.

        Returns:
            Encoded image bytes, or the URL of an already-hosted image.
        """


def denormalize_coords(
    x: float,
    y: float,
    width: int,
    height: int,
) -> tuple[int, int]:
    """Map normalised 0-1000 coordinates to device pixels.

    The result is clamped into ``[1, width - 1]`` and
    ``[1, height - 1]`` so it never lands on the screen edge, where
    some desktops trigger hot corners.

    Args:
        x: Normalised horizontal position.
        y: Normalised vertical position.
        width: Screen width in pixels.
        height: Screen height in pixels.

    Returns:
        ``(px, py)`` in device pixels.
    """
    px = int(x * width / NORMALIZED_RANGE)
    py = int(y * height / NORMALIZED_RANGE)
    px = max(1, min(px, width - 1))
    py = max(1, min(py, height - 1))
    return px, py


def create_platform(
    settings: Settings | None = None,
) -> tuple[ActionExecutor, ScreenshotProvider]:
    """Build the desktop executor and screenshot provider.

    Args:
        settings: Executor and screenshot tunables.  Defaults are used
            when omitted.

    Returns:
        ``(action_executor, screenshot_provider)``.
    """
    from lux_agent.platform.desktop import (
        DesktopActionExecutor,
        DesktopScreenshotProvider,
    )

    settings = settings or get_default_settings()
    return DesktopActionExecutor(settings), DesktopScreenshotProvider(settings)
