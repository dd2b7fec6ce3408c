"""Desktop implementations of the executor and screenshot provider.

Uses:
- ``pynput`` for input injection (mouse clicks, drags, scrolling,
  keyboard typing and hotkeys).
- ``mss`` for fast screen capture and for the screen size used to
  denormalise model coordinates.
- ``numpy`` + ``cv2`` to turn the raw capture into a resized, encoded
  image for upload.

Both classes do their blocking work in a worker thread
(``asyncio.to_thread``) so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import logging
import platform as _platform_mod
import time
from collections.abc import Callable, Sequence

import cv2
import mss
import numpy as np
from numpy.typing import NDArray
from pynput.keyboard import Controller as KbdController
from pynput.keyboard import Key
from pynput.mouse import Button
from pynput.mouse import Controller as MouseController

from lux_agent.config.settings import Settings, get_default_settings
from lux_agent.core.errors import ExecutionError
from lux_agent.models.actions import (
    Action,
    ActionType,
    parse_coords,
    parse_drag_coords,
    parse_scroll,
)
from lux_agent.platform.capslock import CapsLockManager
from lux_agent.platform.interface import (
    ActionExecutor,
    ScreenshotProvider,
    denormalize_coords,
)

logger = logging.getLogger(__name__)

# Interval between the two clicks of the emulated triple click tail.
_MULTI_CLICK_GAP: float = 0.02

# Pointer updates per second during a drag.
_DRAG_STEPS_PER_SECOND: int = 60

# -- Key names -----------------------------------------------------

_KEY_ALIASES: dict[str, tuple[str, ...]] = {
    "capslock": ("caps_lock", "caps", "capslock"),
    "pgup": ("page_up", "pageup", "pgup"),
    "pgdn": ("page_down", "pagedown", "pgdn"),
}

_KEY_MAP: dict[str, Key] = {
    "alt": Key.alt,
    "option": Key.alt,
    "backspace": Key.backspace,
    "capslock": Key.caps_lock,
    "cmd": Key.cmd,
    "command": Key.cmd,
    "win": Key.cmd,
    "super": Key.cmd,
    "ctrl": Key.ctrl,
    "control": Key.ctrl,
    "delete": Key.delete,
    "del": Key.delete,
    "down": Key.down,
    "end": Key.end,
    "enter": Key.enter,
    "return": Key.enter,
    "esc": Key.esc,
    "escape": Key.esc,
    "f1": Key.f1,
    "f2": Key.f2,
    "f3": Key.f3,
    "f4": Key.f4,
    "f5": Key.f5,
    "f6": Key.f6,
    "f7": Key.f7,
    "f8": Key.f8,
    "f9": Key.f9,
    "f10": Key.f10,
    "f11": Key.f11,
    "f12": Key.f12,
    "home": Key.home,
    "left": Key.left,
    "pgdn": Key.page_down,
    "pgup": Key.page_up,
    "right": Key.right,
    "shift": Key.shift,
    "space": Key.space,
    "tab": Key.tab,
    "up": Key.up,
}


def normalize_key(name: str, ctrl_to_cmd: bool = False) -> str:
    """Canonicalise a key name from a ``hotkey`` action.

    Args:
        name: Raw key name, e.g. ``"Page_Up"`` or ``" ctrl "``.
        ctrl_to_cmd: Map ``ctrl`` to ``cmd`` (macOS shortcuts).

    Returns:
        The lower-case canonical name.
    """
    key = name.strip().lower()
    for canonical, variants in _KEY_ALIASES.items():
        if key in variants:
            return canonical
    if ctrl_to_cmd and key == "ctrl":
        return "cmd"
    return key


def _resolve_key(name: str) -> Key | str:
    """Resolve a canonical key name to a ``pynput`` key or character.

    Raises:
        ValueError: If *name* is neither a known key nor one character.
    """
    if name in _KEY_MAP:
        return _KEY_MAP[name]
    if len(name) == 1:
        return name
    raise ValueError(f"Unknown key name: {name!r}")


def _detect_platform_name() -> str:
    system = _platform_mod.system()
    if system == "Darwin":
        return "macos"
    return system.lower()


def _primary_screen_size() -> tuple[int, int]:
    with mss.mss() as sct:
        monitor = sct.monitors[1]
        return int(monitor["width"]), int(monitor["height"])


# -- DesktopActionExecutor -----------------------------------------


class DesktopActionExecutor(ActionExecutor):
    """Replays model actions with real mouse and keyboard input.

    Args:
        settings: Executor tunables (pauses, scroll amount, caps lock
            mode, macOS key remapping).
        mouse: ``pynput`` mouse controller; created when omitted.
        keyboard: ``pynput`` keyboard controller; created when omitted.
        screen_size: ``(width, height)`` used to denormalise
            coordinates; read from the primary monitor when omitted.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        mouse: MouseController | None = None,
        keyboard: KbdController | None = None,
        screen_size: tuple[int, int] | None = None,
    ) -> None:
        self._settings = settings or get_default_settings()
        self._mouse = mouse if mouse is not None else MouseController()
        self._kbd = keyboard if keyboard is not None else KbdController()
        self._screen_width, self._screen_height = screen_size or _primary_screen_size()
        self._caps = CapsLockManager(self._settings.capslock_mode)
        platform_name = self._settings.platform_name or _detect_platform_name()
        self._ctrl_to_cmd = platform_name == "macos" and self._settings.macos_ctrl_to_cmd

        self._handlers: dict[ActionType, Callable[[str], None]] = {
            ActionType.CLICK: self._click,
            ActionType.LEFT_DOUBLE: self._double_click,
            ActionType.LEFT_TRIPLE: self._triple_click,
            ActionType.RIGHT_SINGLE: self._right_click,
            ActionType.DRAG: self._drag,
            ActionType.HOTKEY: self._hotkey,
            ActionType.TYPE: self._type,
            ActionType.SCROLL: self._scroll,
            ActionType.FINISH: self._finish,
            ActionType.WAIT: self._wait,
            ActionType.CALL_USER: self._call_user,
        }
        logger.info(
            "DesktopActionExecutor initialised (screen %dx%d).",
            self._screen_width,
            self._screen_height,
        )

    @property
    def screen_size(self) -> tuple[int, int]:
        return self._screen_width, self._screen_height

    @property
    def caps(self) -> CapsLockManager:
        return self._caps

    # -- ActionExecutor --------------------------------------------

    async def execute(self, actions: Sequence[Action]) -> None:
        await asyncio.to_thread(self.execute_sync, list(actions))

    def reset(self) -> None:
        self._caps.reset()

    def execute_sync(self, actions: Sequence[Action]) -> None:
        """Replay *actions* on the calling thread.

        Raises:
            ExecutionError: On the first action that fails.
        """
        for action in actions:
            handler = self._handlers[action.type]
            for _ in range(action.count):
                try:
                    handler(action.argument)
                except ExecutionError:
                    raise
                except Exception as exc:
                    logger.error(
                        "Error executing action %s(%s): %s",
                        action.type.value,
                        action.argument,
                        exc,
                    )
                    raise ExecutionError(
                        f"Failed to execute {action.type.value}({action.argument}): {exc}"
                    ) from exc

    # -- Coordinate helpers ----------------------------------------

    def _point(self, argument: str) -> tuple[int, int]:
        coords = parse_coords(argument)
        if coords is None:
            raise ExecutionError(f"Invalid coordinates format: {argument!r}")
        return denormalize_coords(
            coords[0], coords[1], self._screen_width, self._screen_height
        )

    def _pause(self, seconds: float | None = None) -> None:
        delay = self._settings.action_pause_seconds if seconds is None else seconds
        if delay > 0:
            time.sleep(delay)

    # -- Mouse -----------------------------------------------------

    def _click(self, argument: str) -> None:
        self._mouse.position = self._point(argument)
        self._mouse.click(Button.left, 1)
        self._pause()

    def _double_click(self, argument: str) -> None:
        self._mouse.position = self._point(argument)
        self._mouse.click(Button.left, 2)
        self._pause()

    def _triple_click(self, argument: str) -> None:
        self._mouse.position = self._point(argument)
        self._mouse.click(Button.left, 2)
        time.sleep(_MULTI_CLICK_GAP)
        self._mouse.click(Button.left, 1)
        self._pause()

    def _right_click(self, argument: str) -> None:
        self._mouse.position = self._point(argument)
        self._mouse.click(Button.right, 1)
        self._pause()

    def _drag(self, argument: str) -> None:
        coords = parse_drag_coords(argument)
        if coords is None:
            raise ExecutionError(f"Invalid drag coordinates format: {argument!r}")
        x1, y1 = denormalize_coords(
            coords[0], coords[1], self._screen_width, self._screen_height
        )
        x2, y2 = denormalize_coords(
            coords[2], coords[3], self._screen_width, self._screen_height
        )
        duration = self._settings.drag_duration_seconds
        steps = max(1, int(duration * _DRAG_STEPS_PER_SECOND))

        self._mouse.position = (x1, y1)
        self._mouse.press(Button.left)
        try:
            for i in range(1, steps + 1):
                self._mouse.position = (
                    round(x1 + (x2 - x1) * i / steps),
                    round(y1 + (y2 - y1) * i / steps),
                )
                if duration > 0:
                    time.sleep(duration / steps)
        finally:
            self._mouse.release(Button.left)
        self._pause()

    def _scroll(self, argument: str) -> None:
        parsed = parse_scroll(argument)
        if parsed is None:
            raise ExecutionError(f"Invalid scroll format: {argument!r}")
        x, y = denormalize_coords(
            parsed[0], parsed[1], self._screen_width, self._screen_height
        )
        direction = parsed[2]
        amount = self._settings.scroll_amount
        self._mouse.position = (x, y)
        if direction == "up":
            self._mouse.scroll(0, amount)
        elif direction == "down":
            self._mouse.scroll(0, -amount)
        elif direction == "left":
            self._mouse.scroll(-amount, 0)
        elif direction == "right":
            self._mouse.scroll(amount, 0)
        else:
            raise ExecutionError(f"Invalid scroll direction: {direction!r}")
        self._pause()

    # -- Keyboard --------------------------------------------------

    def _hotkey(self, argument: str) -> None:
        names = [
            normalize_key(part, self._ctrl_to_cmd)
            for part in argument.strip().strip("()").split("+")
        ]
        if names == ["capslock"] and not self._caps.should_use_system_capslock():
            self._caps.toggle()
            self._pause()
            return

        resolved = [_resolve_key(name) for name in names]
        modifiers = resolved[:-1]
        final = resolved[-1]
        for mod in modifiers:
            self._kbd.press(mod)
            self._pause(self._settings.hotkey_interval_seconds)
        try:
            self._kbd.press(final)
            self._kbd.release(final)
        finally:
            for mod in reversed(modifiers):
                self._kbd.release(mod)
        self._pause()

    def _type(self, argument: str) -> None:
        text = argument.strip()
        for quote in ('"', "'"):
            if len(text) >= 2 and text.startswith(quote) and text.endswith(quote):
                text = text[1:-1]
                break
        self._kbd.type(self._caps.transform_text(text))
        self._pause()

    # -- Control ---------------------------------------------------

    def _finish(self, argument: str) -> None:
        self.reset()

    def _wait(self, argument: str) -> None:
        self._pause(self._settings.wait_duration_seconds)

    def _call_user(self, argument: str) -> None:
        logger.info("User intervention requested: %s", argument or "(no message)")


# -- DesktopScreenshotProvider -------------------------------------


def encode_frame(frame: NDArray[np.uint8], settings: Settings) -> bytes:
    """Resize and encode a BGR frame for upload.

    Args:
        frame: Image of shape ``(H, W, 3)`` in BGR order.
        settings: Supplies target size, format and JPEG quality.

    Returns:
        Encoded image bytes.

    Raises:
        RuntimeError: If OpenCV fails to encode the frame.
    """
    if settings.image_width > 0 and settings.image_height > 0:
        frame = cv2.resize(
            frame,
            (settings.image_width, settings.image_height),
            interpolation=cv2.INTER_AREA,
        )

    if settings.image_format.upper() == "PNG":
        success, buffer = cv2.imencode(".png", frame)
    else:
        success, buffer = cv2.imencode(
            ".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, int(settings.image_quality)]
        )
    if not success:
        raise RuntimeError(
            f"cv2.imencode failed to encode frame as {settings.image_format}"
        )
    return buffer.tobytes()


class DesktopScreenshotProvider(ScreenshotProvider):
    """Captures the primary monitor with ``mss``.

    Args:
        settings: Screenshot size, format and quality.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_default_settings()

    async def capture(self) -> bytes:
        return await asyncio.to_thread(self.capture_sync)

    def capture_sync(self) -> bytes:
        """Grab and encode one screenshot on the calling thread."""
        with mss.mss() as sct:
            shot = sct.grab(sct.monitors[1])
            # mss returns BGRA; drop alpha channel for BGR
            frame: NDArray[np.uint8] = np.ascontiguousarray(
                np.array(shot, dtype=np.uint8)[:, :, :3]
            )
        return encode_frame(frame, self._settings)
