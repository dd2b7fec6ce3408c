"""Caps lock bookkeeping for the desktop executor.

In ``session`` mode the executor never presses the real caps lock key.
A ``hotkey(capslock)`` action only flips an in-process flag, and typed
text is upper-cased while the flag is on.  The system keyboard state is
left untouched, so a crashed run cannot leave caps lock stuck on.

In ``system`` mode the real key is sent and text is typed verbatim.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

CAPSLOCK_MODES: tuple[str, ...] = ("session", "system")


class CapsLockManager:
    """Tracks a virtual caps lock flag.

    Args:
        mode: ``"session"`` or ``"system"``.

    Raises:
        ValueError: If *mode* is not recognised.
    """

    def __init__(self, mode: str = "session") -> None:
        if mode not in CAPSLOCK_MODES:
            raise ValueError(
                f"capslock_mode must be one of {CAPSLOCK_MODES}, got {mode!r}"
            )
        self.mode = mode
        self.caps_enabled = False

    def reset(self) -> None:
        """Turn the virtual flag off."""
        self.caps_enabled = False

    def toggle(self) -> None:
        """Flip the virtual flag (session mode only)."""
        if self.mode == "session":
            self.caps_enabled = not self.caps_enabled
            logger.debug("Session caps lock: %s", self.caps_enabled)

    def transform_text(self, text: str) -> str:
        """Upper-case ASCII letters while session caps lock is on."""
        if self.mode == "session" and self.caps_enabled:
            return "".join(c.upper() if c.isascii() and c.isalpha() else c for c in text)
        return text

    def should_use_system_capslock(self) -> bool:
        return self.mode == "system"
