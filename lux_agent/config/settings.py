"""Configuration defaults for the Lux Agent SDK.

Provides the ``Settings`` dataclass that holds every tunable parameter
for the API client, the agent loop, the desktop action executor, and
the screenshot provider.

Typical usage::

    from lux_agent.config.settings import get_default_settings

    settings = get_default_settings()
    print(settings.max_steps)
"""

from __future__ import annotations

import platform as _platform_mod
from dataclasses import asdict, dataclass, fields
from typing import Any

from lux_agent.config.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_STEPS,
    DEFAULT_REFLECTION_INTERVAL,
    DEFAULT_STEP_DELAY,
    DEFAULT_TEMPERATURE,
    HTTP_CLIENT_TIMEOUT,
    MODEL_ACTOR,
)


def _default_scroll_amount() -> int:
    """Wheel clicks per scroll action; macOS scrolls much further per click."""
    return 2 if _platform_mod.system() == "Darwin" else 5


@dataclass(frozen=True)
class Settings:
    """Immutable configuration for the whole SDK.

    Each attribute group maps to one architectural component.

    Attributes:
        base_url: API base URL.  Empty means "use ``OAGI_BASE_URL`` or
            the public endpoint".
        api_timeout_seconds: HTTP timeout for every API request.
        api_max_retries: Extra attempts after the first one for
            transient failures (5xx and transport errors).
        api_backoff_base_seconds: Base delay for exponential back-off
            between API retries.
        model: Model identifier used by the Actor.
        temperature: Default sampling temperature.
        max_steps: Default step budget for a single task.
        step_delay_seconds: Pause after each executed step so the UI
            can settle before the next capture.
        reflection_interval: Number of executed actions after which a
            Taskee pauses to reflect.
        drag_duration_seconds: Duration of a drag gesture.
        scroll_amount: Wheel clicks emitted per scroll action.
        wait_duration_seconds: Sleep used by the ``wait`` action.
        action_pause_seconds: Pause after each replayed action.
        hotkey_interval_seconds: Pause between key presses of a combo.
        capslock_mode: ``"session"`` keeps caps lock state inside the
            executor; ``"system"`` toggles the real key.
        macos_ctrl_to_cmd: Remap ``ctrl`` to ``cmd`` in hotkeys on macOS.
        image_format: ``"JPEG"`` or ``"PNG"`` for captured screenshots.
        image_quality: JPEG quality (1-100).  Ignored for PNG.
        image_width: Width screenshots are resized to.  ``0`` keeps the
            native size.
        image_height: Height screenshots are resized to.  ``0`` keeps
            the native size.
        platform_name: Explicit platform override (``linux``,
            ``windows``, ``macos``).  Left empty for auto-detection.
    """

    # -- API settings ---------------------------------------------------------
    base_url: str = ""
    api_timeout_seconds: float = HTTP_CLIENT_TIMEOUT
    api_max_retries: int = DEFAULT_MAX_RETRIES
    api_backoff_base_seconds: float = 1.0

    # -- Model ----------------------------------------------------------------
    model: str = MODEL_ACTOR
    temperature: float = DEFAULT_TEMPERATURE

    # -- Agent loop -----------------------------------------------------------
    max_steps: int = DEFAULT_MAX_STEPS
    step_delay_seconds: float = DEFAULT_STEP_DELAY
    reflection_interval: int = DEFAULT_REFLECTION_INTERVAL

    # -- Action executor ------------------------------------------------------
    drag_duration_seconds: float = 0.5
    scroll_amount: int = _default_scroll_amount()
    wait_duration_seconds: float = 1.0
    action_pause_seconds: float = 0.1
    hotkey_interval_seconds: float = 0.1
    capslock_mode: str = "session"
    macos_ctrl_to_cmd: bool = True

    # -- Screenshot -----------------------------------------------------------
    image_format: str = "JPEG"
    image_quality: int = 85
    image_width: int = 1260
    image_height: int = 700

    # -- Platform -------------------------------------------------------------
    platform_name: str = ""

    # -- Factory & serialisation ----------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create a ``Settings`` instance from a plain dictionary.

        Unknown keys are silently ignored so that forward-compatible
        config files do not break older SDK versions.

        Args:
            data: Dictionary whose keys correspond to ``Settings``
                field names.

        Returns:
            A new ``Settings`` instance populated from *data*, with
            defaults filling any missing keys.
        """
        known_names = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in known_names}
        return cls(**filtered)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the settings to a plain dictionary.

        Returns:
            A shallow dictionary mapping every field name to its
            current value.
        """
        return asdict(self)


def get_default_settings() -> Settings:
    """Return a ``Settings`` instance with all default values.

    Call ``Settings.from_dict`` when you need to overlay user overrides
    on top of the defaults.

    Returns:
        A freshly constructed ``Settings`` with default values.
    """
    return Settings()
