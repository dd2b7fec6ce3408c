"""Tests for Lux Agent configuration and constants.

Covers default values, serialisation round-trip, immutability,
forward-compatible dict loading and the per-model step ceiling.
"""

from __future__ import annotations

from dataclasses import fields as dc_fields

import pytest

from lux_agent.config.constants import (
    MAX_STEPS_ACTOR,
    MAX_STEPS_THINKER,
    MODEL_ACTOR,
    MODEL_THINKER,
    VALID_WORKERS,
    max_steps_limit,
)
from lux_agent.config.settings import Settings, get_default_settings


class TestGetDefaultSettings:
    """Tests for the get_default_settings factory function."""

    def test_returns_settings_instance(self) -> None:
        """get_default_settings must return a Settings object."""
        assert isinstance(get_default_settings(), Settings)

    def test_base_url_default(self) -> None:
        """Default base_url is empty (resolved by the client)."""
        assert get_default_settings().base_url == ""

    def test_api_timeout_default(self) -> None:
        """Default api_timeout_seconds is 60."""
        assert get_default_settings().api_timeout_seconds == 60.0

    def test_api_max_retries_default(self) -> None:
        """Default api_max_retries is 2."""
        assert get_default_settings().api_max_retries == 2

    def test_model_default(self) -> None:
        """Default model is the actor model."""
        assert get_default_settings().model == MODEL_ACTOR

    def test_temperature_default(self) -> None:
        """Default temperature is 0.5."""
        assert get_default_settings().temperature == 0.5

    def test_max_steps_default(self) -> None:
        """Default max_steps is 20."""
        assert get_default_settings().max_steps == 20

    def test_step_delay_default(self) -> None:
        """Default step_delay_seconds is 0.3."""
        assert get_default_settings().step_delay_seconds == 0.3

    def test_reflection_interval_default(self) -> None:
        """Default reflection_interval is 4."""
        assert get_default_settings().reflection_interval == 4

    def test_capslock_mode_default(self) -> None:
        """Default capslock_mode is 'session'."""
        assert get_default_settings().capslock_mode == "session"

    def test_image_defaults(self) -> None:
        """Screenshots default to 1260x700 JPEG at quality 85."""
        s = get_default_settings()
        assert s.image_format == "JPEG"
        assert s.image_quality == 85
        assert (s.image_width, s.image_height) == (1260, 700)

    def test_scroll_amount_positive(self) -> None:
        """scroll_amount is a positive platform-dependent value."""
        assert get_default_settings().scroll_amount > 0

    def test_platform_name_default(self) -> None:
        """Default platform_name is empty (auto-detect)."""
        assert get_default_settings().platform_name == ""


class TestSettingsToDict:
    """Tests for Settings.to_dict serialisation."""

    def test_contains_all_fields(self) -> None:
        """The dict must have one key per Settings field."""
        d = get_default_settings().to_dict()
        assert set(d) == {f.name for f in dc_fields(Settings)}

    def test_values_match_attributes(self) -> None:
        """Dict values must equal the corresponding attributes."""
        s = get_default_settings()
        d = s.to_dict()
        assert d["max_steps"] == s.max_steps
        assert d["model"] == s.model
        assert d["capslock_mode"] == s.capslock_mode


class TestSettingsFromDict:
    """Tests for Settings.from_dict deserialisation."""

    def test_round_trip_with_overrides(self) -> None:
        """Custom values survive a round-trip through dict form."""
        custom = Settings(max_steps=7, model=MODEL_THINKER, platform_name="linux")
        rebuilt = Settings.from_dict(custom.to_dict())
        assert rebuilt == custom

    def test_partial_dict_fills_defaults(self) -> None:
        """A dict with only some keys produces defaults for the rest."""
        s = Settings.from_dict({"max_steps": 5})
        assert s.max_steps == 5
        assert s.reflection_interval == 4

    def test_ignores_unknown_keys(self) -> None:
        """Unknown keys in the dict are silently discarded."""
        s = Settings.from_dict({"max_steps": 9, "nonexistent_option": True})
        assert s.max_steps == 9
        assert not hasattr(s, "nonexistent_option")

    def test_empty_dict_gives_defaults(self) -> None:
        """An empty dict produces a fully-default Settings."""
        assert Settings.from_dict({}) == get_default_settings()


class TestSettingsFrozen:
    """Tests for the immutability guarantee of Settings."""

    def test_cannot_set_attribute(self) -> None:
        """Assigning to any field must raise an error."""
        s = get_default_settings()
        with pytest.raises(AttributeError):
            s.max_steps = 60  # type: ignore[misc]


class TestConstants:
    """Tests for protocol constants."""

    def test_thinker_ceiling(self) -> None:
        """The thinker model gets the larger step ceiling."""
        assert max_steps_limit(MODEL_THINKER) == MAX_STEPS_THINKER == 120

    def test_actor_ceiling(self) -> None:
        """Any other model gets the actor ceiling."""
        assert max_steps_limit(MODEL_ACTOR) == MAX_STEPS_ACTOR == 30
        assert max_steps_limit("custom-model") == MAX_STEPS_ACTOR

    def test_workers(self) -> None:
        """Exactly the three planning workers are valid."""
        assert set(VALID_WORKERS) == {"oagi_first", "oagi_follow", "oagi_task_summary"}
