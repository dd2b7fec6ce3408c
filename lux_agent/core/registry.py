"""Mode name -> agent factory map.

The registry is an ordinary object: build it once with
``build_default_registry()`` and pass it to whoever needs to create
agents.  Registering a mode twice is a configuration error.

Typical usage::

    registry = build_default_registry()
    agent = registry.create("thinker", client, max_steps=50)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from lux_agent.config.constants import (
    DEFAULT_MAX_STEPS,
    DEFAULT_MAX_STEPS_TASKER,
    DEFAULT_MAX_STEPS_THINKER,
    DEFAULT_REFLECTION_INTERVAL_TASKER,
    DEFAULT_STEP_DELAY,
    DEFAULT_TEMPERATURE_LOW,
    MODE_ACTOR,
    MODE_TASKER,
    MODE_THINKER,
    MODEL_ACTOR,
    MODEL_THINKER,
)
from lux_agent.core.agent import Agent, DefaultAgent
from lux_agent.core.client import LuxClient
from lux_agent.core.errors import ConfigurationError
from lux_agent.core.observer import StepObserver
from lux_agent.core.tasker_agent import TaskerAgent

logger = logging.getLogger(__name__)


# Builds an agent for one mode from a client and keyword options
# (model, max_steps, temperature, observer, step_delay, cancel_event).
# ``None`` options mean "use the mode's default".
AgentFactory = Callable[..., Agent]


class AgentRegistry:
    """Explicit map of agent modes to factories."""

    def __init__(self) -> None:
        self._factories: dict[str, AgentFactory] = {}

    def register(self, mode: str, factory: AgentFactory) -> None:
        """Register *factory* under *mode*.

        Raises:
            ConfigurationError: If *mode* is already registered.
        """
        if mode in self._factories:
            raise ConfigurationError(
                f"Agent mode '{mode}' is already registered. "
                "Cannot register the same mode twice."
            )
        self._factories[mode] = factory
        logger.debug("Registered agent mode '%s'", mode)

    def get_factory(self, mode: str) -> AgentFactory:
        """Return the factory for *mode*.

        Raises:
            ConfigurationError: If *mode* is unknown.
        """
        if mode not in self._factories:
            raise ConfigurationError(
                f"Unknown agent mode: '{mode}'. Available modes: {self.modes()}"
            )
        return self._factories[mode]

    def modes(self) -> list[str]:
        """Registered mode names, in registration order."""
        return list(self._factories)

    def create(self, mode: str, client: LuxClient, **options: Any) -> Agent:
        """Build an agent for *mode*.

        Args:
            mode: Registered mode name.
            client: API client for the agent.
            **options: Forwarded to the factory.

        Raises:
            ConfigurationError: If *mode* is unknown.
            TypeError: If the factory did not return an ``Agent``.
        """
        agent = self.get_factory(mode)(client, **options)
        if not isinstance(agent, Agent):
            raise TypeError(
                f"Factory for mode '{mode}' returned {type(agent).__name__}, "
                "which does not implement Agent."
            )
        return agent

    def __contains__(self, mode: object) -> bool:
        return mode in self._factories


# ---------------------------------------------------------------------------
# Built-in modes
# ---------------------------------------------------------------------------


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


def create_actor_agent(
    client: LuxClient,
    *,
    model: str | None = None,
    max_steps: int | None = None,
    temperature: float | None = None,
    observer: StepObserver | None = None,
    step_delay: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> Agent:
    return DefaultAgent(
        client,
        model=_pick(model, MODEL_ACTOR),
        max_steps=_pick(max_steps, DEFAULT_MAX_STEPS),
        temperature=_pick(temperature, DEFAULT_TEMPERATURE_LOW),
        step_delay=_pick(step_delay, DEFAULT_STEP_DELAY),
        observer=observer,
        cancel_event=cancel_event,
    )


def create_thinker_agent(
    client: LuxClient,
    *,
    model: str | None = None,
    max_steps: int | None = None,
    temperature: float | None = None,
    observer: StepObserver | None = None,
    step_delay: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> Agent:
    return DefaultAgent(
        client,
        model=_pick(model, MODEL_THINKER),
        max_steps=_pick(max_steps, DEFAULT_MAX_STEPS_THINKER),
        temperature=_pick(temperature, DEFAULT_TEMPERATURE_LOW),
        step_delay=_pick(step_delay, DEFAULT_STEP_DELAY),
        observer=observer,
        cancel_event=cancel_event,
    )


def create_tasker_agent(
    client: LuxClient,
    *,
    model: str | None = None,
    max_steps: int | None = None,
    temperature: float | None = None,
    observer: StepObserver | None = None,
    step_delay: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> Agent:
    return TaskerAgent(
        client,
        model=_pick(model, MODEL_ACTOR),
        max_steps=_pick(max_steps, DEFAULT_MAX_STEPS_TASKER),
        temperature=_pick(temperature, DEFAULT_TEMPERATURE_LOW),
        reflection_interval=DEFAULT_REFLECTION_INTERVAL_TASKER,
        step_delay=_pick(step_delay, DEFAULT_STEP_DELAY),
        observer=observer,
        cancel_event=cancel_event,
    )


def build_default_registry() -> AgentRegistry:
    """Return a registry with the ``actor``, ``thinker`` and ``tasker`` modes."""
    registry = AgentRegistry()
    registry.register(MODE_ACTOR, create_actor_agent)
    registry.register(MODE_THINKER, create_thinker_agent)
    registry.register(MODE_TASKER, create_tasker_agent)
    return registry
