"""Fixed identifiers and limits for the OAGI/Lux API.

Values here are protocol facts (endpoint paths, model names, hard step
ceilings) rather than tunables; tunables live in ``Settings``.
"""

from __future__ import annotations

# -- URLs & endpoints ---------------------------------------------------------
DEFAULT_BASE_URL: str = "https://api.agiopen.org"
API_KEY_HELP_URL: str = "https://developer.agiopen.org/api-keys"
API_V1_FILE_UPLOAD_ENDPOINT: str = "/v1/file/upload"
API_V1_GENERATE_ENDPOINT: str = "/v1/generate"
API_V1_CHAT_COMPLETIONS_ENDPOINT: str = "/v1/chat/completions"
API_HEALTH_ENDPOINT: str = "/health"

# -- Environment variables ----------------------------------------------------
ENV_API_KEY: str = "OAGI_API_KEY"
ENV_BASE_URL: str = "OAGI_BASE_URL"
ENV_LOG_LEVEL: str = "OAGI_LOG"

# -- Models -------------------------------------------------------------------
MODEL_ACTOR: str = "lux-actor-1"
MODEL_THINKER: str = "lux-thinker-1"

# -- Agent modes --------------------------------------------------------------
MODE_ACTOR: str = "actor"
MODE_THINKER: str = "thinker"
MODE_TASKER: str = "tasker"

# -- Step budgets -------------------------------------------------------------
DEFAULT_MAX_STEPS: int = 20
DEFAULT_MAX_STEPS_THINKER: int = 100
DEFAULT_MAX_STEPS_TASKER: int = 60

# Hard per-model ceilings enforced by the Actor.
MAX_STEPS_ACTOR: int = 30
MAX_STEPS_THINKER: int = 120

# -- Reflection ---------------------------------------------------------------
DEFAULT_REFLECTION_INTERVAL: int = 4
DEFAULT_REFLECTION_INTERVAL_TASKER: int = 20

# -- Timing -------------------------------------------------------------------
DEFAULT_STEP_DELAY: float = 0.3

# -- Sampling -----------------------------------------------------------------
DEFAULT_TEMPERATURE: float = 0.5
DEFAULT_TEMPERATURE_LOW: float = 0.1

# -- HTTP ---------------------------------------------------------------------
HTTP_CLIENT_TIMEOUT: float = 60.0
DEFAULT_MAX_RETRIES: int = 2

# -- Workers ------------------------------------------------------------------
WORKER_INITIAL_PLAN: str = "oagi_first"
WORKER_REFLECT: str = "oagi_follow"
WORKER_SUMMARY: str = "oagi_task_summary"
VALID_WORKERS: tuple[str, ...] = (
    WORKER_INITIAL_PLAN,
    WORKER_REFLECT,
    WORKER_SUMMARY,
)


def max_steps_limit(model: str) -> int:
    """Return the hard step ceiling for *model*.

    Args:
        model: Model identifier.

    Returns:
        ``MAX_STEPS_THINKER`` for the thinker model, otherwise
        ``MAX_STEPS_ACTOR``.
    """
    if model == MODEL_THINKER:
        return MAX_STEPS_THINKER
    return MAX_STEPS_ACTOR
