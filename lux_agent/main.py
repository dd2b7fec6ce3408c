"""Lux Agent command-line entry point.

Wires the API client, the agent registry, the desktop backend and the
observers together and runs one instruction end to end.

Typical usage::

    python -m lux_agent.main run "Open the calculator and compute 2+2"
    python -m lux_agent.main run "Prepare the report" --mode tasker \\
        --todo "Open the sheet" --todo "Export a PDF" --export html
    python -m lux_agent.main check
    python -m lux_agent.main config

Programmatic usage::

    from lux_agent.main import run_agent

    outcome = asyncio.run(run_agent(agent, "Open settings", executor, provider))
    print(outcome.exit_code)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from lux_agent.config.constants import ENV_API_KEY, ENV_BASE_URL, ENV_LOG_LEVEL
from lux_agent.config.settings import Settings
from lux_agent.core.agent import Agent
from lux_agent.core.client import LuxClient
from lux_agent.core.errors import AgentInterrupted, OAGIError
from lux_agent.core.observer import AgentObserver, ExportFormat, StepRecord, StepTracker
from lux_agent.core.registry import build_default_registry
from lux_agent.core.tasker_agent import TaskerAgent
from lux_agent.platform.interface import (
    ActionExecutor,
    ScreenshotProvider,
    create_platform,
)
from lux_agent.platform.recording import (
    RecordingActionExecutor,
    StaticScreenshotProvider,
)

logger = logging.getLogger(__name__)

_LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_EXPORT_SUFFIXES: dict[ExportFormat, str] = {
    ExportFormat.MARKDOWN: ".md",
    ExportFormat.HTML: ".html",
    ExportFormat.JSON: ".json",
}


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class RunOutcome(Enum):
    """How a run ended.

    Attributes:
        SUCCESS: The agent reported the task complete.
        FAILED: The agent gave up or ran out of steps.
        INTERRUPTED: The user interrupted the run (Ctrl+C).
        TIMED_OUT: The ``--timeout`` wall clock expired.
    """

    SUCCESS = "success"
    FAILED = "failed"
    INTERRUPTED = "interrupted"
    TIMED_OUT = "timed_out"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES: dict[RunOutcome, int] = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.FAILED: 1,
    RunOutcome.INTERRUPTED: 130,
    RunOutcome.TIMED_OUT: 124,
}


@dataclass
class RunResult:
    """Summary of one CLI run.

    Attributes:
        instruction: The instruction that was run.
        mode: Agent mode name.
        outcome: How the run ended.
        duration_s: Wall-clock duration in seconds.
        steps: Per-step rows collected by the ``StepTracker``.
        export_path: Written report, if any.
        error: Error text for runs that ended with an exception.
    """

    instruction: str
    mode: str
    outcome: RunOutcome
    duration_s: float
    steps: list[StepRecord] = field(default_factory=list)
    export_path: Path | None = None
    error: str = ""


async def run_agent(
    agent: Agent,
    instruction: str,
    action_executor: ActionExecutor,
    screenshot_provider: ScreenshotProvider,
    timeout: float | None = None,
) -> RunOutcome:
    """Run *agent* and classify how it ended.

    Args:
        agent: Agent to run.
        instruction: Task instruction.
        action_executor: Replays the model's actions.
        screenshot_provider: Supplies the current screen.
        timeout: Wall-clock limit in seconds; ``None`` for no limit.

    Returns:
        The run outcome.
    """
    try:
        coro = agent.execute(instruction, action_executor, screenshot_provider)
        if timeout:
            success = await asyncio.wait_for(coro, timeout=timeout)
        else:
            success = await coro
    except AgentInterrupted:
        logger.warning("Run interrupted")
        return RunOutcome.INTERRUPTED
    except asyncio.TimeoutError:
        logger.warning("Run timed out after %.1f s", timeout)
        return RunOutcome.TIMED_OUT
    return RunOutcome.SUCCESS if success else RunOutcome.FAILED


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog="lux-agent",
        description="Lux Agent -- drive the desktop with the Lux computer-use models.",
    )
    parser.add_argument(
        "--api-key",
        "-k",
        default="",
        help=f"API key. Falls back to the {ENV_API_KEY} environment variable.",
    )
    parser.add_argument(
        "--base-url",
        default="",
        help=f"API base URL. Falls back to {ENV_BASE_URL}, then the public endpoint.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help=f"Enable debug logging (overrides {ENV_LOG_LEVEL}).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run an instruction on this machine.")
    run.add_argument("instruction", help="Natural-language task.")
    run.add_argument(
        "--mode",
        "-m",
        default="actor",
        help="Agent mode: actor, thinker or tasker (default: actor).",
    )
    run.add_argument("--model", default=None, help="Override the mode's model.")
    run.add_argument("--max-steps", type=int, default=None, help="Step budget.")
    run.add_argument("--temperature", type=float, default=None, help="Sampling temperature.")
    run.add_argument(
        "--step-delay",
        type=float,
        default=None,
        help="Seconds to wait after each step.",
    )
    run.add_argument(
        "--todo",
        action="append",
        default=[],
        help="Todo for tasker mode (repeatable).",
    )
    run.add_argument(
        "--export",
        choices=[f.value for f in ExportFormat],
        default=None,
        help="Write a report of the run.",
    )
    run.add_argument(
        "--export-file",
        default=None,
        help="Report path (default: lux_run_<timestamp> with the format's suffix).",
    )
    run.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort the run after this many seconds.",
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        help="Record actions instead of executing them.",
    )
    run.add_argument(
        "--screenshot",
        action="append",
        default=[],
        help="Use this image file instead of capturing the screen (repeatable).",
    )

    sub.add_parser("check", help="Check that the API is reachable.")
    sub.add_parser("config", help="Print the resolved configuration.")
    return parser


def configure_logging(verbose: bool = False) -> None:
    """Configure the root logger from ``--verbose`` or ``OAGI_LOG``."""
    if verbose:
        level = logging.DEBUG
    else:
        level = _LOG_LEVELS.get(os.environ.get(ENV_LOG_LEVEL, "").strip().lower(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def mask_key(key: str) -> str:
    """Return *key* with everything but its ends hidden."""
    if not key:
        return "(not set)"
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


async def _run_command(args: argparse.Namespace, settings: Settings) -> int:
    client = LuxClient(settings, api_key=args.api_key, base_url=args.base_url)
    registry = build_default_registry()

    cancel_event = asyncio.Event()
    recorder = AgentObserver()
    tracker = StepTracker()
    agent = registry.create(
        args.mode,
        client,
        model=args.model,
        max_steps=args.max_steps,
        temperature=args.temperature,
        step_delay=args.step_delay,
        observer=recorder.chain(tracker),
        cancel_event=cancel_event,
    )
    if args.todo:
        if isinstance(agent, TaskerAgent):
            agent.set_task(args.instruction, args.todo)
        else:
            logger.warning("--todo is only used in tasker mode; ignoring")

    executor, provider = _build_backend(args, settings)

    loop = asyncio.get_running_loop()
    previous_handler = signal.signal(
        signal.SIGINT,
        lambda signum, frame: loop.call_soon_threadsafe(cancel_event.set),
    )

    logger.info("Running '%s' in %s mode", args.instruction, args.mode)
    start = time.monotonic()
    error = ""
    try:
        outcome = await run_agent(
            agent, args.instruction, executor, provider, timeout=args.timeout
        )
    except OAGIError as exc:
        logger.error("Run failed: %s", exc)
        outcome = RunOutcome.FAILED
        error = str(exc)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    result = RunResult(
        instruction=args.instruction,
        mode=args.mode,
        outcome=outcome,
        duration_s=time.monotonic() - start,
        steps=tracker.steps,
        error=error,
    )
    if args.export:
        result.export_path = recorder.export(
            args.export,
            _export_path(args.export, args.export_file),
            images_dir=_images_dir(args.export, args.export_file),
        )

    _print_step_table(result.steps)
    _print_result_summary(result)
    return outcome.exit_code


def _build_backend(
    args: argparse.Namespace, settings: Settings
) -> tuple[ActionExecutor, ScreenshotProvider]:
    if args.screenshot:
        provider: ScreenshotProvider = StaticScreenshotProvider(
            [Path(p).read_bytes() for p in args.screenshot]
        )
        executor: ActionExecutor = RecordingActionExecutor()
        if not args.dry_run:
            logger.warning("Static screenshots given; actions are recorded, not executed")
        return executor, provider

    desktop_executor, desktop_provider = create_platform(settings)
    if args.dry_run:
        return RecordingActionExecutor(), desktop_provider
    return desktop_executor, desktop_provider


def _export_path(fmt: str, export_file: str | None) -> Path:
    if export_file:
        return Path(export_file)
    stamp = time.strftime("%Y%m%d_%H%M%S")
    return Path(f"lux_run_{stamp}{_EXPORT_SUFFIXES[ExportFormat(fmt)]}")


def _images_dir(fmt: str, export_file: str | None) -> Path | None:
    if ExportFormat(fmt) is not ExportFormat.MARKDOWN:
        return None
    report = _export_path(fmt, export_file)
    return report.parent / f"{report.stem}_images"


async def _check_command(args: argparse.Namespace, settings: Settings) -> int:
    client = LuxClient(settings, api_key=args.api_key, base_url=args.base_url)
    try:
        status = await client.health_check()
    except OAGIError as exc:
        print(f"API at {client.base_url} is not reachable: {exc}")
        return 1
    print(f"API at {client.base_url} is reachable: {json.dumps(status)}")
    return 0


def _config_command(args: argparse.Namespace, settings: Settings) -> int:
    resolved = settings.to_dict()
    resolved["base_url"] = (
        args.base_url or settings.base_url or os.environ.get(ENV_BASE_URL, "") or "(default)"
    )
    resolved["api_key"] = mask_key(args.api_key or os.environ.get(ENV_API_KEY, ""))
    width = max(len(k) for k in resolved)
    for name, value in resolved.items():
        print(f"{name:<{width}}  {value}")
    return 0


def cli(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Run the CLI and return the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    settings = settings or Settings()

    try:
        if args.command == "config":
            return _config_command(args, settings)
        if args.command == "check":
            return asyncio.run(_check_command(args, settings))
        return asyncio.run(_run_command(args, settings))
    except OAGIError as exc:
        logger.error("%s", exc)
        return 1


def main() -> None:
    """Console-script entry point."""
    sys.exit(cli())


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def _print_step_table(steps: list[StepRecord]) -> None:
    """Print one row per model step."""
    if not steps:
        return
    print(f"{'Step':>4}  {'Time':<8}  {'Actions':>7}  {'Status':<9}  Reasoning")
    for record in steps:
        clock = time.strftime("%H:%M:%S", time.localtime(record.timestamp))
        reasoning = (record.reasoning or "").replace("\n", " ")
        if len(reasoning) > 60:
            reasoning = reasoning[:57] + "..."
        print(
            f"{record.step_num:>4}  {clock:<8}  {record.action_count:>7}  "
            f"{record.status:<9}  {reasoning}"
        )


def _print_result_summary(result: RunResult) -> None:
    """Print a human-readable summary of the run."""
    separator = "-" * 60
    print(separator)
    print(f"Task:     {result.instruction}")
    print(f"Mode:     {result.mode}")
    print(f"Outcome:  {result.outcome.value.upper()}")
    print(f"Steps:    {len(result.steps)}")
    print(f"Duration: {result.duration_s:.1f} s")
    if result.export_path is not None:
        print(f"Report:   {result.export_path}")
    if result.error:
        print(f"Error:    {result.error}")
    print(separator)


if __name__ == "__main__":
    main()
