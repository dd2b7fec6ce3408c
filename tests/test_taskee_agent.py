"""Tests for the TaskeeAgent plan / execute / reflect / summarise loop.

A scripted fake client stands in for both the Lux step model and the
planning workers.  The desktop is replaced by the recording executor.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

import pytest

from lux_agent.core.client import ChatCompletion, GenerateResponse, UploadFileResponse
from lux_agent.core.errors import AgentInterrupted, ExecutionError, ServerError
from lux_agent.core.observer import AgentObserver
from lux_agent.core.taskee_agent import TaskeeAgent
from lux_agent.models.actions import Action, ActionType
from lux_agent.models.events import PlanEvent, StepEvent
from lux_agent.platform.recording import RecordingActionExecutor, StaticScreenshotProvider

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _raw(actions: str, think: str = "thinking") -> str:
    return f"<|think_start|>{think}<|think_end|><|action_start|>{actions}<|action_end|>"


class FakeClient:
    """Scripted stand-in for LuxClient.

    Step completions pop from ``outputs``; worker calls pop from
    ``worker_replies[worker_id]`` and default to an empty JSON object.
    """

    def __init__(
        self,
        outputs: list[str] | None = None,
        worker_replies: dict[str, list[str]] | None = None,
    ) -> None:
        self.outputs = list(outputs or [])
        self.worker_replies = {k: list(v) for k, v in (worker_replies or {}).items()}
        self.chat_calls: list[dict[str, Any]] = []
        self.worker_calls: list[tuple[str, dict[str, Any]]] = []
        self.uploads = 0
        self.chat_error: Exception | None = None

    async def put_s3_presigned_url(self, content: bytes) -> UploadFileResponse:
        self.uploads += 1
        uid = f"00000000-0000-0000-0000-{self.uploads:012d}"
        return UploadFileResponse(
            url="https://s3.example.com/put",
            uuid=uid,
            download_url=f"https://cdn.example.com/{uid}.png",
        )

    async def chat_completions(self, **kwargs: Any) -> ChatCompletion:
        if self.chat_error is not None:
            raise self.chat_error
        kwargs["messages"] = list(kwargs["messages"])
        self.chat_calls.append(kwargs)
        raw = self.outputs.pop(0) if self.outputs else _raw("wait()")
        return ChatCompletion(raw_output=raw)

    async def call_worker(self, worker_id: str, **kwargs: Any) -> GenerateResponse:
        self.worker_calls.append((worker_id, kwargs))
        replies = self.worker_replies.get(worker_id) or ["{}"]
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        return GenerateResponse(response=reply, request_id=f"{worker_id}-req")

    def workers(self) -> list[str]:
        return [w for w, _ in self.worker_calls]


def _plan(instruction: str) -> str:
    return json.dumps({"subtask": instruction, "reasoning": "plan reasoning"})


def _make_agent(client: FakeClient, **kwargs: Any) -> TaskeeAgent:
    kwargs.setdefault("step_delay", 0.0)
    return TaskeeAgent(client, **kwargs)  # type: ignore[arg-type]


def _run(
    agent: TaskeeAgent,
    executor: RecordingActionExecutor | None = None,
    todo: str = "Compose an email",
) -> bool:
    return asyncio.run(
        agent.execute(
            todo,
            executor or RecordingActionExecutor(),
            StaticScreenshotProvider([b"PNG"]),
        )
    )


def _first_prompt(call: dict[str, Any]) -> str:
    return call["messages"][0]["content"][0]["text"]


class LoggingExecutor(RecordingActionExecutor):
    """Appends start/end markers for each batch to a shared log."""

    def __init__(self, log: list[tuple[str, str]]) -> None:
        super().__init__()
        self.log = log

    async def execute(self, actions: Sequence[Action]) -> None:
        self.log.append(("execute", "start"))
        await asyncio.sleep(0)
        await super().execute(actions)
        self.log.append(("execute", "end"))


class LoggingProvider(StaticScreenshotProvider):
    """Appends start/end markers for each capture to a shared log."""

    def __init__(self, log: list[tuple[str, str]]) -> None:
        super().__init__([b"PNG"])
        self.log = log

    async def capture(self) -> bytes | str:
        self.log.append(("capture", "start"))
        await asyncio.sleep(0)
        image = await super().capture()
        self.log.append(("capture", "end"))
        return image


def _calls(log: list[tuple[str, str]]) -> list[str]:
    """Collapse a start/end log into call names, asserting no overlap."""
    starts, ends = log[0::2], log[1::2]
    assert [phase for _, phase in starts] == ["start"] * len(starts)
    assert [phase for _, phase in ends] == ["end"] * len(ends)
    names = [name for name, _ in starts]
    assert names == [name for name, _ in ends]
    return names


# ==================================================================
# Test classes
# ==================================================================


class TestPlanning:
    """Tests for the initial planning phase."""

    def test_actor_follows_planned_instruction(self) -> None:
        """The Actor's task is the planner's instruction."""
        client = FakeClient(
            [_raw("finish()")],
            {"oagi_first": [_plan("Click the compose button")]},
        )
        agent = _make_agent(client)
        _run(agent)
        assert agent.current_instruction == "Click the compose button"
        assert "Click the compose button" in _first_prompt(client.chat_calls[0])

    def test_empty_instruction_falls_back_to_todo(self) -> None:
        """An unusable plan uses the todo text as the instruction."""
        client = FakeClient([_raw("finish()")], {"oagi_first": ["no json at all"]})
        agent = _make_agent(client)
        _run(agent, todo="Archive old mail")
        assert agent.current_instruction == "Archive old mail"
        assert "Archive old mail" in _first_prompt(client.chat_calls[0])

    def test_plan_entry_is_recorded(self) -> None:
        """The plan phase is the first log entry."""
        client = FakeClient([_raw("finish()")], {"oagi_first": [_plan("Do it")]})
        agent = _make_agent(client)
        _run(agent)
        first = agent.actions[0]
        assert (first.action_type, first.target, first.result) == ("plan", "initial", "Do it")
        assert first.reasoning == "plan reasoning"


class TestExecution:
    """Tests for the executing phase."""

    def test_finish_is_success(self) -> None:
        """A finish action completes the todo and the summary runs."""
        client = FakeClient(
            [_raw("click(5,5) & finish()")],
            {
                "oagi_first": [_plan("Do it")],
                "oagi_task_summary": [json.dumps({"task_summary": "Email composed"})],
            },
        )
        agent = _make_agent(client)
        assert _run(agent) is True

        result = agent.return_execution_results()
        assert result.success is True
        assert result.summary == "Email composed"
        assert result.total_steps == 2
        assert result.error is None
        assert [a.action_type for a in result.actions] == ["plan", "click", "finish", "summary"]
        assert client.workers() == ["oagi_first", "oagi_task_summary"]

    def test_actions_carry_screenshot_uuid(self) -> None:
        """Replayed actions record the uuid of their screenshot."""
        client = FakeClient([_raw("click(5,5)"), _raw("finish()")])
        agent = _make_agent(client)
        _run(agent)
        clicks = [a for a in agent.actions if a.action_type == "click"]
        assert clicks[0].target == "5,5"
        assert clicks[0].screenshot_uuid is not None
        assert clicks[0].screenshot_uuid.startswith("00000000-")

    def test_budget_exhausted(self) -> None:
        """Without finish the todo fails once the step budget is used."""
        client = FakeClient()
        agent = _make_agent(client, max_steps=3, reflection_interval=100)
        assert _run(agent) is False
        assert len(client.chat_calls) == 3
        assert "oagi_follow" not in client.workers()
        assert client.workers()[-1] == "oagi_task_summary"

    def test_step_events_are_numbered_per_run(self) -> None:
        """StepEvents count up across subtask boundaries."""
        observer = AgentObserver()
        client = FakeClient(
            [_raw("click(1,1)"), _raw("click(2,2)"), _raw("finish()")],
            {"oagi_follow": [json.dumps({"success": "no"})]},
        )
        agent = _make_agent(client, reflection_interval=1, observer=observer)
        _run(agent)
        steps = [e.step_num for e in observer.events if isinstance(e, StepEvent)]
        assert steps == [1, 2, 3]


class TestReflection:
    """Tests for the reflection decision handling."""

    def test_reflection_success_ends_todo(self) -> None:
        """A successful assessment completes the todo."""
        observer = AgentObserver()
        client = FakeClient(
            [_raw("click(1,1) & click(2,2)")],
            {"oagi_follow": [json.dumps({"success": "yes", "reflection": "looks done"})]},
        )
        agent = _make_agent(client, reflection_interval=2, observer=observer)
        assert _run(agent) is True
        assert len(client.chat_calls) == 1

        plans = [e for e in observer.events if isinstance(e, PlanEvent)]
        assert [p.phase for p in plans] == ["initial", "reflection", "summary"]
        assert plans[1].result == "success"
        assert plans[1].request_id == "oagi_follow-req"

    def test_reflection_window_is_recent_actions(self) -> None:
        """Only actions since the last reflection are reviewed."""
        client = FakeClient(
            [_raw("click(1,1) & click(2,2)"), _raw("type(abc) & type(def)")],
            {"oagi_follow": [json.dumps({"success": "no"}), json.dumps({"success": "yes"})]},
        )
        agent = _make_agent(client, reflection_interval=2)
        _run(agent)
        reflections = [kw for w, kw in client.worker_calls if w == "oagi_follow"]
        assert [s["action_type"] for s in reflections[0]["window_steps"]] == ["click", "click"]
        assert [s["action_type"] for s in reflections[1]["window_steps"]] == ["type", "type"]

    def test_pivot_restarts_actor(self) -> None:
        """A new instruction re-initialises the Actor conversation."""
        client = FakeClient(
            [_raw("click(1,1)"), _raw("finish()")],
            {
                "oagi_first": [_plan("Use the menu")],
                "oagi_follow": [json.dumps({"success": "no", "subtask_instruction": "Use search"})],
            },
        )
        agent = _make_agent(client, reflection_interval=1)
        assert _run(agent) is True
        assert agent.current_instruction == "Use search"

        first, second = client.chat_calls
        assert first["task_id"] != second["task_id"]
        assert len(second["messages"]) == 1
        assert "Use search" in _first_prompt(second)

        reflect = [a for a in agent.actions if a.action_type == "reflect"]
        assert reflect[0].result == "pivot"

    def test_continue_keeps_conversation(self) -> None:
        """Continuing keeps the same Actor task."""
        client = FakeClient(
            [_raw("click(1,1)"), _raw("finish()")],
            {"oagi_follow": [json.dumps({"success": "no"})]},
        )
        agent = _make_agent(client, reflection_interval=1)
        _run(agent)
        first, second = client.chat_calls
        assert first["task_id"] == second["task_id"]
        assert agent.actions[2].action_type == "reflect"
        assert agent.actions[2].result == "continue"


class TestErrors:
    """Tests for error handling inside the Taskee."""

    def test_model_error_is_recorded_and_summary_runs(self) -> None:
        """A remote step failure ends execution but not the summary."""
        client = FakeClient()
        client.chat_error = ServerError("down", 500)
        agent = _make_agent(client)
        assert _run(agent) is False

        result = agent.return_execution_results()
        errors = [a for a in result.actions if a.action_type == "error"]
        assert errors[0].target == "model_step"
        assert result.error == "HTTP 500: down"
        assert result.actions[-1].action_type == "summary"

    def test_execution_error_is_reraised(self) -> None:
        """Executor failures abort the todo."""
        client = FakeClient([_raw("drag(1,1,5,5)")])
        agent = _make_agent(client)
        with pytest.raises(ExecutionError):
            _run(agent, RecordingActionExecutor(fail_on=ActionType.DRAG))
        assert agent.actions[-1].action_type == "error"
        assert "oagi_task_summary" not in client.workers()

    def test_cancel_is_propagated(self) -> None:
        """A set cancel event stops before the first model step."""
        event = asyncio.Event()
        event.set()
        client = FakeClient([_raw("finish()")])
        agent = _make_agent(client, cancel_event=event)
        with pytest.raises(AgentInterrupted):
            _run(agent)
        assert client.chat_calls == []
        assert agent.return_execution_results().error == "Agent execution was interrupted"

    def test_unexpected_error_returns_false(self) -> None:
        """Non-SDK errors are recorded and reported as failure."""

        class BrokenProvider(StaticScreenshotProvider):
            async def capture(self) -> bytes | str:
                raise RuntimeError("camera gone")

        agent = _make_agent(FakeClient())
        result = asyncio.run(
            agent.execute("t", RecordingActionExecutor(), BrokenProvider([b"x"]))
        )
        assert result is False
        assert agent.return_execution_results().error == "camera gone"


class TestCaptureOrdering:
    """Tests for the capture / execute sequencing of steps."""

    def test_capture_follows_previous_actions(self) -> None:
        """Actions always run on a fresh screenshot and never overlap a capture."""
        log: list[tuple[str, str]] = []
        client = FakeClient(
            [_raw("click(1,1)"), _raw("type(abc)"), _raw("finish()")],
            {"oagi_follow": [json.dumps({"success": "no"})]},
        )
        agent = _make_agent(client, reflection_interval=1)
        result = asyncio.run(
            agent.execute("Compose an email", LoggingExecutor(log), LoggingProvider(log))
        )
        assert result is True

        calls = _calls(log)
        assert calls.count("execute") == 3
        assert calls[0] == "capture"
        for index, name in enumerate(calls):
            if name == "execute":
                assert calls[index - 1] == "capture"
