"""Planner: typed wrapper around the three remote planning workers.

* ``initial_plan`` (worker ``oagi_first``) turns a todo into an
  instruction the Actor can follow.
* ``reflect`` (worker ``oagi_follow``) reviews the most recent actions
  and decides whether to continue, pivot to a new instruction, or stop
  because the todo is done.
* ``summarize`` (worker ``oagi_task_summary``) condenses a finished
  attempt into a short summary.

Worker replies are free text that should contain one JSON object.  The
parse methods never raise: a reply that cannot be parsed produces a
defined fallback decision so that the agent loop keeps going.

Dependencies: ``core.client``, ``core.memory``, ``models.task``,
``json`` (stdlib).

Typical usage::

    planner = Planner(client)
    plan, request_id = await planner.initial_plan(
        "Open the downloads folder", context={}, screenshot=png_bytes
    )
    print(plan.instruction)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from lux_agent.config.constants import (
    DEFAULT_REFLECTION_INTERVAL,
    WORKER_INITIAL_PLAN,
    WORKER_REFLECT,
    WORKER_SUMMARY,
)
from lux_agent.core.client import LuxClient, extract_uuid_from_url
from lux_agent.core.memory import PlannerMemory
from lux_agent.models.task import PlannerOutput, ReflectionOutput, TaskerAction

logger = logging.getLogger(__name__)

_PLAN_PARSE_FAILURE: str = "Failed to parse structured response"
_REFLECTION_PARSE_FAILURE: str = (
    "Failed to parse reflection response, continuing current approach"
)


class Planner:
    """Calls the planning workers and parses their replies.

    Args:
        client: API client shared with the rest of the agent.
    """

    def __init__(self, client: LuxClient) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # Worker calls
    # ------------------------------------------------------------------

    async def initial_plan(
        self,
        todo: str,
        context: dict[str, Any],
        screenshot: bytes | str | None = None,
        memory: PlannerMemory | None = None,
        todo_index: int | None = None,
    ) -> tuple[PlannerOutput, str | None]:
        """Plan how to accomplish *todo*.

        Args:
            todo: The todo to plan for.
            context: Ad-hoc context used when no memory is given.
            screenshot: Current screen, as bytes or a hosted URL.
            memory: Live workflow memory (preferred over *context*).
            todo_index: Index of *todo* in *memory*.

        Returns:
            The parsed plan and the worker's request id.
        """
        screenshot_uuid = await self._resolve_screenshot_uuid(screenshot)
        data = self._extract_memory_data(memory, context, todo_index)

        response = await self._client.call_worker(
            worker_id=WORKER_INITIAL_PLAN,
            overall_todo=todo,
            task_description=data["task_description"],
            todos=data["todos"],
            history=data["history"],
            current_todo_index=todo_index,
            task_execution_summary=data["task_execution_summary"],
            current_screenshot=screenshot_uuid,
        )
        return self.parse_planner_output(response.response), response.request_id

    async def reflect(
        self,
        actions: Sequence[TaskerAction],
        context: dict[str, Any],
        screenshot: bytes | str | None = None,
        memory: PlannerMemory | None = None,
        todo_index: int | None = None,
        current_instruction: str | None = None,
        reflection_interval: int = DEFAULT_REFLECTION_INTERVAL,
    ) -> tuple[ReflectionOutput, str | None]:
        """Review recent actions and decide how to proceed.

        Only the last *reflection_interval* actions are sent.

        Args:
            actions: Action log of the current attempt.
            context: Ad-hoc context used when no memory is given; its
                ``history`` entries become the prior notes.
            screenshot: Screen after the actions, as bytes or a URL.
            memory: Live workflow memory.
            todo_index: Index of the current todo in *memory*.
            current_instruction: Instruction the Actor is following.
            reflection_interval: Window size.

        Returns:
            The parsed decision and the worker's request id.
        """
        result_uuid = await self._resolve_screenshot_uuid(screenshot)
        data = self._extract_memory_data(memory, context, todo_index)

        window = list(actions)[-reflection_interval:] if reflection_interval > 0 else []
        window_steps = [
            {
                "step_number": i + 1,
                "action_type": action.action_type,
                "target": action.target or "",
                "reasoning": action.reasoning or "",
            }
            for i, action in enumerate(window)
        ]
        window_screenshots = [a.screenshot_uuid for a in window if a.screenshot_uuid]

        response = await self._client.call_worker(
            worker_id=WORKER_REFLECT,
            overall_todo=data["overall_todo"],
            task_description=data["task_description"],
            todos=data["todos"],
            history=data["history"],
            current_todo_index=todo_index,
            task_execution_summary=data["task_execution_summary"],
            current_subtask_instruction=current_instruction,
            window_steps=window_steps,
            window_screenshots=window_screenshots,
            result_screenshot=result_uuid,
            prior_notes=self.format_execution_notes(context),
        )
        return self.parse_reflection_output(response.response), response.request_id

    async def summarize(
        self,
        history: Sequence[TaskerAction],
        context: dict[str, Any],
        memory: PlannerMemory | None = None,
        todo_index: int | None = None,
    ) -> tuple[str, str | None]:
        """Summarise a finished attempt.

        The worker derives the summary from the workflow state, so
        *history* is accepted for interface symmetry only.

        Returns:
            The summary text (``task_summary`` from the JSON reply, or
            the raw reply when it is not JSON) and the request id.
        """
        data = self._extract_memory_data(memory, context, todo_index)
        latest_todo_summary = ""
        if memory is not None and todo_index is not None:
            latest_todo_summary = memory.todo_execution_summaries.get(todo_index, "")

        response = await self._client.call_worker(
            worker_id=WORKER_SUMMARY,
            overall_todo=data["overall_todo"],
            task_description=data["task_description"],
            todos=data["todos"],
            history=data["history"],
            current_todo_index=todo_index,
            task_execution_summary=data["task_execution_summary"],
            latest_todo_summary=latest_todo_summary,
        )
        return self.parse_summary_output(response.response), response.request_id

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    @classmethod
    def parse_planner_output(cls, response: str) -> PlannerOutput:
        """Parse an initial-plan reply.

        Returns:
            The plan, or a fallback with an empty instruction when the
            reply holds no usable JSON object.
        """
        data = cls._load_json_object(response)
        if data is None:
            return PlannerOutput(
                instruction="",
                reasoning=_PLAN_PARSE_FAILURE,
                subtodos=[],
            )
        subtodos = data.get("subtodos") or []
        return PlannerOutput(
            instruction=str(data.get("subtask") or data.get("instruction") or ""),
            reasoning=str(data.get("reasoning") or ""),
            subtodos=[str(s) for s in subtodos] if isinstance(subtodos, list) else [],
        )

    @classmethod
    def parse_reflection_output(cls, response: str) -> ReflectionOutput:
        """Parse a reflection reply.

        Decision table:

        * ``success == "yes"``: the todo is done.
        * non-empty ``subtask_instruction``: pivot to it.
        * otherwise: continue with the current instruction.

        Unparseable replies continue the current approach.
        """
        data = cls._load_json_object(response)
        if data is None:
            return ReflectionOutput(
                continue_current=True,
                new_instruction=None,
                reasoning=_REFLECTION_PARSE_FAILURE,
                success_assessment=False,
            )

        success = data.get("success", "no") == "yes"
        raw_instruction = data.get("subtask_instruction")
        new_instruction = str(raw_instruction).strip() if raw_instruction is not None else ""
        return ReflectionOutput(
            continue_current=not success and not new_instruction,
            new_instruction=new_instruction or None,
            reasoning=str(data.get("reflection") or data.get("reasoning") or ""),
            success_assessment=success,
        )

    @staticmethod
    def parse_summary_output(response: str) -> str:
        """Return ``task_summary`` from a JSON reply, else the raw text."""
        try:
            data = json.loads(response)
        except ValueError:
            return response
        if isinstance(data, dict) and data.get("task_summary") is not None:
            return str(data["task_summary"])
        return response

    @staticmethod
    def format_execution_notes(context: dict[str, Any]) -> str:
        """Format ``context["history"]`` as prior notes for reflection."""
        history = context.get("history")
        if not history:
            return ""
        parts: list[str] = []
        for entry in history:
            parts.append(
                f"Todo {entry.get('todo_index')}: "
                f"{entry.get('action_count', 0)} actions, "
                f"completed: {entry.get('completed')}"
            )
            if entry.get("summary"):
                parts.append(f"Summary: {entry['summary']}")
        return "\n".join(parts)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _resolve_screenshot_uuid(
        self, screenshot: bytes | str | None
    ) -> str | None:
        """Return a stable uuid for *screenshot*, uploading if needed.

        A URL that already embeds a uuid is never re-uploaded.
        """
        if not screenshot:
            return None
        if isinstance(screenshot, str):
            found = extract_uuid_from_url(screenshot)
            if found:
                return found
            logger.warning("Screenshot URL carries no uuid; it cannot be re-uploaded")
            return None
        upload = await self._client.put_s3_presigned_url(screenshot)
        return upload.uuid

    @staticmethod
    def _extract_memory_data(
        memory: PlannerMemory | None,
        context: dict[str, Any],
        todo_index: int | None,
    ) -> dict[str, Any]:
        """Build the shared part of every worker payload.

        Live memory is used when both *memory* and *todo_index* are
        given; otherwise the values come from *context*.
        """
        if memory is not None and todo_index is not None:
            overall_todo = ""
            if 0 <= todo_index < len(memory.todos):
                overall_todo = memory.todos[todo_index].description
            return {
                "task_description": memory.task_description,
                "todos": [
                    {
                        "index": i,
                        "description": t.description,
                        "status": t.status.value,
                        "execution_summary": memory.todo_execution_summaries.get(i),
                    }
                    for i, t in enumerate(memory.todos)
                ],
                "history": [
                    {
                        "todo_index": h.todo_index,
                        "todo_description": h.todo,
                        "action_count": len(h.actions),
                        "summary": h.summary,
                        "completed": h.completed,
                    }
                    for h in memory.history
                ],
                "task_execution_summary": memory.task_execution_summary or None,
                "overall_todo": overall_todo,
            }

        return {
            "task_description": context.get("task_description", ""),
            "todos": context.get("todos", []),
            "history": context.get("history", []),
            "task_execution_summary": None,
            "overall_todo": context.get("current_todo", ""),
        }

    @staticmethod
    def _extract_json(text: str) -> str:
        """Return the span from the first ``{`` to the last ``}``.

        Returns:
            The candidate JSON text, or an empty string if the text
            holds no braces.
        """
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            return ""
        return text[start:end]

    @classmethod
    def _load_json_object(cls, text: str) -> dict[str, Any] | None:
        candidate = cls._extract_json(text)
        if not candidate:
            logger.warning("Planner: no JSON object in worker reply")
            return None
        try:
            data = json.loads(candidate)
        except ValueError as exc:
            logger.warning("Planner: JSON decode failed: %s", exc)
            return None
        if not isinstance(data, dict):
            return None
        return data
