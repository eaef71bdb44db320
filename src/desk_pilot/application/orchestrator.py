"""
Planner/executor loop for a single delegated task.

Each iteration asks the planner for the next assistant turn, dispatches the
action directives it contains against the remote computer and feeds the
outcomes back into the dialogue, until the planner reports completion or
failure or one of the budgets (steps, iterations, wall-clock) runs out.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import inject
from pydantic import ValidationError

from src.desk_pilot.application.actions import ActionKind, ActionSpec, get_action_spec
from src.desk_pilot.application.display import probe_screen_size
from src.desk_pilot.application.held_keys import HeldKeys
from src.desk_pilot.application.progress import (
    ProgressStore,
    ProgressWriter,
    now_ms,
    summarize_action,
)
from src.desk_pilot.application.prompts import (
    COMPLETE_MARKER,
    FAILED_MARKER,
    build_system_prompt,
    build_task_message,
)
from src.desk_pilot.domain.models.action import ActionContext, ActionResult
from src.desk_pilot.domain.models.directive import ActionDirective
from src.desk_pilot.domain.models.planner import STOP_END_TURN, DirectiveSegment, PlannerResponse
from src.desk_pilot.domain.models.progress import LastAction, TaskProgress
from src.desk_pilot.domain.models.step import AgentStep
from src.desk_pilot.domain.models.task import Task
from src.desk_pilot.domain.models.task_result import ScreenSize, TaskResult
from src.desk_pilot.domain.models.task_state import TaskState, TerminationReason
from src.desk_pilot.domain.repositories import (
    ComputerFactory,
    ComputerRepository,
    PlannerRepository,
)
from src.desk_pilot.utils import generate_task_id
from src.setup.agent_config import AgentSettings, get_agent_settings

logger = logging.getLogger(__name__)

CONTINUE_PROMPT = "Continue with the task."


@dataclass
class _Marker:
    completed: bool
    text: str


def find_marker(texts: list[str]) -> _Marker | None:
    """Return the first completion or failure marker found across ``texts``."""
    for text in texts:
        for marker, completed in ((COMPLETE_MARKER, True), (FAILED_MARKER, False)):
            if marker in text:
                return _Marker(completed=completed, text=text.split(marker, 1)[1].strip())
    return None


def extract_rationale(texts: list[str]) -> str | None:
    """Last non-empty free-text segment; this is attached to the dispatched steps."""
    for text in reversed(texts):
        if text.strip():
            return text.strip()
    return None


class _Run:
    """Mutable state of one execution; the orchestrator itself stays stateless."""

    def __init__(
        self,
        task: Task,
        task_id: str,
        progress: TaskProgress,
        writer: ProgressWriter,
        computer: ComputerRepository,
        started: float,
        progress_url: str | None,
    ) -> None:
        self.task = task
        self.task_id = task_id
        self.progress = progress
        self.writer = writer
        self.computer = computer
        self.started = started
        self.progress_url = progress_url
        self.steps: list[AgentStep] = []
        self.held_keys = HeldKeys()
        self.meaningful = 0
        self.iterations = 0
        self.screen: ScreenSize | None = None
        self.context: ActionContext | None = None


class TaskOrchestrator:
    """Drives a task to a terminal outcome and returns its ``TaskResult``."""

    def __init__(
        self,
        planner: PlannerRepository | None = None,
        computer_factory: ComputerFactory | None = None,
        progress_store: ProgressStore | None = None,
        settings: AgentSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._planner = planner or inject.instance(PlannerRepository)
        self._computers = computer_factory or inject.instance(ComputerFactory)
        self._settings = settings or get_agent_settings()
        self._progress = progress_store or ProgressStore(settings=self._settings)
        self._clock = clock

    async def execute(
        self,
        task: Task,
        task_id: str | None = None,
        progress_handle: str | None = None,
    ) -> TaskResult:
        """
        Run ``task`` to completion.

        When ``progress_handle`` is given the progress record was already
        initialised by the caller and is not written again before the first step.
        """
        task_id = task_id or task.id or generate_task_id()
        started_at = now_ms()
        progress = TaskProgress(
            task_id=task_id,
            target=task.target,
            goal=task.goal,
            max_steps=task.max_steps,
            started_at=started_at,
            updated_at=started_at,
            timeout_seconds=task.timeout_seconds,
        )
        writer = self._progress.writer(task_id)
        if progress_handle is not None:
            writer.prime(progress)
        else:
            progress_handle = await writer.commit(progress)

        computer = self._computers.create(task.target, task.host)
        run = _Run(task, task_id, progress, writer, computer, self._clock(), progress_handle)
        logger.info(
            "Task started",
            extra={"task_id": task_id, "target": task.target, "max_steps": task.max_steps},
        )
        try:
            return await self._loop(run)
        finally:
            try:
                await computer.close()
            except Exception as exc:
                logger.warning(
                    "Failed to close computer client",
                    extra={"task_id": task_id, "error": str(exc)},
                )

    def _elapsed_ms(self, run: _Run) -> int:
        return int((self._clock() - run.started) * 1000)

    async def _loop(self, run: _Run) -> TaskResult:
        settings = self._settings
        task = run.task
        run.screen = await probe_screen_size(run.computer, settings)
        run.context = ActionContext(
            display_width=run.screen.width,
            display_height=run.screen.height,
            retry_delay_ms=settings.RETRY_DELAY_MS,
            max_wait_ms=settings.MAX_WAIT_MS,
            zoom_width=settings.ZOOM_REGION_WIDTH,
            zoom_height=settings.ZOOM_REGION_HEIGHT,
        )
        system = build_system_prompt()
        messages: list[dict[str, Any]] = [build_task_message(task.goal)]
        max_iterations = task.max_steps * settings.ITERATION_MULTIPLIER

        while run.meaningful < task.max_steps and run.iterations < max_iterations:
            run.iterations += 1

            elapsed = self._elapsed_ms(run)
            if elapsed > task.timeout_seconds * 1000:
                return await self._finish(
                    run,
                    TaskState.TIMEOUT,
                    TerminationReason.TIMEOUT,
                    summary="Task timed out",
                    error=f"Timeout after {task.timeout_seconds}s",
                )

            try:
                response = await self._plan(run, system, messages)
            except Exception as exc:
                logger.exception("Planner call failed", extra={"task_id": run.task_id})
                return await self._finish(
                    run,
                    TaskState.FAILED,
                    TerminationReason.AGENT_ERROR,
                    summary=f"Agent error: {exc}",
                    error=str(exc),
                )

            marker = find_marker(response.texts)
            if marker is not None:
                if marker.completed:
                    return await self._finish(
                        run,
                        TaskState.COMPLETED,
                        TerminationReason.COMPLETED,
                        summary=marker.text,
                    )
                return await self._finish(
                    run,
                    TaskState.FAILED,
                    TerminationReason.PLANNER_FAILED,
                    summary=marker.text,
                    error="Task failed",
                )

            rationale = extract_rationale(response.texts)
            if rationale is not None:
                run.progress.last_reasoning = rationale

            tool_results = [
                await self._dispatch(run, directive, rationale)
                for directive in response.directives
            ]
            messages.append({"role": "assistant", "content": response.content})

            if tool_results:
                messages.append({"role": "user", "content": tool_results})
                continue

            if response.stop_reason == STOP_END_TURN:
                return await self._finish(
                    run,
                    TaskState.COMPLETED,
                    TerminationReason.COMPLETED,
                    summary=rationale or "Task completed",
                )
            # Truncated turn without any action; keep the dialogue alternating.
            messages.append({"role": "user", "content": CONTINUE_PROMPT})

        if run.meaningful >= task.max_steps:
            reason = TerminationReason.STEP_BUDGET_EXHAUSTED
            error = f"Reached {task.max_steps} action limit ({run.meaningful} actions taken)"
        else:
            reason = TerminationReason.ITERATION_LIMIT_REACHED
            error = f"Safety limit reached ({run.iterations} total iterations)"
        return await self._finish(
            run,
            TaskState.FAILED,
            reason,
            summary="Max steps exceeded without completing task",
            error=error,
        )

    async def _plan(
        self,
        run: _Run,
        system: str,
        messages: list[dict[str, Any]],
    ) -> PlannerResponse:
        heartbeat = asyncio.create_task(self._heartbeat(run))
        try:
            return await self._planner.plan(system, messages, run.screen)  # type: ignore[arg-type]
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat

    async def _heartbeat(self, run: _Run) -> None:
        interval = self._settings.HEARTBEAT_INTERVAL_MS / 1000
        while True:
            await asyncio.sleep(interval)
            await run.writer.touch(self._elapsed_ms(run))

    async def _dispatch(
        self,
        run: _Run,
        segment: DirectiveSegment,
        rationale: str | None,
    ) -> dict[str, Any]:
        """Execute one directive and return the tool result block for the planner."""
        action = str(segment.input.get("action", ""))
        step = AgentStep(
            step=len(run.steps) + 1,
            action=action,
            reasoning=rationale,
        )
        run.steps.append(step)

        spec = get_action_spec(action)
        if spec is None:
            step.success = False
            step.error = f"Unknown action: {action}"
            logger.warning("Unknown action", extra={"task_id": run.task_id, "action": action})
            return _tool_result(segment.id, step.error, is_error=True)

        if spec.kind.consumes_step and run.meaningful >= run.task.max_steps:
            step.success = False
            step.error = "Step budget exhausted; action not executed"
            return _tool_result(segment.id, step.error, is_error=True)

        try:
            try:
                directive = ActionDirective.model_validate(segment.input)
            except ValidationError as exc:
                step.success = False
                step.error = f"Invalid {action} directive: {exc.error_count()} field error(s)"
                result = ActionResult.failure(step.error)
            else:
                step.coordinates = directive.coordinate
                result = await self._invoke(run, spec, directive)
                step.success = result.success
                step.error = result.error
                step.result = result.text or result.result
        finally:
            # Released even when the directive never reached its handler.
            if spec.kind.releases_held_keys and len(run.held_keys):
                await run.held_keys.release_all(run.computer)

        if spec.kind.consumes_step:
            await self._record_meaningful(run, step)

        return _tool_result(segment.id, result.content, is_error=not result.success)

    async def _invoke(self, run: _Run, spec: ActionSpec, directive: ActionDirective) -> ActionResult:
        kind = spec.kind
        try:
            result = await spec.invoke(directive, run.computer, run.context)
        except Exception as exc:
            logger.error(
                "Action failed",
                extra={"task_id": run.task_id, "action": directive.action, "error": str(exc)},
            )
            result = ActionResult.failure(f"Error: {exc}", error=str(exc))

        if kind is ActionKind.MODIFIER and result.success:
            key = directive.key or directive.text
            if key:
                run.held_keys.hold(key)
        return result

    async def _record_meaningful(self, run: _Run, step: AgentStep) -> None:
        run.meaningful += 1
        progress = run.progress
        progress.current_step = run.meaningful
        progress.updated_at = now_ms()
        progress.elapsed_ms = self._elapsed_ms(run)
        progress.last_action = LastAction(
            action=step.action,
            reasoning=step.reasoning,
            result=step.result,
            success=step.success,
            coordinates=step.coordinates,
        )
        progress.steps_summary.append(summarize_action(step.action, step.coordinates))
        del progress.steps_summary[: -self._settings.ROLLING_SUMMARY_SIZE]
        await run.writer.commit(progress)
        await asyncio.sleep(self._settings.UI_SETTLE_DELAY_MS / 1000)

    async def _finish(
        self,
        run: _Run,
        status: TaskState,
        reason: TerminationReason,
        *,
        summary: str,
        error: str | None = None,
    ) -> TaskResult:
        duration_ms = self._elapsed_ms(run)
        await run.writer.finalize(
            run.progress,
            status,
            success=status is TaskState.COMPLETED,
            summary=summary,
            reason=reason,
            steps=run.meaningful,
            duration_ms=duration_ms,
            error=error,
        )
        logger.info(
            "Task finished",
            extra={
                "task_id": run.task_id,
                "status": status.value,
                "reason": reason.value,
                "steps_taken": run.meaningful,
                "iterations": run.iterations,
                "duration_ms": duration_ms,
            },
        )
        return TaskResult(
            task_id=run.task_id,
            success=status is TaskState.COMPLETED,
            summary=summary,
            reason=reason,
            steps=run.steps,
            steps_taken=run.meaningful,
            duration_ms=duration_ms,
            screen_size=run.screen,
            error=error,
            progress_url=run.progress_url,
        )


def _tool_result(tool_use_id: str, content: Any, *, is_error: bool = False) -> dict[str, Any]:
    block: dict[str, Any] = {"type": "tool_result", "tool_use_id": tool_use_id, "content": content}
    if is_error:
        block["is_error"] = True
    return block
