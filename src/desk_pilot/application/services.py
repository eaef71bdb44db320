from __future__ import annotations

import logging
from typing import Any, cast

import inject

from src.desk_pilot.application.background import BackgroundRunner, run_task_in_background
from src.desk_pilot.application.describe import describe_screen
from src.desk_pilot.application.orchestrator import TaskOrchestrator
from src.desk_pilot.application.progress import ProgressStore
from src.desk_pilot.domain.exceptions import (
    InvalidTargetError,
    InvalidTaskError,
    SandboxNotFoundError,
    TaskNotFoundError,
)
from src.desk_pilot.domain.models.progress import TaskProgress
from src.desk_pilot.domain.models.sandbox import Sandbox
from src.desk_pilot.domain.models.screen import DescribeFocus, ScreenDescription
from src.desk_pilot.domain.models.task import Task, TaskSubmission
from src.desk_pilot.domain.models.task_result import TaskResult
from src.desk_pilot.domain.repositories import (
    ComputerFactory,
    PlannerRepository,
    SandboxRepository,
)
from src.desk_pilot.utils import generate_task_id, is_valid_target_name
from src.setup.agent_config import AgentSettings, get_agent_settings

logger = logging.getLogger(__name__)


def _clamp(requested: int | None, default: int, limit: int) -> int:
    value = requested or default
    return max(1, min(value, limit))


def format_progress(progress: TaskProgress) -> dict[str, Any]:
    """Poll view of a progress record: a running summary or the terminal result."""
    if progress.status.is_terminal:
        return {
            "task_id": progress.task_id,
            "status": progress.status.value,
            "result": progress.final_result.model_dump(mode="json") if progress.final_result else None,
        }
    return {
        "task_id": progress.task_id,
        "status": progress.status.value,
        "progress": {
            "current_step": progress.current_step,
            "max_steps": progress.max_steps,
            "elapsed_ms": progress.elapsed_ms,
            "timeout_seconds": progress.timeout_seconds,
            "last_action": progress.last_action.action if progress.last_action else None,
            "last_reasoning": progress.last_reasoning,
            "steps_summary": list(progress.steps_summary),
        },
    }


def format_result(result: TaskResult) -> dict[str, Any]:
    return {
        "task_id": result.task_id,
        "status": "completed" if result.success else "failed",
        "result": {
            "success": result.success,
            "summary": result.summary,
            "reason": result.reason.value,
            "total_steps": result.steps_taken,
            "duration_ms": result.duration_ms,
            "error": result.error,
        },
    }


def _require_target(name: object) -> str:
    if not is_valid_target_name(name):
        raise InvalidTargetError(name)
    return cast(str, name)


class TaskService:
    """Submits tasks for background execution and answers progress/history polls."""

    def __init__(
        self,
        progress_store: ProgressStore | None = None,
        sandboxes: SandboxRepository | None = None,
        runner: BackgroundRunner | None = None,
        orchestrator: TaskOrchestrator | None = None,
        settings: AgentSettings | None = None,
    ) -> None:
        self._settings = settings or get_agent_settings()
        self._progress = progress_store or ProgressStore(settings=self._settings)
        self._sandboxes = sandboxes or cast(SandboxRepository, inject.instance(SandboxRepository))
        self._runner = runner or inject.instance(BackgroundRunner)
        self._orchestrator = orchestrator

    def _build_orchestrator(self) -> TaskOrchestrator:
        if self._orchestrator is not None:
            return self._orchestrator
        return TaskOrchestrator(progress_store=self._progress, settings=self._settings)

    async def submit(
        self,
        target: str,
        goal: str,
        max_steps: int | None = None,
        timeout_seconds: int | None = None,
    ) -> TaskSubmission:
        """
        Start ``goal`` on sandbox ``target`` without waiting for it.

        Budgets are clamped to the configured maxima, never rejected. The
        progress record exists before this returns, so an immediate poll
        always finds the task.
        """
        target = _require_target(target)
        if not isinstance(goal, str) or not goal.strip():
            raise InvalidTaskError()

        settings = self._settings
        steps = _clamp(max_steps, settings.DEFAULT_MAX_STEPS, settings.MAX_STEPS_LIMIT)
        timeout = _clamp(
            timeout_seconds, settings.DEFAULT_TIMEOUT_SECONDS, settings.MAX_TIMEOUT_SECONDS
        )

        host = await self._sandboxes.resolve_host(target)
        if not host:
            raise SandboxNotFoundError(target)
        orchestrator = self._build_orchestrator()

        task_id = generate_task_id()
        task = Task(
            id=task_id,
            target=target,
            host=host,
            goal=goal,
            max_steps=steps,
            timeout_seconds=timeout,
        )
        handle = await self._progress.initialize(task_id, target, goal, steps, timeout)
        self._runner.launch(
            task_id,
            run_task_in_background(orchestrator, self._progress, task, task_id, handle),
        )
        logger.info(
            "Task submitted",
            extra={"task_id": task_id, "target": target, "max_steps": steps, "timeout_seconds": timeout},
        )
        return TaskSubmission(task_id=task_id, progress_url=handle)

    async def get_progress(self, task_id: str) -> dict[str, Any]:
        progress = await self._progress.read_progress(task_id)
        if progress is not None:
            return format_progress(progress)
        result = await self._progress.read_result(task_id)
        if result is not None:
            return format_result(result)
        return {"task_id": task_id, "status": "not_found"}

    async def get_history(self, task_id: str) -> TaskResult:
        result = await self._progress.read_result(task_id)
        if result is None:
            raise TaskNotFoundError(task_id)
        return result


class ScreenService:
    """One-shot screen descriptions outside of any task."""

    def __init__(
        self,
        sandboxes: SandboxRepository | None = None,
        computers: ComputerFactory | None = None,
        settings: AgentSettings | None = None,
    ) -> None:
        self._sandboxes = sandboxes or cast(SandboxRepository, inject.instance(SandboxRepository))
        self._computers = computers or cast(ComputerFactory, inject.instance(ComputerFactory))
        self._settings = settings or get_agent_settings()

    async def describe(
        self,
        target: str,
        focus: DescribeFocus = "ui",
        question: str | None = None,
    ) -> ScreenDescription:
        target = _require_target(target)
        host = await self._sandboxes.resolve_host(target)
        if not host:
            raise SandboxNotFoundError(target)
        planner = cast(PlannerRepository, inject.instance(PlannerRepository))

        computer = self._computers.create(target, host)
        try:
            return await describe_screen(
                computer,
                planner,
                focus=focus,
                question=question,
                retry_delay_ms=self._settings.RETRY_DELAY_MS,
            )
        finally:
            await computer.close()


class SandboxService:
    """Thin validation layer over the sandbox management API."""

    def __init__(self, sandboxes: SandboxRepository | None = None) -> None:
        self._sandboxes = sandboxes or cast(SandboxRepository, inject.instance(SandboxRepository))

    async def list_sandboxes(self) -> list[Sandbox]:
        return await self._sandboxes.list_sandboxes()

    async def get_sandbox(self, name: str) -> Sandbox:
        return await self._sandboxes.get_sandbox(_require_target(name))

    async def start(self, name: str) -> dict[str, Any]:
        return await self._sandboxes.start_sandbox(_require_target(name))

    async def stop(self, name: str) -> dict[str, Any]:
        return await self._sandboxes.stop_sandbox(_require_target(name))

    async def restart(self, name: str) -> dict[str, Any]:
        return await self._sandboxes.restart_sandbox(_require_target(name))
