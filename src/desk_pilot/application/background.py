from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from src.desk_pilot.application.orchestrator import TaskOrchestrator
from src.desk_pilot.application.progress import ProgressStore, now_ms
from src.desk_pilot.domain.models.progress import TaskProgress
from src.desk_pilot.domain.models.task import Task
from src.desk_pilot.domain.models.task_result import TaskResult
from src.desk_pilot.domain.models.task_state import TaskState, TerminationReason

logger = logging.getLogger(__name__)


async def run_task_in_background(
    orchestrator: TaskOrchestrator,
    progress_store: ProgressStore,
    task: Task,
    task_id: str,
    progress_handle: str | None,
) -> TaskResult:
    """
    Run ``task`` and persist its result, whatever happens downstream.

    An unexpected fault from the orchestrator is turned into a ``failed``
    progress record and task result so pollers never see the task vanish.
    Cancellation is recorded the same way before it propagates.
    """
    try:
        result = await orchestrator.execute(task, task_id=task_id, progress_handle=progress_handle)
    except Exception as exc:
        logger.exception("Background task failed", extra={"task_id": task_id})
        result = TaskResult(
            task_id=task_id,
            success=False,
            summary=f"Background execution failed: {exc}",
            reason=TerminationReason.INTERNAL_ERROR,
            error=str(exc),
            progress_url=progress_handle,
        )
        await _record_failure(progress_store, task, task_id, result)
    except asyncio.CancelledError:
        logger.warning("Background task cancelled", extra={"task_id": task_id})
        result = TaskResult(
            task_id=task_id,
            success=False,
            summary="Background execution cancelled",
            reason=TerminationReason.INTERNAL_ERROR,
            error="Task cancelled",
            progress_url=progress_handle,
        )
        # Shielded so a second cancel cannot leave the task without a terminal record.
        await asyncio.shield(_persist_cancellation(progress_store, task, task_id, result))
        raise

    await progress_store.store_result(task_id, result)
    return result


async def _persist_cancellation(
    progress_store: ProgressStore,
    task: Task,
    task_id: str,
    result: TaskResult,
) -> None:
    await _record_failure(progress_store, task, task_id, result)
    await progress_store.store_result(task_id, result)


async def _record_failure(
    progress_store: ProgressStore,
    task: Task,
    task_id: str,
    result: TaskResult,
) -> None:
    try:
        progress = await progress_store.read_progress(task_id)
    except Exception as exc:
        logger.warning("Could not read progress record", extra={"task_id": task_id, "error": str(exc)})
        progress = None

    if progress is None:
        started = now_ms()
        progress = TaskProgress(
            task_id=task_id,
            target=task.target,
            goal=task.goal,
            max_steps=task.max_steps,
            started_at=started,
            updated_at=started,
            timeout_seconds=task.timeout_seconds,
        )
    elif progress.status.is_terminal:
        return

    result.steps_taken = progress.current_step
    result.duration_ms = max(now_ms() - progress.started_at, 0)
    await progress_store.finalize(
        task_id,
        progress,
        TaskState.FAILED,
        success=False,
        summary=result.summary,
        reason=TerminationReason.INTERNAL_ERROR,
        steps=result.steps_taken,
        duration_ms=result.duration_ms,
        error=result.error,
    )


class BackgroundRunner:
    """
    Fire-and-forget launcher for task executions.

    Holds a strong reference to every running ``asyncio.Task`` so the event
    loop cannot garbage-collect it mid-flight.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def launch(self, task_id: str, coro: Coroutine[Any, Any, TaskResult]) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"desk-pilot:{task_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_task_result(task_id))
        logger.info("Background task launched", extra={"task_id": task_id})
        return task

    async def shutdown(self) -> None:
        """Cancel and await everything still running."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _log_task_result(task_id: str):
        def _callback(task: asyncio.Task) -> None:
            if task.cancelled():
                logger.warning("Background task cancelled", extra={"task_id": task_id})
                return
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "Background task crashed",
                    extra={"task_id": task_id, "error": str(exc)},
                )
                return
            result: TaskResult = task.result()
            logger.info(
                "Background task finished",
                extra={
                    "task_id": task_id,
                    "success": result.success,
                    "reason": result.reason.value,
                },
            )

        return _callback
