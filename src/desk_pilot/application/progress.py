"""
Progress and result persistence.

Progress lives under ``progress/<task_id>.json`` and the final result under
``tasks/<task_id>.json``. Writes are best effort: a failed write is retried
with linear backoff, then logged and dropped, and never fails the task.
"""

from __future__ import annotations

import asyncio
import logging
import time

import inject
from pydantic import ValidationError

from src.desk_pilot.domain.models.directive import Coordinate
from src.desk_pilot.domain.models.progress import FinalResult, TaskProgress
from src.desk_pilot.domain.models.task_result import TaskResult
from src.desk_pilot.domain.models.task_state import TaskState, TerminationReason
from src.desk_pilot.domain.repositories import BlobStoreRepository
from src.setup.agent_config import AgentSettings, get_agent_settings

logger = logging.getLogger(__name__)

_ACTION_LABELS = {
    "left_click": "Click",
    "right_click": "Right-click",
    "double_click": "Double-click",
    "triple_click": "Triple-click",
    "middle_click": "Middle-click",
    "type": "Type text",
    "key": "Key press",
    "scroll": "Scroll",
    "mouse_move": "Move cursor",
    "left_click_drag": "Drag",
}


def progress_key(task_id: str) -> str:
    return f"progress/{task_id}.json"


def result_key(task_id: str) -> str:
    return f"tasks/{task_id}.json"


def now_ms() -> int:
    return int(time.time() * 1000)


def summarize_action(action: str, coords: Coordinate | None = None) -> str:
    """Human-readable one-liner for the rolling summary."""
    label = _ACTION_LABELS.get(action, action.replace("_", " "))
    if coords is None:
        return label
    return f"{label} at ({coords[0]}, {coords[1]})"


class ProgressStore:
    """Reads and writes task progress/result records in the blob store."""

    def __init__(
        self,
        blob_store: BlobStoreRepository | None = None,
        settings: AgentSettings | None = None,
    ) -> None:
        self._blobs = blob_store or inject.instance(BlobStoreRepository)
        settings = settings or get_agent_settings()
        self._retries = settings.PROGRESS_WRITE_RETRIES
        self._backoff_ms = settings.RETRY_BACKOFF_BASE_MS

    async def _put(self, key: str, body: str) -> str | None:
        for attempt in range(self._retries + 1):
            try:
                handle = await self._blobs.put(key, body)
            except Exception as exc:
                if attempt == self._retries:
                    logger.error(
                        "Blob write failed, giving up",
                        extra={"key": key, "attempts": attempt + 1, "error": str(exc)},
                    )
                    return None
                await asyncio.sleep(self._backoff_ms * (attempt + 1) / 1000)
                continue
            if attempt > 0:
                logger.info("Blob write succeeded on retry", extra={"key": key, "attempt": attempt})
            return handle
        return None

    async def write(self, task_id: str, progress: TaskProgress) -> str | None:
        """Persist ``progress``; returns the progress handle or ``None`` on failure."""
        return await self._put(progress_key(task_id), progress.model_dump_json())

    async def initialize(
        self,
        task_id: str,
        target: str,
        goal: str,
        max_steps: int,
        timeout_seconds: int,
    ) -> str | None:
        started = now_ms()
        progress = TaskProgress(
            task_id=task_id,
            target=target,
            goal=goal,
            max_steps=max_steps,
            started_at=started,
            updated_at=started,
            timeout_seconds=timeout_seconds,
        )
        return await self.write(task_id, progress)

    async def finalize(
        self,
        task_id: str,
        progress: TaskProgress,
        status: TaskState,
        *,
        success: bool,
        summary: str,
        reason: TerminationReason,
        steps: int,
        duration_ms: int,
        error: str | None = None,
    ) -> str | None:
        """Move ``progress`` into a terminal status and persist it."""
        if not status.is_terminal:
            raise ValueError(f"finalize requires a terminal status, got {status.value!r}")
        if progress.status.is_terminal:
            logger.warning(
                "Progress already finalized",
                extra={"task_id": task_id, "status": progress.status.value},
            )
            return None

        progress.status = status
        progress.current_step = min(steps, progress.max_steps)
        progress.updated_at = now_ms()
        progress.elapsed_ms = duration_ms
        progress.final_result = FinalResult(
            success=success,
            summary=summary,
            reason=reason,
            total_steps=steps,
            duration_ms=duration_ms,
            error=error,
        )
        handle = await self.write(task_id, progress)
        logger.info(
            "Final progress update",
            extra={"task_id": task_id, "status": status.value, "written": handle is not None},
        )
        return handle

    async def store_result(self, task_id: str, result: TaskResult) -> str | None:
        return await self._put(result_key(task_id), result.model_dump_json())

    async def read_progress(self, task_id: str) -> TaskProgress | None:
        body = await self._blobs.get(progress_key(task_id))
        if body is None:
            return None
        try:
            return TaskProgress.model_validate_json(body)
        except ValidationError:
            logger.warning("Unreadable progress record", extra={"task_id": task_id})
            return None

    async def read_result(self, task_id: str) -> TaskResult | None:
        body = await self._blobs.get(result_key(task_id))
        if body is None:
            return None
        try:
            return TaskResult.model_validate_json(body)
        except ValidationError:
            logger.warning("Unreadable result record", extra={"task_id": task_id})
            return None

    def writer(self, task_id: str) -> ProgressWriter:
        return ProgressWriter(self, task_id)


class ProgressWriter:
    """
    Single writer for one task's progress key.

    Step commits and heartbeats go through the same lock. A heartbeat re-sends
    the last committed record with fresh timestamps, so it can never revert a
    step that was committed before it.
    """

    def __init__(self, store: ProgressStore, task_id: str) -> None:
        self._store = store
        self._task_id = task_id
        self._lock = asyncio.Lock()
        self._committed: TaskProgress | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def prime(self, progress: TaskProgress) -> None:
        """Adopt ``progress`` as already persisted (written by ``initialize``)."""
        self._committed = progress.model_copy(deep=True)

    async def commit(self, progress: TaskProgress) -> str | None:
        snapshot = progress.model_copy(deep=True)
        async with self._lock:
            if self._closed:
                return None
            self._committed = snapshot
            return await self._store.write(self._task_id, snapshot)

    async def touch(self, elapsed_ms: int) -> str | None:
        """Liveness write: last committed record plus updated_at/elapsed_ms."""
        async with self._lock:
            if self._closed or self._committed is None:
                return None
            beat = self._committed.model_copy(
                update={
                    "updated_at": now_ms(),
                    "elapsed_ms": max(elapsed_ms, self._committed.elapsed_ms),
                }
            )
            return await self._store.write(self._task_id, beat)

    async def finalize(self, progress: TaskProgress, status: TaskState, **result) -> str | None:
        async with self._lock:
            if self._closed:
                logger.warning("Progress writer already closed", extra={"task_id": self._task_id})
                return None
            self._closed = True
            handle = await self._store.finalize(self._task_id, progress, status, **result)
            self._committed = progress.model_copy(deep=True)
            return handle
