from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from src.desk_pilot.application.services import ScreenService, SandboxService, TaskService
from src.desk_pilot.domain.exceptions import (
    PlannerUnavailableError,
    SandboxApiError,
    SandboxNotFoundError,
    TaskNotFoundError,
)
from src.desk_pilot.domain.models import Sandbox, ScreenDescription, TaskResult, TaskSubmission

router = APIRouter(tags=["tasks"])
logger = logging.getLogger(__name__)

_task_service = TaskService()
_screen_service = ScreenService()
_sandbox_service = SandboxService()


class SubmitTaskRequest(BaseModel):
    target: str = Field(..., description="Name of the sandbox to operate on.")
    goal: str = Field(..., description="What the agent should accomplish.")
    max_steps: int | None = Field(
        default=None, description="Cap on meaningful actions; clamped to the server maximum."
    )
    timeout_seconds: int | None = Field(
        default=None, description="Wall-clock budget; clamped to the server maximum."
    )


class DescribeScreenRequest(BaseModel):
    target: str = Field(..., description="Name of the sandbox to look at.")
    focus: Literal["ui", "text", "full"] = "ui"
    question: str | None = Field(default=None, description="Specific question about the screen.")


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (TaskNotFoundError, SandboxNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, PlannerUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, SandboxApiError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    logger.exception("Unhandled error")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.post(
    "/tasks",
    response_model=TaskSubmission,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a desktop task",
    description=(
        "Validates the target, initialises the progress record and starts the "
        "agent loop in the background. Returns immediately with the task id."
    ),
)
async def submit_task(body: SubmitTaskRequest) -> TaskSubmission:
    try:
        return await _task_service.submit(
            body.target, body.goal, max_steps=body.max_steps, timeout_seconds=body.timeout_seconds
        )
    except Exception as exc:
        raise _http_error(exc) from exc


@router.get(
    "/tasks/{task_id}/progress",
    summary="Poll task progress",
    description=(
        "Returns `{task_id, status, progress}` while running, `{task_id, status, result}` "
        "once terminal, or `{task_id, status: 'not_found'}`."
    ),
)
async def get_task_progress(task_id: str) -> dict[str, Any]:
    return await _task_service.get_progress(task_id)


@router.get(
    "/tasks/{task_id}",
    response_model=TaskResult,
    summary="Fetch the full task history",
)
async def get_task_history(task_id: str) -> TaskResult:
    try:
        return await _task_service.get_history(task_id)
    except TaskNotFoundError as exc:
        raise _http_error(exc) from exc


@router.post(
    "/screen/describe",
    response_model=ScreenDescription,
    tags=["screen"],
    summary="Describe the current screen of a sandbox",
)
async def describe_screen(body: DescribeScreenRequest) -> ScreenDescription:
    try:
        return await _screen_service.describe(body.target, body.focus, body.question)
    except Exception as exc:
        raise _http_error(exc) from exc


@router.get("/sandboxes", response_model=list[Sandbox], tags=["sandboxes"])
async def list_sandboxes() -> list[Sandbox]:
    try:
        return await _sandbox_service.list_sandboxes()
    except Exception as exc:
        raise _http_error(exc) from exc


@router.get("/sandboxes/{name}", response_model=Sandbox, tags=["sandboxes"])
async def get_sandbox(name: str) -> Sandbox:
    try:
        return await _sandbox_service.get_sandbox(name)
    except Exception as exc:
        raise _http_error(exc) from exc


@router.post("/sandboxes/{name}/{operation}", tags=["sandboxes"])
async def control_sandbox(
    name: str, operation: Literal["start", "stop", "restart"]
) -> dict[str, Any]:
    handlers = {
        "start": _sandbox_service.start,
        "stop": _sandbox_service.stop,
        "restart": _sandbox_service.restart,
    }
    try:
        return await handlers[operation](name)
    except Exception as exc:
        raise _http_error(exc) from exc
