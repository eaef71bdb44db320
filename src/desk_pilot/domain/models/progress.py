from __future__ import annotations

from pydantic import BaseModel, Field

from src.desk_pilot.domain.models.directive import Coordinate
from src.desk_pilot.domain.models.task_state import TaskState, TerminationReason


class LastAction(BaseModel):
    action: str
    reasoning: str | None = None
    result: str | None = None
    success: bool
    coordinates: Coordinate | None = None


class FinalResult(BaseModel):
    success: bool
    summary: str
    reason: TerminationReason
    total_steps: int
    duration_ms: int
    error: str | None = None


class TaskProgress(BaseModel):
    """Externally polled snapshot of a running task."""

    task_id: str
    target: str
    goal: str
    status: TaskState = TaskState.RUNNING
    current_step: int = 0
    max_steps: int
    started_at: int = Field(description="Epoch milliseconds.")
    updated_at: int = Field(description="Epoch milliseconds.")
    elapsed_ms: int = 0
    timeout_seconds: int
    last_action: LastAction | None = None
    steps_summary: list[str] = Field(default_factory=list)
    last_reasoning: str | None = None
    final_result: FinalResult | None = None
