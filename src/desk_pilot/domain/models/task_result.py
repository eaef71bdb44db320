from __future__ import annotations

from pydantic import BaseModel, Field

from src.desk_pilot.domain.models.step import AgentStep
from src.desk_pilot.domain.models.task_state import TerminationReason


class ScreenSize(BaseModel):
    width: int
    height: int


class TaskResult(BaseModel):
    task_id: str = Field(description="Identifier of the task.")
    success: bool
    summary: str
    reason: TerminationReason = Field(description="Why the task stopped.")
    steps: list[AgentStep] = Field(default_factory=list)
    steps_taken: int = Field(default=0, description="Meaningful actions consumed.")
    duration_ms: int = 0
    screen_size: ScreenSize | None = None
    error: str | None = None
    progress_url: str | None = None
