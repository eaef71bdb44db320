from pydantic import BaseModel, Field


class Task(BaseModel):
    id: str | None = Field(default=None, description="Unique task identifier.")
    target: str = Field(description="Name of the sandbox to operate on.")
    host: str = Field(description="Resolved host of the sandbox computer server.")
    goal: str = Field(description="Free-text description of the desired outcome.")
    max_steps: int = Field(gt=0, description="Cap on meaningful actions.")
    timeout_seconds: int = Field(gt=0, description="Wall-clock budget in seconds.")


class TaskSubmission(BaseModel):
    task_id: str
    status: str = "running"
    progress_url: str | None = Field(
        default=None, description="Handle of the progress record to poll."
    )
    message: str = "Task started. Poll get_task_progress for updates."
