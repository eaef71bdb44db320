class TaskNotFoundError(Exception):
    """Raised when no progress or result record exists for a task identifier."""
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id '{task_id}' was not found.")
        self.task_id = task_id


class SandboxNotFoundError(Exception):
    """Raised when a sandbox name does not resolve to a running host."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Sandbox not found: {name}")
        self.name = name


class InvalidTargetError(ValueError):
    """Raised when a sandbox name fails validation."""

    def __init__(self, name: object) -> None:
        super().__init__("Invalid sandbox name")
        self.name = name


class PlannerUnavailableError(Exception):
    """Raised when the planning model is not configured."""

    def __init__(self) -> None:
        super().__init__("ANTHROPIC_API_KEY not configured on server")


class SandboxApiError(Exception):
    """Raised when the sandbox management API answers with an error status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"CUA API error ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail


class InvalidTaskError(ValueError):
    """Raised when a submitted task carries no usable goal."""

    def __init__(self, message: str = "Task description is required") -> None:
        super().__init__(message)
