from enum import Enum


class TaskState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskState.RUNNING


class TerminationReason(str, Enum):
    """Why a task left the running state."""

    COMPLETED = "completed"
    PLANNER_FAILED = "planner_failed"
    TIMEOUT = "timeout"
    STEP_BUDGET_EXHAUSTED = "step_budget_exhausted"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"
    AGENT_ERROR = "agent_error"
    INTERNAL_ERROR = "internal_error"
