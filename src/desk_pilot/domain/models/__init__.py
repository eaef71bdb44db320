from src.desk_pilot.domain.models.action import ActionContext, ActionResult
from src.desk_pilot.domain.models.command_result import CommandResult
from src.desk_pilot.domain.models.directive import ActionDirective, Coordinate
from src.desk_pilot.domain.models.planner import (
    DirectiveSegment,
    PlannerResponse,
    TextSegment,
)
from src.desk_pilot.domain.models.progress import FinalResult, LastAction, TaskProgress
from src.desk_pilot.domain.models.sandbox import Sandbox
from src.desk_pilot.domain.models.screen import DescribeFocus, ScreenDescription
from src.desk_pilot.domain.models.step import AgentStep
from src.desk_pilot.domain.models.task import Task, TaskSubmission
from src.desk_pilot.domain.models.task_result import ScreenSize, TaskResult
from src.desk_pilot.domain.models.task_state import TaskState, TerminationReason

__all__ = [
    "ActionContext",
    "ActionDirective",
    "ActionResult",
    "AgentStep",
    "CommandResult",
    "Coordinate",
    "DescribeFocus",
    "DirectiveSegment",
    "FinalResult",
    "LastAction",
    "PlannerResponse",
    "Sandbox",
    "ScreenDescription",
    "ScreenSize",
    "Task",
    "TaskProgress",
    "TaskResult",
    "TaskState",
    "TaskSubmission",
    "TerminationReason",
    "TextSegment",
]
