from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from src.desk_pilot.application.actions import handlers
from src.desk_pilot.application.validation import extract_coordinates
from src.desk_pilot.domain.models.action import ActionContext, ActionResult
from src.desk_pilot.domain.models.directive import ActionDirective
from src.desk_pilot.domain.repositories import ComputerRepository

ActionHandler = Callable[
    [ActionDirective, ComputerRepository, ActionContext], Awaitable[ActionResult]
]


class ActionKind(str, Enum):
    """
    Budget and key-release class of an action.

    OBSERVATION actions are free. Every other kind consumes one step.
    Only INTERACTION actions release held modifier keys afterwards.
    """

    OBSERVATION = "observation"
    MODIFIER = "modifier"
    PASSIVE = "passive"
    INTERACTION = "interaction"

    @property
    def consumes_step(self) -> bool:
        return self is not ActionKind.OBSERVATION

    @property
    def releases_held_keys(self) -> bool:
        return self is ActionKind.INTERACTION


@dataclass(frozen=True)
class ActionSpec:
    name: str
    handler: ActionHandler
    kind: ActionKind = ActionKind.INTERACTION
    required: tuple[str, ...] = ()
    needs_coordinate: bool = False
    description: str = ""

    def check(self, directive: ActionDirective, context: ActionContext) -> ActionResult | None:
        """Return a structured failure when the directive is incomplete or out of bounds."""
        for field_name in self.required:
            if getattr(directive, field_name) is None:
                return ActionResult.failure(f"{self.name} requires {field_name}")
        if self.needs_coordinate:
            coords = extract_coordinates(directive, context.display_width, context.display_height)
            if not coords.valid:
                return ActionResult.failure(coords.error)  # type: ignore[arg-type]
        return None

    async def invoke(
        self,
        directive: ActionDirective,
        computer: ComputerRepository,
        context: ActionContext,
    ) -> ActionResult:
        failure = self.check(directive, context)
        if failure is not None:
            return failure
        return await self.handler(directive, computer, context)


def _spec(name: str, handler: ActionHandler, description: str, **kwargs) -> ActionSpec:
    return ActionSpec(name=name, handler=handler, description=description, **kwargs)


_SPECS: tuple[ActionSpec, ...] = (
    # screen observation
    _spec(
        "screenshot",
        handlers.handle_screenshot,
        "Capture the full screen",
        kind=ActionKind.OBSERVATION,
    ),
    _spec(
        "zoom",
        handlers.handle_zoom,
        "Capture a region around coordinate at full resolution",
        kind=ActionKind.OBSERVATION,
        needs_coordinate=True,
    ),
    # mouse
    _spec("mouse_move", handlers.handle_mouse_move, "Move the cursor", needs_coordinate=True),
    _spec("left_click", handlers.handle_left_click, "Left click", needs_coordinate=True),
    _spec("right_click", handlers.handle_right_click, "Right click", needs_coordinate=True),
    _spec("double_click", handlers.handle_double_click, "Double click", needs_coordinate=True),
    _spec(
        "triple_click",
        handlers.handle_triple_click,
        "Triple click to select a line or paragraph",
        needs_coordinate=True,
    ),
    _spec(
        "middle_click",
        handlers.handle_middle_click,
        "Middle click (opens links in new tabs)",
        needs_coordinate=True,
    ),
    _spec(
        "left_click_drag",
        handlers.handle_left_click_drag,
        "Drag from start_coordinate to coordinate",
    ),
    _spec("left_mouse_down", handlers.handle_left_mouse_down, "Press and hold the left button"),
    _spec("left_mouse_up", handlers.handle_left_mouse_up, "Release the left button"),
    _spec("cursor_position", handlers.handle_cursor_position, "Report the cursor position"),
    # keyboard
    _spec("type", handlers.handle_type, "Type text", required=("text",)),
    _spec("key", handlers.handle_key, "Press a key or chord such as ctrl+c", required=("text",)),
    _spec(
        "hold_key",
        handlers.handle_hold_key,
        "Hold a modifier key; it is released after the next action",
        kind=ActionKind.MODIFIER,
    ),
    _spec("release_key", handlers.handle_release_key, "Release a held key"),
    # scrolling and pacing
    _spec("scroll", handlers.handle_scroll, "Scroll, optionally at coordinate"),
    _spec(
        "wait",
        handlers.handle_wait,
        "Pause for duration milliseconds",
        kind=ActionKind.PASSIVE,
    ),
    # shell and files
    _spec(
        "run_command",
        handlers.handle_run_command,
        "Execute a shell command (command field)",
        required=("command",),
    ),
    _spec("read_file", handlers.handle_read_file, "Read a file (path)", required=("path",)),
    _spec(
        "write_file",
        handlers.handle_write_file,
        "Write a file (path, content)",
        required=("path", "content"),
    ),
    _spec(
        "list_directory",
        handlers.handle_list_directory,
        "List a directory (path)",
        required=("path",),
    ),
    _spec(
        "file_exists",
        handlers.handle_file_exists,
        "Check whether a path exists",
        required=("path",),
    ),
    _spec(
        "create_directory",
        handlers.handle_create_directory,
        "Create a directory (path)",
        required=("path",),
    ),
    _spec("delete_file", handlers.handle_delete_file, "Delete a file (path)", required=("path",)),
    # clipboard and accessibility
    _spec("get_clipboard", handlers.handle_get_clipboard, "Read the clipboard"),
    _spec(
        "set_clipboard",
        handlers.handle_set_clipboard,
        "Set the clipboard (text)",
        required=("text",),
    ),
    _spec(
        "get_accessibility_tree",
        handlers.handle_get_accessibility_tree,
        "Dump the accessibility tree of the current window",
    ),
    _spec(
        "find_element",
        handlers.handle_find_element,
        "Find a UI element (text=role, content=title)",
    ),
)

ACTION_REGISTRY: dict[str, ActionSpec] = {spec.name: spec for spec in _SPECS}

OBSERVATION_ACTIONS: frozenset[str] = frozenset(
    name for name, spec in ACTION_REGISTRY.items() if spec.kind is ActionKind.OBSERVATION
)


def get_action_spec(action: str) -> ActionSpec | None:
    return ACTION_REGISTRY.get(action)


def describe_action_set() -> str:
    """Render the registered actions as a bullet list for the planner prompt."""
    return "\n".join(f"- {spec.name}: {spec.description}" for spec in _SPECS)
