"""
Handlers for every action the planner may issue.

Each handler has the signature ``(directive, computer, context) -> ActionResult``.
Required fields and coordinate bounds are checked by the registry before a
handler runs, so handlers read those fields directly.
"""

from __future__ import annotations

import asyncio

from src.desk_pilot.application.validation import check_coordinate
from src.desk_pilot.domain.models.action import ActionContext, ActionResult
from src.desk_pilot.domain.models.command_result import CommandResult
from src.desk_pilot.domain.models.directive import ActionDirective
from src.desk_pilot.domain.repositories import ComputerRepository

SCROLL_DIRECTIONS = ("up", "down", "left", "right")
DEFAULT_SCROLL_AMOUNT = 3
DEFAULT_WAIT_MS = 1000


async def _sleep_ms(ms: int) -> None:
    await asyncio.sleep(ms / 1000)


def _translate(
    result: CommandResult,
    success_message: str,
    failure_label: str,
    fallback_error: str = "Unknown error",
) -> ActionResult:
    if result.success:
        return ActionResult(content=success_message, success=True)
    return ActionResult(
        content=f"{failure_label}: {result.error or fallback_error}",
        success=False,
        error=result.error or fallback_error,
    )


# Screenshot actions


async def capture_screenshot(computer: ComputerRepository, retry_delay_ms: int) -> CommandResult:
    """Take a full screenshot, retrying once after ``retry_delay_ms``."""
    result = await computer.screenshot()
    if not result.has_image:
        await _sleep_ms(retry_delay_ms)
        result = await computer.screenshot()
    return result


async def handle_screenshot(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await capture_screenshot(computer, context.retry_delay_ms)
    if result.has_image:
        return ActionResult.image(result.base64_image)  # type: ignore[arg-type]
    return ActionResult(
        content=f"Screenshot failed: {result.error or 'Unknown error'}",
        success=False,
        error=result.error or "Unknown error",
    )


async def handle_zoom(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    """Capture a region centred on the coordinate; degrade to a full screenshot."""
    center_x, center_y = directive.coordinate  # type: ignore[misc]
    x = max(0, center_x - context.zoom_width // 2)
    y = max(0, center_y - context.zoom_height // 2)

    result = await computer.screenshot_region(x, y, context.zoom_width, context.zoom_height)
    if not result.has_image:
        await _sleep_ms(context.retry_delay_ms)
        result = await computer.screenshot_region(x, y, context.zoom_width, context.zoom_height)
    if not result.has_image:
        result = await computer.screenshot()

    if result.has_image:
        return ActionResult.image(
            result.base64_image,  # type: ignore[arg-type]
            result=f"Zoomed to region around ({center_x}, {center_y})",
        )
    return ActionResult(
        content=f"Zoom screenshot failed: {result.error or 'Unknown error'}",
        success=False,
        error=result.error or "Unknown error",
    )


# Mouse actions


async def handle_mouse_move(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    x, y = directive.coordinate  # type: ignore[misc]
    result = await computer.move_cursor(x, y)
    return _translate(result, f"Cursor moved to ({x}, {y})", "Move cursor failed")


async def handle_left_click(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    x, y = directive.coordinate  # type: ignore[misc]
    result = await computer.left_click(x, y)
    return _translate(result, f"Left click at ({x}, {y})", "Left click failed")


async def handle_right_click(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    x, y = directive.coordinate  # type: ignore[misc]
    result = await computer.right_click(x, y)
    return _translate(result, f"Right click at ({x}, {y})", "Right click failed")


async def handle_double_click(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    x, y = directive.coordinate  # type: ignore[misc]
    result = await computer.double_click(x, y)
    return _translate(result, f"Double click at ({x}, {y})", "Double click failed")


async def handle_triple_click(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    x, y = directive.coordinate  # type: ignore[misc]
    result = await computer.triple_click(x, y)
    return _translate(result, f"Triple click at ({x}, {y})", "Triple click failed")


async def handle_middle_click(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    x, y = directive.coordinate  # type: ignore[misc]
    result = await computer.middle_click(x, y)
    return _translate(result, f"Middle click at ({x}, {y})", "Middle click failed")


async def handle_left_click_drag(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    start = directive.start_coordinate or directive.coordinate
    end = directive.coordinate
    if start is None or end is None:
        return ActionResult.failure("left_click_drag requires start_coordinate and coordinate")

    start_check = check_coordinate(start, context.display_width, context.display_height)
    if not start_check.valid:
        return ActionResult.failure(f"Start {start_check.error}", start_check.error)
    end_check = check_coordinate(end, context.display_width, context.display_height)
    if not end_check.valid:
        return ActionResult.failure(f"End {end_check.error}", end_check.error)

    result = await computer.drag(start[0], start[1], end[0], end[1])
    return _translate(
        result,
        f"Dragged from ({start[0]}, {start[1]}) to ({end[0]}, {end[1]})",
        "Drag failed",
    )


async def handle_left_mouse_down(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.mouse_down()
    return _translate(result, "Mouse button pressed down", "Mouse down failed")


async def handle_left_mouse_up(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.mouse_up()
    return _translate(result, "Mouse button released", "Mouse up failed")


async def handle_cursor_position(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.get_cursor_position()
    if result.success:
        return ActionResult(content=result.content or "Unknown position", success=True)
    return _translate(result, "", "Get cursor position failed")


# Keyboard actions


async def handle_type(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.type_text(directive.text)  # type: ignore[arg-type]
    return _translate(result, "Text typed", "Type failed")


async def handle_key(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    """Press a single key, or a chord such as ``ctrl+c``."""
    combo: str = directive.text  # type: ignore[assignment]
    if "+" in combo:
        keys = [k.strip() for k in combo.split("+") if k.strip()]
        result = await computer.hotkey(keys)
    else:
        result = await computer.press_key(combo)
    return _translate(result, f"Key pressed: {combo}", "Key press failed")


def key_name(directive: ActionDirective) -> str | None:
    return directive.key or directive.text


async def handle_hold_key(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    key = key_name(directive)
    if not key:
        return ActionResult.failure("hold_key requires key")
    result = await computer.key_down(key)
    return _translate(
        result,
        f"Key held down: {key}. It is released after the next action.",
        "Hold key failed",
    )


async def handle_release_key(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    key = key_name(directive)
    if not key:
        return ActionResult.failure("release_key requires key")
    result = await computer.key_up(key)
    return _translate(result, f"Key released: {key}", "Release key failed")


# Scrolling and waiting


async def handle_scroll(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    direction = directive.scroll_direction or "down"
    amount = directive.scroll_amount or DEFAULT_SCROLL_AMOUNT
    if direction not in SCROLL_DIRECTIONS:
        return ActionResult.failure(f"Unknown scroll direction: {direction}")

    coord_info = ""
    if directive.coordinate is not None:
        check = check_coordinate(
            directive.coordinate, context.display_width, context.display_height
        )
        if not check.valid:
            return ActionResult.failure(check.error)  # type: ignore[arg-type]
        move = await computer.move_cursor(check.x, check.y)
        if not move.success:
            return _translate(move, "", "Move cursor for scroll failed")
        coord_info = f" at ({check.x}, {check.y})"

    result = await computer.scroll(direction, amount)
    return _translate(result, f"Scrolled {direction}{coord_info}", "Scroll failed")


async def handle_wait(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    wait_ms = int(directive.duration or DEFAULT_WAIT_MS)
    await _sleep_ms(min(wait_ms, context.max_wait_ms))
    return ActionResult(content=f"Waited {wait_ms}ms", success=True)


# Shell and files


async def handle_run_command(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.run_command(directive.command)  # type: ignore[arg-type]
    if result.success:
        return ActionResult(content=result.content or "Command executed successfully", success=True)
    return _translate(result, "", "Command failed")


async def handle_read_file(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.read_text(directive.path)  # type: ignore[arg-type]
    if result.success:
        return ActionResult(content=result.content or "(empty file)", success=True)
    return _translate(result, "", "Read failed", fallback_error="File not found")


async def handle_write_file(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.write_text(directive.path, directive.content)  # type: ignore[arg-type]
    return _translate(result, f"File written: {directive.path}", "Write failed")


async def handle_list_directory(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.list_dir(directive.path)  # type: ignore[arg-type]
    if result.success:
        return ActionResult(content=result.content or "(empty directory)", success=True)
    return _translate(result, "", "List failed", fallback_error="Directory not found")


async def handle_file_exists(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    # The server reports a missing file as success=False; that is an answer, not a failure.
    result = await computer.file_exists(directive.path)  # type: ignore[arg-type]
    return ActionResult(
        content=result.content or ("true" if result.success else "false"),
        success=True,
    )


async def handle_create_directory(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.create_dir(directive.path)  # type: ignore[arg-type]
    return _translate(result, f"Directory created: {directive.path}", "Create failed")


async def handle_delete_file(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.delete_file(directive.path)  # type: ignore[arg-type]
    return _translate(result, f"File deleted: {directive.path}", "Delete failed")


# Clipboard and accessibility


async def handle_get_clipboard(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.copy_to_clipboard()
    if result.success:
        return ActionResult(content=result.content or "(clipboard empty)", success=True)
    return _translate(result, "", "Get clipboard failed")


async def handle_set_clipboard(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.set_clipboard(directive.text)  # type: ignore[arg-type]
    return _translate(result, "Clipboard set", "Set clipboard failed")


async def handle_get_accessibility_tree(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    result = await computer.get_accessibility_tree()
    if result.success:
        return ActionResult(content=result.content or "(no accessibility tree)", success=True)
    return _translate(result, "", "Get accessibility tree failed")


async def handle_find_element(
    directive: ActionDirective, computer: ComputerRepository, context: ActionContext
) -> ActionResult:
    # role travels in ``text`` and title in ``content``
    result = await computer.find_element(directive.text, directive.content)
    if result.success:
        return ActionResult(content=result.content or "(element not found)", success=True)
    return _translate(result, "", "Find element failed")
