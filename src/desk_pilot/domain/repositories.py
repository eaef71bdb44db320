from __future__ import annotations

from typing import Any, Protocol

from src.desk_pilot.domain.models.command_result import CommandResult
from src.desk_pilot.domain.models.planner import PlannerResponse
from src.desk_pilot.domain.models.sandbox import Sandbox
from src.desk_pilot.domain.models.task_result import ScreenSize


class BlobStoreRepository(Protocol):
    """Key-isolated JSON blob storage used for progress and result records."""

    async def put(self, key: str, body: str) -> str:
        """Store ``body`` under ``key`` and return a handle for later reads."""

    async def get(self, key: str) -> str | None:
        """Return the stored body for ``key``, or ``None`` when absent."""


class PlannerRepository(Protocol):
    """Vision-language planning model."""

    async def plan(
        self,
        system: str,
        messages: list[dict[str, Any]],
        display: ScreenSize,
    ) -> PlannerResponse:
        """Return the next assistant turn for the running dialogue."""

    async def describe(self, base64_image: str, prompt: str) -> str:
        """Return a text answer about a single screenshot."""


class ComputerRepository(Protocol):
    """Remote desktop-control surface; one primitive per call."""

    async def screenshot(self) -> CommandResult: ...

    async def screenshot_region(self, x: int, y: int, width: int, height: int) -> CommandResult: ...

    async def get_screen_size(self) -> CommandResult: ...

    async def get_cursor_position(self) -> CommandResult: ...

    async def move_cursor(self, x: int, y: int) -> CommandResult: ...

    async def left_click(self, x: int, y: int) -> CommandResult: ...

    async def right_click(self, x: int, y: int) -> CommandResult: ...

    async def double_click(self, x: int, y: int) -> CommandResult: ...

    async def triple_click(self, x: int, y: int) -> CommandResult: ...

    async def middle_click(self, x: int, y: int) -> CommandResult: ...

    async def mouse_down(self) -> CommandResult: ...

    async def mouse_up(self) -> CommandResult: ...

    async def drag(self, start_x: int, start_y: int, end_x: int, end_y: int) -> CommandResult: ...

    async def type_text(self, text: str) -> CommandResult: ...

    async def press_key(self, key: str) -> CommandResult: ...

    async def hotkey(self, keys: list[str]) -> CommandResult: ...

    async def key_down(self, key: str) -> CommandResult: ...

    async def key_up(self, key: str) -> CommandResult: ...

    async def scroll(self, direction: str, clicks: int) -> CommandResult: ...

    async def run_command(self, command: str) -> CommandResult: ...

    async def read_text(self, path: str) -> CommandResult: ...

    async def write_text(self, path: str, content: str) -> CommandResult: ...

    async def list_dir(self, path: str) -> CommandResult: ...

    async def file_exists(self, path: str) -> CommandResult: ...

    async def create_dir(self, path: str) -> CommandResult: ...

    async def delete_file(self, path: str) -> CommandResult: ...

    async def copy_to_clipboard(self) -> CommandResult: ...

    async def set_clipboard(self, text: str) -> CommandResult: ...

    async def get_accessibility_tree(self) -> CommandResult: ...

    async def find_element(self, role: str | None, title: str | None) -> CommandResult: ...

    async def close(self) -> None: ...


class ComputerFactory(Protocol):
    """Builds a computer client bound to one sandbox."""

    def create(self, target: str, host: str) -> ComputerRepository:
        """Return a client for the sandbox ``target`` served at ``host``."""


class SandboxRepository(Protocol):
    """Sandbox lifecycle management API."""

    async def list_sandboxes(self) -> list[Sandbox]: ...

    async def get_sandbox(self, name: str) -> Sandbox: ...

    async def start_sandbox(self, name: str) -> dict[str, Any]: ...

    async def stop_sandbox(self, name: str) -> dict[str, Any]: ...

    async def restart_sandbox(self, name: str) -> dict[str, Any]: ...

    async def resolve_host(self, name: str) -> str | None:
        """Return the computer-server host for ``name``, or ``None`` if unknown."""
