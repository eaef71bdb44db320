from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.desk_pilot.application.background import BackgroundRunner
from src.desk_pilot.domain.exceptions import SandboxNotFoundError
from src.desk_pilot.domain.models.command_result import CommandResult
from src.desk_pilot.domain.models.planner import (
    STOP_END_TURN,
    STOP_TOOL_USE,
    DirectiveSegment,
    PlannerResponse,
    TextSegment,
)
from src.desk_pilot.domain.models.sandbox import Sandbox
from src.desk_pilot.domain.models.task_result import ScreenSize
from src.desk_pilot.domain.repositories import (
    BlobStoreRepository,
    ComputerFactory,
    ComputerRepository,
    PlannerRepository,
    SandboxRepository,
)
from src.setup.agent_config import AgentSettings

SCREENSHOT_B64 = "aW1hZ2U="


def _ok(content: str | None = None) -> CommandResult:
    return CommandResult(success=True, content=content)


class StubComputer(ComputerRepository):
    """Records every primitive call; responses can be overridden per command."""

    def __init__(self, width: int = 1024, height: int = 768) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.responses: dict[str, list[CommandResult]] = {}
        self.raises: dict[str, Exception] = {}
        self.size = {"width": width, "height": height}
        self.closed = False

    def queue(self, command: str, *results: CommandResult) -> None:
        self.responses.setdefault(command, []).extend(results)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def _call(self, name: str, *args: Any, default: CommandResult | None = None) -> CommandResult:
        self.calls.append((name, args))
        if name in self.raises:
            raise self.raises[name]
        queued = self.responses.get(name)
        if queued:
            return queued.pop(0)
        return default or _ok()

    async def screenshot(self) -> CommandResult:
        return await self._call(
            "screenshot", default=CommandResult(success=True, base64_image=SCREENSHOT_B64)
        )

    async def screenshot_region(self, x: int, y: int, width: int, height: int) -> CommandResult:
        return await self._call(
            "screenshot_region",
            x,
            y,
            width,
            height,
            default=CommandResult(success=True, base64_image=SCREENSHOT_B64),
        )

    async def get_screen_size(self) -> CommandResult:
        return await self._call("get_screen_size", default=CommandResult(success=True, size=self.size))

    async def get_cursor_position(self) -> CommandResult:
        return await self._call("get_cursor_position", default=_ok('{"x": 1, "y": 2}'))

    async def move_cursor(self, x: int, y: int) -> CommandResult:
        return await self._call("move_cursor", x, y)

    async def left_click(self, x: int, y: int) -> CommandResult:
        return await self._call("left_click", x, y)

    async def right_click(self, x: int, y: int) -> CommandResult:
        return await self._call("right_click", x, y)

    async def double_click(self, x: int, y: int) -> CommandResult:
        return await self._call("double_click", x, y)

    async def triple_click(self, x: int, y: int) -> CommandResult:
        return await self._call("triple_click", x, y)

    async def middle_click(self, x: int, y: int) -> CommandResult:
        return await self._call("middle_click", x, y)

    async def mouse_down(self) -> CommandResult:
        return await self._call("mouse_down")

    async def mouse_up(self) -> CommandResult:
        return await self._call("mouse_up")

    async def drag(self, start_x: int, start_y: int, end_x: int, end_y: int) -> CommandResult:
        return await self._call("drag", start_x, start_y, end_x, end_y)

    async def type_text(self, text: str) -> CommandResult:
        return await self._call("type_text", text)

    async def press_key(self, key: str) -> CommandResult:
        return await self._call("press_key", key)

    async def hotkey(self, keys: list[str]) -> CommandResult:
        return await self._call("hotkey", keys)

    async def key_down(self, key: str) -> CommandResult:
        return await self._call("key_down", key)

    async def key_up(self, key: str) -> CommandResult:
        return await self._call("key_up", key)

    async def scroll(self, direction: str, clicks: int) -> CommandResult:
        return await self._call("scroll", direction, clicks)

    async def run_command(self, command: str) -> CommandResult:
        return await self._call("run_command", command)

    async def read_text(self, path: str) -> CommandResult:
        return await self._call("read_text", path)

    async def write_text(self, path: str, content: str) -> CommandResult:
        return await self._call("write_text", path, content)

    async def list_dir(self, path: str) -> CommandResult:
        return await self._call("list_dir", path)

    async def file_exists(self, path: str) -> CommandResult:
        return await self._call("file_exists", path)

    async def create_dir(self, path: str) -> CommandResult:
        return await self._call("create_dir", path)

    async def delete_file(self, path: str) -> CommandResult:
        return await self._call("delete_file", path)

    async def copy_to_clipboard(self) -> CommandResult:
        return await self._call("copy_to_clipboard")

    async def set_clipboard(self, text: str) -> CommandResult:
        return await self._call("set_clipboard", text)

    async def get_accessibility_tree(self) -> CommandResult:
        return await self._call("get_accessibility_tree")

    async def find_element(self, role: str | None, title: str | None) -> CommandResult:
        return await self._call("find_element", role, title)

    async def close(self) -> None:
        self.closed = True


class StubComputerFactory(ComputerFactory):
    def __init__(self, computer: StubComputer) -> None:
        self.computer = computer
        self.created: list[tuple[str, str]] = []

    def create(self, target: str, host: str) -> StubComputer:
        self.created.append((target, host))
        return self.computer


class ScriptedPlanner(PlannerRepository):
    """Replays a fixed list of responses; an Exception entry is raised instead."""

    def __init__(self, responses: list[PlannerResponse | Exception] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[list[dict[str, Any]]] = []
        self.describe_calls: list[tuple[str, str]] = []
        self.description = "A desktop with a browser window."

    async def plan(self, system: str, messages: list[dict[str, Any]], display: ScreenSize) -> PlannerResponse:
        self.calls.append([dict(m) for m in messages])
        if not self.responses:
            raise AssertionError("planner called more often than scripted")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def describe(self, base64_image: str, prompt: str) -> str:
        self.describe_calls.append((base64_image, prompt))
        return self.description


class MemoryBlobStore(BlobStoreRepository):
    """Dict-backed blob store; ``fail_next`` makes the next N puts raise."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.puts: list[tuple[str, str]] = []
        self.fail_next = 0
        self.always_fail = False

    async def put(self, key: str, body: str) -> str:
        if self.always_fail or self.fail_next > 0:
            self.fail_next = max(self.fail_next - 1, 0)
            raise ConnectionError("blob store unavailable")
        self.data[key] = body
        self.puts.append((key, body))
        return f"mem://{key}"

    async def get(self, key: str) -> str | None:
        return self.data.get(key)


class StubSandboxes(SandboxRepository):
    def __init__(self, sandboxes: list[Sandbox] | None = None) -> None:
        self.sandboxes = sandboxes or [
            Sandbox(name="demo", status="running", host="demo.example.test"),
        ]
        self.operations: list[tuple[str, str]] = []

    async def list_sandboxes(self) -> list[Sandbox]:
        return list(self.sandboxes)

    async def get_sandbox(self, name: str) -> Sandbox:
        for sandbox in self.sandboxes:
            if sandbox.name == name:
                return sandbox
        raise SandboxNotFoundError(name)

    async def _operate(self, operation: str, name: str) -> dict[str, Any]:
        await self.get_sandbox(name)
        self.operations.append((operation, name))
        return {"name": name, "status": operation}

    async def start_sandbox(self, name: str) -> dict[str, Any]:
        return await self._operate("start", name)

    async def stop_sandbox(self, name: str) -> dict[str, Any]:
        return await self._operate("stop", name)

    async def restart_sandbox(self, name: str) -> dict[str, Any]:
        return await self._operate("restart", name)

    async def resolve_host(self, name: str) -> str | None:
        for sandbox in self.sandboxes:
            if sandbox.name == name:
                return sandbox.host
        return None


def reply(*texts: str, stop_reason: str = STOP_END_TURN) -> PlannerResponse:
    """Planner turn made only of text segments."""
    return PlannerResponse(
        segments=[TextSegment(text=t) for t in texts],
        stop_reason=stop_reason,
        content=[{"type": "text", "text": t} for t in texts],
    )


def act(*inputs: dict[str, Any], reasoning: str | None = None) -> PlannerResponse:
    """Planner turn issuing ``inputs`` as directives, optionally preceded by text."""
    segments: list[TextSegment | DirectiveSegment] = []
    content: list[dict[str, Any]] = []
    if reasoning is not None:
        segments.append(TextSegment(text=reasoning))
        content.append({"type": "text", "text": reasoning})
    for index, tool_input in enumerate(inputs):
        tool_id = f"toolu_{index}"
        segments.append(DirectiveSegment(id=tool_id, input=tool_input))
        content.append({"type": "tool_use", "id": tool_id, "name": "computer", "input": tool_input})
    return PlannerResponse(segments=segments, stop_reason=STOP_TOOL_USE, content=content)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fast_settings() -> AgentSettings:
    """Agent settings with all delays removed."""
    return AgentSettings(
        UI_SETTLE_DELAY_MS=0,
        RETRY_DELAY_MS=0,
        RETRY_BACKOFF_BASE_MS=0,
        HEARTBEAT_INTERVAL_MS=5000,
        MAX_WAIT_MS=0,
    )


@pytest.fixture
def computer() -> StubComputer:
    return StubComputer()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def sandboxes() -> StubSandboxes:
    return StubSandboxes()


def _patch_inject_instance(
    monkeypatch: pytest.MonkeyPatch,
    bindings: dict[object, object],
) -> Callable[[object], object]:
    """Patch `inject.instance` to return the stub bound to each interface."""
    import inject

    def fake_instance(interface: object) -> object:
        if interface in bindings:
            return bindings[interface]
        raise RuntimeError(f"Unexpected dependency request: {interface}")

    monkeypatch.setattr(inject, "instance", fake_instance)
    return fake_instance


@pytest.fixture
def stub_bindings(
    computer: StubComputer,
    blob_store: MemoryBlobStore,
    sandboxes: StubSandboxes,
) -> dict[object, object]:
    return {
        BlobStoreRepository: blob_store,
        SandboxRepository: sandboxes,
        ComputerFactory: StubComputerFactory(computer),
        PlannerRepository: ScriptedPlanner(),
        BackgroundRunner: BackgroundRunner(),
    }


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch, stub_bindings: dict[object, object]):
    """FastAPI test client with services wired to the stub repositories."""
    _patch_inject_instance(monkeypatch, stub_bindings)

    # Reload so the module-level services pick up the patched injector.
    routes_module = importlib.reload(importlib.import_module("src.desk_pilot.presentation.routes"))

    app = FastAPI()
    app.include_router(routes_module.router)
    client = TestClient(app)
    return client, stub_bindings
