import asyncio
import json

import pytest

from src.desk_pilot.application.orchestrator import (
    CONTINUE_PROMPT,
    TaskOrchestrator,
    extract_rationale,
    find_marker,
)
from src.desk_pilot.application.progress import ProgressStore, progress_key
from src.desk_pilot.domain.models.command_result import CommandResult
from src.desk_pilot.domain.models.planner import STOP_END_TURN, PlannerResponse
from src.desk_pilot.domain.models.task import Task
from src.desk_pilot.domain.models.task_state import TaskState, TerminationReason
from src.setup.agent_config import AgentSettings
from tests.conftest import (
    FakeClock,
    MemoryBlobStore,
    ScriptedPlanner,
    StubComputer,
    StubComputerFactory,
    act,
    reply,
)


def _task(max_steps: int = 10, timeout_seconds: int = 60) -> Task:
    return Task(
        id="task_test",
        target="demo",
        host="demo.example.test",
        goal="open the browser",
        max_steps=max_steps,
        timeout_seconds=timeout_seconds,
    )


def _build(
    planner: ScriptedPlanner,
    computer: StubComputer,
    blob_store: MemoryBlobStore,
    settings: AgentSettings,
    clock: FakeClock | None = None,
) -> tuple[TaskOrchestrator, ProgressStore]:
    store = ProgressStore(blob_store=blob_store, settings=settings)
    orchestrator = TaskOrchestrator(
        planner=planner,
        computer_factory=StubComputerFactory(computer),
        progress_store=store,
        settings=settings,
        clock=clock or FakeClock(),
    )
    return orchestrator, store


def _click(x: int, y: int) -> dict:
    return {"action": "left_click", "coordinate": [x, y]}


def _progress_writes(blob_store: MemoryBlobStore) -> list[dict]:
    key = progress_key("task_test")
    return [json.loads(body) for k, body in blob_store.puts if k == key]


def test_find_marker_and_rationale() -> None:
    marker = find_marker(["Looking at the screen", "TASK_FAILED: no network "])

    assert marker.completed is False
    assert marker.text == "no network"
    assert find_marker(["nothing here"]) is None
    assert extract_rationale(["first", "  ", "second "]) == "second"
    assert extract_rationale([]) is None


@pytest.mark.asyncio
async def test_immediate_completion_marker(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([reply("TASK_COMPLETE: Opened app")])
    orchestrator, store = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.success is True
    assert result.summary == "Opened app"
    assert result.steps_taken == 0
    assert result.reason is TerminationReason.COMPLETED
    progress = await store.read_progress("task_test")
    assert progress.status is TaskState.COMPLETED
    assert progress.final_result.summary == "Opened app"
    assert computer.closed is True


@pytest.mark.asyncio
async def test_out_of_bounds_click_is_failed_step_and_loop_continues(
    blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    computer = StubComputer(width=10, height=10)
    planner = ScriptedPlanner([act(_click(50, 50)), reply("TASK_COMPLETE: done")])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.success is True
    assert len(planner.calls) == 2
    step = result.steps[0]
    assert step.success is False
    assert "outside display bounds (10x10)" in step.error
    assert "left_click" not in computer.names()
    tool_result = planner.calls[1][-1]["content"][0]
    assert tool_result["tool_use_id"] == "toolu_0"
    assert tool_result["is_error"] is True


@pytest.mark.asyncio
async def test_step_budget_checked_before_next_planner_call(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([act(_click(10, 10))])
    orchestrator, store = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task(max_steps=1))

    assert len(planner.calls) == 1
    assert result.success is False
    assert result.reason is TerminationReason.STEP_BUDGET_EXHAUSTED
    assert result.error == "Reached 1 action limit (1 actions taken)"
    progress = await store.read_progress("task_test")
    assert progress.status is TaskState.FAILED
    assert progress.current_step == 1


@pytest.mark.asyncio
async def test_surplus_directives_are_not_executed(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([act(_click(1, 1), _click(2, 2))])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task(max_steps=1))

    assert computer.names().count("left_click") == 1
    assert result.steps_taken == 1
    assert result.steps[1].success is False
    assert result.steps[1].error == "Step budget exhausted; action not executed"
    assert all(p["current_step"] <= 1 for p in _progress_writes(blob_store))


@pytest.mark.asyncio
async def test_timeout_reports_budget(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    clock = FakeClock()

    class SlowPlanner(ScriptedPlanner):
        async def plan(self, system, messages, display) -> PlannerResponse:
            clock.advance(40)
            return await super().plan(system, messages, display)

    planner = SlowPlanner([act({"action": "cursor_position"}), act({"action": "cursor_position"})])
    orchestrator, store = _build(planner, computer, blob_store, fast_settings, clock=clock)

    result = await orchestrator.execute(_task(timeout_seconds=60))

    assert result.success is False
    assert result.reason is TerminationReason.TIMEOUT
    assert result.error == "Timeout after 60s"
    assert result.steps_taken == 2
    progress = await store.read_progress("task_test")
    assert progress.status is TaskState.TIMEOUT


@pytest.mark.asyncio
async def test_held_key_released_once_after_next_interaction(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner(
        [
            act(
                {"action": "hold_key", "key": "shift"},
                _click(10, 10),
                {"action": "type", "text": "x"},
            ),
            reply("TASK_COMPLETE: selected"),
        ]
    )
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert computer.names() == ["get_screen_size", "key_down", "left_click", "key_up", "type_text"]
    assert computer.calls[3] == ("key_up", ("shift",))
    assert result.steps_taken == 3


@pytest.mark.asyncio
async def test_held_key_released_when_interaction_fails(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    computer.raises["left_click"] = ConnectionError("display lost")
    planner = ScriptedPlanner(
        [
            act({"action": "hold_key", "text": "ctrl"}, _click(10, 10)),
            reply("TASK_COMPLETE: done"),
        ]
    )
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert computer.names().count("key_up") == 1
    click_step = result.steps[1]
    assert click_step.success is False
    assert click_step.error == "display lost"
    assert result.steps_taken == 2


@pytest.mark.asyncio
async def test_held_key_released_when_interaction_is_malformed(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner(
        [
            act({"action": "hold_key", "text": "shift"}, {"action": "left_click", "coordinate": [10.5, 10]}),
            act({"action": "type", "text": "x"}),
            reply("TASK_COMPLETE: done"),
        ]
    )
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert computer.names() == ["get_screen_size", "key_down", "key_up", "type_text"]
    click_step = result.steps[1]
    assert click_step.success is False
    assert click_step.error.startswith("Invalid left_click directive")
    assert result.steps_taken == 3


@pytest.mark.asyncio
async def test_observations_are_free_and_wait_does_not_release(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner(
        [
            act(
                {"action": "hold_key", "key": "alt"},
                {"action": "screenshot"},
                {"action": "zoom", "coordinate": [500, 400]},
                {"action": "wait", "duration": 10},
            ),
            reply("TASK_COMPLETE: looked"),
        ]
    )
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.steps_taken == 2
    assert "key_up" not in computer.names()


@pytest.mark.asyncio
async def test_rolling_summary_keeps_last_five(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner(
        [act(*[_click(i, i) for i in range(1, 8)]), reply("TASK_COMPLETE: clicked")]
    )
    orchestrator, store = _build(planner, computer, blob_store, fast_settings)

    await orchestrator.execute(_task())

    progress = await store.read_progress("task_test")
    assert progress.steps_summary == [f"Click at ({i}, {i})" for i in range(3, 8)]
    assert progress.current_step == 7
    steps = [p["current_step"] for p in _progress_writes(blob_store)]
    assert steps == sorted(steps)
    assert all(len(p["steps_summary"]) <= 5 for p in _progress_writes(blob_store))


@pytest.mark.asyncio
async def test_iteration_cap_on_observation_only_loop(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([act({"action": "screenshot"}) for _ in range(6)])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task(max_steps=2))

    assert len(planner.calls) == 6
    assert result.reason is TerminationReason.ITERATION_LIMIT_REACHED
    assert result.error == "Safety limit reached (6 total iterations)"
    assert result.steps_taken == 0


@pytest.mark.asyncio
async def test_unknown_action_does_not_abort(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([act({"action": "teleport"}), reply("TASK_COMPLETE: fine")])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.success is True
    assert result.steps[0].error == "Unknown action: teleport"
    assert result.steps_taken == 0


@pytest.mark.asyncio
async def test_planner_fault_fails_task(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([RuntimeError("overloaded")])
    orchestrator, store = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.success is False
    assert result.reason is TerminationReason.AGENT_ERROR
    assert result.summary == "Agent error: overloaded"
    assert result.error == "overloaded"
    assert (await store.read_progress("task_test")).status is TaskState.FAILED


@pytest.mark.asyncio
async def test_planner_failure_marker(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([reply("TASK_FAILED: app not installed")])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.success is False
    assert result.reason is TerminationReason.PLANNER_FAILED
    assert result.summary == "app not installed"


@pytest.mark.asyncio
async def test_marker_takes_priority_over_directives(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    response = act(_click(5, 5), reasoning="TASK_COMPLETE: already open")
    planner = ScriptedPlanner([response])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.success is True
    assert computer.names() == ["get_screen_size"]
    assert result.steps == []


@pytest.mark.asyncio
async def test_implicit_completion_on_end_turn(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([reply("The browser is open.")])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.success is True
    assert result.summary == "The browser is open."


@pytest.mark.asyncio
async def test_implicit_completion_default_summary(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner([PlannerResponse(stop_reason=STOP_END_TURN)])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.summary == "Task completed"


@pytest.mark.asyncio
async def test_truncated_turn_keeps_dialogue_alternating(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner(
        [reply("Let me think", stop_reason="max_tokens"), reply("TASK_COMPLETE: ok")]
    )
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    await orchestrator.execute(_task())

    second = planner.calls[1]
    assert [m["role"] for m in second] == ["user", "assistant", "user"]
    assert second[-1]["content"] == CONTINUE_PROMPT


@pytest.mark.asyncio
async def test_rationale_attached_to_steps_and_progress(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    planner = ScriptedPlanner(
        [act(_click(3, 4), reasoning="Clicking the start menu"), reply("TASK_COMPLETE: ok")]
    )
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task())

    assert result.steps[0].reasoning == "Clicking the start menu"
    committed = _progress_writes(blob_store)[1]
    assert committed["current_step"] == 1
    assert committed["last_action"]["action"] == "left_click"
    assert committed["last_reasoning"] == "Clicking the start menu"


@pytest.mark.asyncio
async def test_screen_size_fallback_and_preinitialised_progress(
    computer: StubComputer, blob_store: MemoryBlobStore, fast_settings: AgentSettings
) -> None:
    computer.queue("get_screen_size", CommandResult(success=False, error="unsupported"))
    planner = ScriptedPlanner([reply("TASK_COMPLETE: ok")])
    orchestrator, _ = _build(planner, computer, blob_store, fast_settings)

    result = await orchestrator.execute(_task(), task_id="task_test", progress_handle="mem://given")

    assert (result.screen_size.width, result.screen_size.height) == (1024, 768)
    assert result.progress_url == "mem://given"
    # Only the final write; the record was initialised by the caller.
    assert len(_progress_writes(blob_store)) == 1


@pytest.mark.asyncio
async def test_heartbeat_writes_while_planner_is_busy(
    computer: StubComputer, blob_store: MemoryBlobStore
) -> None:
    settings = AgentSettings(
        UI_SETTLE_DELAY_MS=0, RETRY_DELAY_MS=0, RETRY_BACKOFF_BASE_MS=0, HEARTBEAT_INTERVAL_MS=10
    )

    class BusyPlanner(ScriptedPlanner):
        async def plan(self, system, messages, display) -> PlannerResponse:
            await asyncio.sleep(0.08)
            return await super().plan(system, messages, display)

    planner = BusyPlanner([reply("TASK_COMPLETE: ok")])
    orchestrator, _ = _build(planner, computer, blob_store, settings)

    await orchestrator.execute(_task())

    writes = _progress_writes(blob_store)
    # initial commit, at least one heartbeat, final record
    assert len(writes) >= 3
    assert all(w["status"] == "running" for w in writes[:-1])
    assert writes[-1]["status"] == "completed"
