from src.desk_pilot.application.actions.registry import (
    ACTION_REGISTRY,
    OBSERVATION_ACTIONS,
    ActionHandler,
    ActionKind,
    ActionSpec,
    describe_action_set,
    get_action_spec,
)

__all__ = [
    "ACTION_REGISTRY",
    "OBSERVATION_ACTIONS",
    "ActionHandler",
    "ActionKind",
    "ActionSpec",
    "describe_action_set",
    "get_action_spec",
]
