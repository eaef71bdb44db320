from src.desk_pilot.infrastructure.llm.models import MODEL_CONFIGS, ModelConfig, get_model_config
from src.desk_pilot.infrastructure.llm.planner import AnthropicPlanner

__all__ = [
    "MODEL_CONFIGS",
    "AnthropicPlanner",
    "ModelConfig",
    "get_model_config",
]
