from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelConfig:
    model: str
    tool_type: str
    beta_flag: str
    supports_zoom: bool


MODEL_CONFIGS: dict[str, ModelConfig] = {
    "claude-sonnet-4-5": ModelConfig(
        model="claude-sonnet-4-5-20250929",
        tool_type="computer_20250124",
        beta_flag="computer-use-2025-01-24",
        supports_zoom=False,
    ),
    "claude-opus-4-5": ModelConfig(
        model="claude-opus-4-5-20251101",
        tool_type="computer_20251124",
        beta_flag="computer-use-2025-11-24",
        supports_zoom=True,
    ),
}

DEFAULT_MODEL = "claude-opus-4-5"
FALLBACK_MODEL = "claude-sonnet-4-5"


def get_model_config(name: str | None = None) -> ModelConfig:
    """Look up a named model config; unknown names fall back to Sonnet."""
    key = name or DEFAULT_MODEL
    config = MODEL_CONFIGS.get(key)
    if config is None:
        logger.warning("Unknown model, falling back", extra={"model": key, "fallback": FALLBACK_MODEL})
        return MODEL_CONFIGS[FALLBACK_MODEL]
    return config
