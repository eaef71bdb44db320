from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class AgentSettings(BaseSettings):
    """Budgets and timing constants for the task execution loop."""
    DEFAULT_MAX_STEPS: int = 100
    MAX_STEPS_LIMIT: int = 100
    DEFAULT_TIMEOUT_SECONDS: int = 280
    MAX_TIMEOUT_SECONDS: int = 280

    ITERATION_MULTIPLIER: int = 3
    ROLLING_SUMMARY_SIZE: int = 5

    DEFAULT_DISPLAY_WIDTH: int = 1024
    DEFAULT_DISPLAY_HEIGHT: int = 768
    RECOMMENDED_MAX_WIDTH: int = 1280
    RECOMMENDED_MAX_HEIGHT: int = 800
    ZOOM_REGION_WIDTH: int = 400
    ZOOM_REGION_HEIGHT: int = 300

    RETRY_DELAY_MS: int = 500
    MAX_WAIT_MS: int = 5000
    HEARTBEAT_INTERVAL_MS: int = 5000
    UI_SETTLE_DELAY_MS: int = 500

    PROGRESS_WRITE_RETRIES: int = 2
    RETRY_BACKOFF_BASE_MS: int = 100

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_agent_settings() -> AgentSettings:
    """Return a fresh agent settings instance."""
    return AgentSettings()
