from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class CuaSettings(BaseSettings):
    """Credentials and endpoints for the sandbox API and the planning model."""
    CUA_API_KEY: str = ""
    CUA_API_BASE: str = "https://api.cua.ai"
    CUA_COMPUTER_PORT: int = 8443
    CUA_REQUEST_TIMEOUT_SECONDS: float = 60.0

    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MAX_RETRIES: int = 4
    CUA_MODEL: str = "claude-opus-4-5"
    PLANNER_MAX_TOKENS: int = 4096

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_cua_settings() -> CuaSettings:
    """Return a fresh sandbox/planner settings instance."""
    return CuaSettings()
