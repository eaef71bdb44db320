from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CommandResult(BaseModel):
    """Outcome of one primitive call against the remote computer server."""

    success: bool
    content: str | None = None
    error: str | None = None
    base64_image: str | None = None
    size: dict[str, Any] | None = Field(
        default=None, description="Screen size payload for get_screen_size."
    )

    model_config = ConfigDict(extra="ignore")

    @property
    def has_image(self) -> bool:
        return self.success and bool(self.base64_image)
