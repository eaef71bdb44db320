from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class ActionContext:
    """Display bounds and timing knobs shared by every action handler."""

    display_width: int
    display_height: int
    retry_delay_ms: int = 500
    max_wait_ms: int = 5000
    zoom_width: int = 400
    zoom_height: int = 300


class ActionResult(BaseModel):
    content: str | list[dict[str, Any]] = Field(
        description="Text message or image blocks returned to the planner."
    )
    success: bool
    error: str | None = None
    result: str | None = Field(
        default=None, description="Short outcome text recorded on the step."
    )

    @classmethod
    def failure(cls, message: str, error: str | None = None) -> "ActionResult":
        return cls(content=message, success=False, error=error or message)

    @classmethod
    def image(cls, base64_image: str, result: str | None = None) -> "ActionResult":
        return cls(
            content=[
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": "image/png",
                        "data": base64_image,
                    },
                }
            ],
            success=True,
            result=result,
        )

    @property
    def text(self) -> str | None:
        return self.content if isinstance(self.content, str) else None
