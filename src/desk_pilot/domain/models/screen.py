from typing import Literal

from pydantic import BaseModel

DescribeFocus = Literal["ui", "text", "full"]


class ScreenDescription(BaseModel):
    success: bool
    focus: DescribeFocus
    description: str | None = None
    error: str | None = None
