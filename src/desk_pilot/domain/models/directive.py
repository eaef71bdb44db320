from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Coordinate = tuple[int, int]
ScrollDirection = Literal["up", "down", "left", "right"]


class ActionDirective(BaseModel):
    """One action instruction issued by the planner."""

    action: str = Field(description="Key into the action registry.")
    coordinate: Coordinate | None = None
    start_coordinate: Coordinate | None = None
    text: str | None = None
    key: str | None = None
    scroll_direction: str | None = None
    scroll_amount: int | None = None
    duration: float | None = None
    command: str | None = None
    path: str | None = None
    content: str | None = None

    model_config = ConfigDict(extra="ignore")
