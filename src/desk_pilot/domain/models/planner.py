from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"


class TextSegment(BaseModel):
    type: Literal["text"] = "text"
    text: str


class DirectiveSegment(BaseModel):
    type: Literal["directive"] = "directive"
    id: str = Field(description="Planner-assigned id echoed back with the result.")
    input: dict[str, Any] = Field(default_factory=dict)


PlannerSegment = Annotated[TextSegment | DirectiveSegment, Field(discriminator="type")]


class PlannerResponse(BaseModel):
    segments: list[PlannerSegment] = Field(default_factory=list)
    stop_reason: str | None = None
    content: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Assistant turn as it must be replayed in the dialogue.",
    )

    @property
    def texts(self) -> list[str]:
        return [s.text for s in self.segments if isinstance(s, TextSegment)]

    @property
    def directives(self) -> list[DirectiveSegment]:
        return [s for s in self.segments if isinstance(s, DirectiveSegment)]
