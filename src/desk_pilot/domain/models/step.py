from pydantic import BaseModel, Field

from src.desk_pilot.domain.models.directive import Coordinate


class AgentStep(BaseModel):
    step: int = Field(description="1-based dispatch sequence number.")
    action: str
    reasoning: str | None = None
    coordinates: Coordinate | None = None
    result: str | None = None
    success: bool = True
    error: str | None = None
