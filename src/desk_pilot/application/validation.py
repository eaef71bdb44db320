"""Coordinate checks applied before any pointer action reaches the computer."""

from __future__ import annotations

from dataclasses import dataclass

from src.desk_pilot.domain.models.directive import ActionDirective, Coordinate


@dataclass(frozen=True)
class CoordinateCheck:
    valid: bool
    error: str | None = None
    x: int = 0
    y: int = 0


def validate_coordinates(x: int, y: int, width: int, height: int) -> CoordinateCheck:
    """Accept ``(x, y)`` iff it lies inside a ``width`` x ``height`` display."""
    if x < 0 or x >= width or y < 0 or y >= height:
        return CoordinateCheck(
            valid=False,
            error=f"Coordinates ({x}, {y}) are outside display bounds ({width}x{height})",
        )
    return CoordinateCheck(valid=True, x=x, y=y)


def check_coordinate(coordinate: Coordinate | None, width: int, height: int) -> CoordinateCheck:
    if coordinate is None:
        return CoordinateCheck(valid=False, error="Action requires coordinate")
    x, y = coordinate
    return validate_coordinates(x, y, width, height)


def extract_coordinates(directive: ActionDirective, width: int, height: int) -> CoordinateCheck:
    """Validate and unpack the directive's primary coordinate."""
    return check_coordinate(directive.coordinate, width, height)
