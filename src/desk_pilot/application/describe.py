from __future__ import annotations

import logging

from src.desk_pilot.application.actions.handlers import capture_screenshot
from src.desk_pilot.application.prompts import build_describe_prompt
from src.desk_pilot.domain.models.screen import DescribeFocus, ScreenDescription
from src.desk_pilot.domain.repositories import ComputerRepository, PlannerRepository

logger = logging.getLogger(__name__)


async def describe_screen(
    computer: ComputerRepository,
    planner: PlannerRepository,
    focus: DescribeFocus = "ui",
    question: str | None = None,
    retry_delay_ms: int = 500,
) -> ScreenDescription:
    """Screenshot the display and ask the vision model about it."""
    try:
        shot = await capture_screenshot(computer, retry_delay_ms)
        if not shot.has_image:
            return ScreenDescription(
                success=False,
                focus=focus,
                error=shot.error or "Failed to capture screenshot",
            )
        description = await planner.describe(
            shot.base64_image,  # type: ignore[arg-type]
            build_describe_prompt(focus, question),
        )
    except Exception as exc:
        logger.warning("Screen description failed", extra={"focus": focus, "error": str(exc)})
        return ScreenDescription(success=False, focus=focus, error=str(exc))
    return ScreenDescription(
        success=True,
        focus=focus,
        description=description or "No description generated",
    )
