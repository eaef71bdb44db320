from __future__ import annotations

import json
import logging
import re

from src.desk_pilot.domain.models.command_result import CommandResult
from src.desk_pilot.domain.models.task_result import ScreenSize
from src.desk_pilot.domain.repositories import ComputerRepository
from src.setup.agent_config import AgentSettings

logger = logging.getLogger(__name__)

_DIMENSIONS_RE = re.compile(r"(\d+)\s*[x×,]\s*(\d+)", re.IGNORECASE)


def _from_mapping(data: object) -> ScreenSize | None:
    if not isinstance(data, dict):
        return None
    size = data.get("size")
    if isinstance(size, dict):
        data = size
    width, height = data.get("width"), data.get("height")
    if width and height:
        return ScreenSize(width=int(width), height=int(height))
    return None


def parse_screen_size(result: CommandResult) -> ScreenSize | None:
    """Read dimensions from a get_screen_size reply in any of its known shapes."""
    if not result.success:
        return None
    if result.size:
        size = _from_mapping(result.size)
        if size is not None:
            return size
    if result.content:
        match = _DIMENSIONS_RE.search(result.content)
        if match:
            return ScreenSize(width=int(match.group(1)), height=int(match.group(2)))
        try:
            return _from_mapping(json.loads(result.content))
        except json.JSONDecodeError:
            return None
    return None


async def probe_screen_size(computer: ComputerRepository, settings: AgentSettings) -> ScreenSize:
    """Ask the sandbox for its resolution, falling back to the configured default."""
    try:
        size = parse_screen_size(await computer.get_screen_size())
    except Exception as exc:
        logger.warning("Error getting screen size", extra={"error": str(exc)})
        size = None
    if size is None:
        logger.info("Failed to parse screen size, using defaults")
        size = ScreenSize(
            width=settings.DEFAULT_DISPLAY_WIDTH,
            height=settings.DEFAULT_DISPLAY_HEIGHT,
        )
    if size.width > settings.RECOMMENDED_MAX_WIDTH or size.height > settings.RECOMMENDED_MAX_HEIGHT:
        logger.warning(
            "Screen resolution exceeds recommended maximum; coordinate accuracy may be reduced",
            extra={
                "width": size.width,
                "height": size.height,
                "max_width": settings.RECOMMENDED_MAX_WIDTH,
                "max_height": settings.RECOMMENDED_MAX_HEIGHT,
            },
        )
    return size
