from __future__ import annotations

import logging
from typing import Any

import anthropic

from src.desk_pilot.domain.models.planner import (
    DirectiveSegment,
    PlannerResponse,
    PlannerSegment,
    TextSegment,
)
from src.desk_pilot.domain.models.task_result import ScreenSize
from src.desk_pilot.domain.repositories import PlannerRepository
from src.desk_pilot.infrastructure.llm.models import ModelConfig

logger = logging.getLogger(__name__)

DESCRIBE_MAX_TOKENS = 1500


def build_computer_tool(config: ModelConfig, display: ScreenSize) -> dict[str, Any]:
    tool: dict[str, Any] = {
        "type": config.tool_type,
        "name": "computer",
        "display_width_px": display.width,
        "display_height_px": display.height,
        "display_number": 1,
    }
    if config.supports_zoom:
        tool["enable_zoom"] = True
    return tool


def parse_message(message: Any) -> PlannerResponse:
    """Split an Anthropic message into text and directive segments plus replayable content."""
    segments: list[PlannerSegment] = []
    content: list[dict[str, Any]] = []
    for block in message.content:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            text = getattr(block, "text", "")
            segments.append(TextSegment(text=text))
            content.append({"type": "text", "text": text})
        elif block_type == "tool_use":
            tool_input = dict(getattr(block, "input", None) or {})
            segments.append(DirectiveSegment(id=block.id, input=tool_input))
            content.append(
                {"type": "tool_use", "id": block.id, "name": block.name, "input": tool_input}
            )
        else:
            logger.debug("Skipping unsupported content block", extra={"block_type": block_type})
    return PlannerResponse(segments=segments, stop_reason=message.stop_reason, content=content)


class AnthropicPlanner(PlannerRepository):
    def __init__(
        self,
        api_key: str,
        config: ModelConfig,
        *,
        max_tokens: int = 4096,
        max_retries: int = 4,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._config = config
        self._max_tokens = max_tokens
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=max_retries)

    @property
    def config(self) -> ModelConfig:
        return self._config

    async def plan(
        self,
        system: str,
        messages: list[dict[str, Any]],
        display: ScreenSize,
    ) -> PlannerResponse:
        message = await self._client.beta.messages.create(
            model=self._config.model,
            max_tokens=self._max_tokens,
            system=system,
            tools=[build_computer_tool(self._config, display)],
            messages=messages,
            betas=[self._config.beta_flag],
        )
        logger.debug(
            "Planner response",
            extra={"stop_reason": message.stop_reason, "blocks": len(message.content)},
        )
        return parse_message(message)

    async def describe(self, base64_image: str, prompt: str) -> str:
        message = await self._client.messages.create(
            model=self._config.model,
            max_tokens=DESCRIBE_MAX_TOKENS,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": base64_image,
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        )
        for block in message.content:
            if getattr(block, "type", None) == "text":
                return block.text
        return ""
