"""
HTTP client for the computer server running inside a sandbox.

Every primitive is one ``POST /cmd`` carrying ``{"command", "params"}``. The
server answers with a server-sent-event style body whose ``data:`` lines hold
JSON payloads; the first payload with a ``success`` field is the result.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from src.desk_pilot.domain.models.command_result import CommandResult
from src.desk_pilot.domain.repositories import ComputerFactory, ComputerRepository

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data: "


def parse_command_response(text: str) -> CommandResult:
    """Pick the structured result out of a streamed computer-server reply."""
    for line in text.split("\n"):
        if not line.startswith(_DATA_PREFIX):
            continue
        try:
            data = json.loads(line[len(_DATA_PREFIX):])
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict) or "success" not in data:
            continue
        # The server calls the screenshot payload image_data or image.
        if not data.get("base64_image"):
            image = data.get("image_data") or data.get("image")
            if image:
                data["base64_image"] = image
        if data.get("content") is not None and not isinstance(data["content"], str):
            data["content"] = json.dumps(data["content"])
        return CommandResult.model_validate(data)

    if "base64" in text or len(text) > 1000:
        return CommandResult(success=True, content=text)
    return CommandResult(success=False, error=f"Unexpected response format: {text[:200]}")


class CuaComputerClient(ComputerRepository):
    def __init__(
        self,
        target: str,
        host: str,
        api_key: str,
        *,
        port: int = 8443,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._target = target
        self._url = f"https://{host}:{port}/cmd"
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "X-Container-Name": target,
                "X-API-Key": api_key,
            },
        )

    async def send_command(self, command: str, params: dict[str, Any] | None = None) -> CommandResult:
        """Send one primitive; transport and HTTP errors come back as failed results."""
        try:
            response = await self._client.post(
                self._url,
                json={"command": command, "params": params or {}},
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "Computer server unreachable",
                extra={"target": self._target, "command": command, "error": str(exc)},
            )
            return CommandResult(
                success=False,
                error=f"Network error connecting to {self._url}: {exc}",
            )

        if response.status_code >= 400:
            return CommandResult(
                success=False,
                error=f"Computer Server error ({response.status_code}): {response.text}",
            )
        return parse_command_response(response.text)

    # screen

    async def screenshot(self) -> CommandResult:
        return await self.send_command("screenshot")

    async def screenshot_region(self, x: int, y: int, width: int, height: int) -> CommandResult:
        return await self.send_command(
            "screenshot", {"region": {"x": x, "y": y, "width": width, "height": height}}
        )

    async def get_screen_size(self) -> CommandResult:
        return await self.send_command("get_screen_size")

    async def get_cursor_position(self) -> CommandResult:
        return await self.send_command("get_cursor_position")

    # mouse

    async def move_cursor(self, x: int, y: int) -> CommandResult:
        return await self.send_command("move_cursor", {"x": x, "y": y})

    async def _click(self, command: str, x: int, y: int) -> CommandResult:
        # Click commands take no coordinates; the cursor is positioned first.
        await self.move_cursor(x, y)
        return await self.send_command(command)

    async def left_click(self, x: int, y: int) -> CommandResult:
        return await self._click("left_click", x, y)

    async def right_click(self, x: int, y: int) -> CommandResult:
        return await self._click("right_click", x, y)

    async def double_click(self, x: int, y: int) -> CommandResult:
        return await self._click("double_click", x, y)

    async def triple_click(self, x: int, y: int) -> CommandResult:
        return await self._click("triple_click", x, y)

    async def middle_click(self, x: int, y: int) -> CommandResult:
        return await self._click("middle_click", x, y)

    async def mouse_down(self) -> CommandResult:
        return await self.send_command("mouse_down")

    async def mouse_up(self) -> CommandResult:
        return await self.send_command("mouse_up")

    async def drag(self, start_x: int, start_y: int, end_x: int, end_y: int) -> CommandResult:
        await self.move_cursor(start_x, start_y)
        await self.mouse_down()
        await self.move_cursor(end_x, end_y)
        return await self.mouse_up()

    async def scroll(self, direction: str, clicks: int) -> CommandResult:
        return await self.send_command(f"scroll_{direction}", {"clicks": clicks})

    # keyboard

    async def type_text(self, text: str) -> CommandResult:
        return await self.send_command("type_text", {"text": text})

    async def press_key(self, key: str) -> CommandResult:
        return await self.send_command("press_key", {"key": key})

    async def hotkey(self, keys: list[str]) -> CommandResult:
        return await self.send_command("hotkey", {"keys": keys})

    async def key_down(self, key: str) -> CommandResult:
        return await self.send_command("key_down", {"key": key})

    async def key_up(self, key: str) -> CommandResult:
        return await self.send_command("key_up", {"key": key})

    # shell and files

    async def run_command(self, command: str) -> CommandResult:
        return await self.send_command("run_command", {"command": command})

    async def read_text(self, path: str) -> CommandResult:
        return await self.send_command("read_text", {"path": path})

    async def write_text(self, path: str, content: str) -> CommandResult:
        return await self.send_command("write_text", {"path": path, "content": content})

    async def list_dir(self, path: str) -> CommandResult:
        return await self.send_command("list_dir", {"path": path})

    async def file_exists(self, path: str) -> CommandResult:
        return await self.send_command("file_exists", {"path": path})

    async def create_dir(self, path: str) -> CommandResult:
        return await self.send_command("create_dir", {"path": path})

    async def delete_file(self, path: str) -> CommandResult:
        return await self.send_command("delete_file", {"path": path})

    # clipboard and accessibility

    async def copy_to_clipboard(self) -> CommandResult:
        return await self.send_command("copy_to_clipboard")

    async def set_clipboard(self, text: str) -> CommandResult:
        return await self.send_command("set_clipboard", {"text": text})

    async def get_accessibility_tree(self) -> CommandResult:
        return await self.send_command("get_accessibility_tree")

    async def find_element(self, role: str | None, title: str | None) -> CommandResult:
        params = {k: v for k, v in (("role", role), ("title", title)) if v is not None}
        return await self.send_command("find_element", params)

    async def close(self) -> None:
        await self._client.aclose()


class CuaComputerFactory(ComputerFactory):
    def __init__(
        self,
        api_key: str,
        *,
        port: int = 8443,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._port = port
        self._timeout = timeout
        self._transport = transport

    def create(self, target: str, host: str) -> CuaComputerClient:
        return CuaComputerClient(
            target,
            host,
            self._api_key,
            port=self._port,
            timeout=self._timeout,
            transport=self._transport,
        )
