from __future__ import annotations

import logging
from typing import Any

import httpx

from src.desk_pilot.domain.exceptions import SandboxApiError, SandboxNotFoundError
from src.desk_pilot.domain.models.sandbox import Sandbox
from src.desk_pilot.domain.repositories import SandboxRepository

logger = logging.getLogger(__name__)

SANDBOX_HOST_SUFFIX = "sandbox.cua.ai"


class CuaSandboxClient(SandboxRepository):
    """Sandbox lifecycle calls against the cloud ``/v1/vms`` API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.cua.ai",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.request(
                method,
                f"{self._base_url}{path}",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
            )
        if response.status_code >= 400:
            raise SandboxApiError(response.status_code, response.text)
        return response.json()

    async def list_sandboxes(self) -> list[Sandbox]:
        payload = await self._request("GET", "/v1/vms")
        return [Sandbox.model_validate(item) for item in payload]

    async def get_sandbox(self, name: str) -> Sandbox:
        # The API has no single-sandbox lookup; filter the listing.
        for sandbox in await self.list_sandboxes():
            if sandbox.name == name:
                return sandbox
        raise SandboxNotFoundError(name)

    async def start_sandbox(self, name: str) -> dict[str, Any]:
        return await self._request("POST", f"/v1/vms/{name}/start")

    async def stop_sandbox(self, name: str) -> dict[str, Any]:
        return await self._request("POST", f"/v1/vms/{name}/stop")

    async def restart_sandbox(self, name: str) -> dict[str, Any]:
        return await self._request("POST", f"/v1/vms/{name}/restart")

    async def resolve_host(self, name: str) -> str | None:
        try:
            sandbox = await self.get_sandbox(name)
        except SandboxNotFoundError:
            return None
        except (SandboxApiError, httpx.HTTPError) as exc:
            logger.warning("Sandbox lookup failed", extra={"sandbox": name, "error": str(exc)})
            return None
        return sandbox.host or f"{name}.{SANDBOX_HOST_SUFFIX}"
