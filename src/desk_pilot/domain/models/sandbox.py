from typing import Literal

from pydantic import BaseModel, ConfigDict

SandboxStatus = Literal["pending", "running", "stopped", "stopping", "restarting", "deleting"]


class Sandbox(BaseModel):
    name: str
    status: SandboxStatus | str
    password: str | None = None
    host: str | None = None
    api_url: str | None = None
    vnc_url: str | None = None
    os_type: str | None = None

    model_config = ConfigDict(extra="ignore")
