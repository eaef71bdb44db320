from src.desk_pilot.infrastructure.cua.computer import CuaComputerClient, CuaComputerFactory
from src.desk_pilot.infrastructure.cua.sandboxes import CuaSandboxClient

__all__ = [
    "CuaComputerClient",
    "CuaComputerFactory",
    "CuaSandboxClient",
]
