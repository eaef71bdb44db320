from __future__ import annotations

import logging

from src.desk_pilot.domain.repositories import ComputerRepository

logger = logging.getLogger(__name__)


class HeldKeys:
    """
    Modifier keys currently held down on the remote computer.

    The computer-use tool has no compound "shift+click" primitive, so a held
    key is released right after the next interaction: hold -> act -> release.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def hold(self, key: str) -> None:
        self._keys.add(key.lower())
        logger.info("Key held", extra={"key": key, "held": len(self._keys)})

    async def release_all(self, computer: ComputerRepository) -> list[str]:
        """Issue one key-up per held key; the set is emptied even if a release fails."""
        if not self._keys:
            return []
        released: list[str] = []
        keys = sorted(self._keys)
        self._keys.clear()
        for key in keys:
            try:
                result = await computer.key_up(key)
            except Exception as exc:
                logger.warning("Failed to auto-release key", extra={"key": key, "error": str(exc)})
                continue
            if not result.success:
                logger.warning(
                    "Failed to auto-release key",
                    extra={"key": key, "error": result.error},
                )
                continue
            released.append(key)
        logger.info("Auto-released held keys", extra={"keys": released})
        return released
