from abc import ABC, abstractmethod

from urbifix.common.logging import get_logger


class BaseIntegration(ABC):
    """Something the API depends on outside the database (disk, gateways)."""

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")

    @abstractmethod
    async def health_check(self) -> bool: ...

    async def status(self) -> str:
        """``"ok"`` or ``"unavailable"`` for the health endpoint."""
        try:
            healthy = await self.health_check()
        except OSError as exc:
            self.logger.error("%s health check failed: %s", self.name, exc)
            healthy = False
        return "ok" if healthy else "unavailable"
