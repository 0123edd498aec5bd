from abc import ABC, abstractmethod

from ninofi.common.logging import get_logger


class BaseIntegration(ABC):
    """Common base for the payment and geocoding clients.

    Subclasses report whether they run against the real provider or the
    built-in mock, and expose a health check for the ``/health`` endpoint.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")

    @property
    @abstractmethod
    def is_mock(self) -> bool:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the provider is reachable (always True in mock mode)."""
        ...

    async def status(self) -> dict[str, object]:
        return {"mock": self.is_mock, "healthy": await self.health_check()}
