"""Common interface for job search providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from jobmatch.models.job import JobItem, SearchQuery


class ProviderTestResult(BaseModel):
    available: bool
    message: str = ""


class ProviderStatus(BaseModel):
    healthy: bool
    message: str = ""
    state: str | None = None
    stats: dict | None = None


class JobProvider(ABC):
    """A job search backend. Implementations: JSearchProvider, LinkedInSessionProvider."""

    name: str = "base-provider"

    @abstractmethod
    async def search(self, query: SearchQuery, limit: int = 10) -> list[JobItem]:
        """Return up to ``limit`` normalized jobs for ``query``."""

    @abstractmethod
    async def test(self) -> ProviderTestResult:
        """Check that the provider is usable with its current credentials."""

    @abstractmethod
    async def get_status(self) -> ProviderStatus:
        """Report health without touching the network."""
