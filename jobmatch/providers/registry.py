"""One session scraping provider per user credential, shared across runs."""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from jobmatch.config import Settings
from jobmatch.errors import CryptoError, PersistenceError
from jobmatch.models.secret import LINKEDIN_COOKIE_KEY
from jobmatch.providers.linkedin import LinkedInSessionProvider
from jobmatch.providers.resilience import ProviderStats
from jobmatch.security.crypto import CryptoBox
from jobmatch.storage.database import RunRepository

logger = logging.getLogger(__name__)


class SessionProviderRegistry:
    """Hands out LinkedInSessionProvider instances keyed by user id.

    The cookie is decrypted on every ``get()`` and never cached in plaintext
    outside the provider. A provider whose stored secret is ``blocked`` comes
    back blocked, so the circuit survives process restarts.
    """

    def __init__(
        self,
        repository: RunRepository,
        crypto: CryptoBox | None,
        settings: Settings,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self.repository = repository
        self.crypto = crypto
        self.settings = settings
        self._client_factory = client_factory
        self._providers: dict[str, LinkedInSessionProvider] = {}

    def get(self, user_id: str | None) -> LinkedInSessionProvider | None:
        if not user_id:
            return None
        if self.crypto is None:
            logger.warning("KMS_SECRET_KEY not configured, session provider unavailable")
            return None

        secret = self.repository.get_secret(user_id, LINKEDIN_COOKIE_KEY)
        if secret is None:
            return None

        try:
            cookie = self.crypto.decrypt(secret.blob)
        except CryptoError as e:
            logger.error("Stored session cookie for user %s cannot be decrypted: %s", user_id, e)
            self.repository.update_secret_status(user_id, LINKEDIN_COOKIE_KEY, "invalid")
            return None

        provider = self._providers.get(user_id)
        if provider is None:
            provider = LinkedInSessionProvider(
                cookie=cookie,
                enabled=self.settings.linkedin_enabled,
                base_url=self.settings.linkedin_base_url,
                timeout=self.settings.linkedin_timeout,
                client=self._client_factory() if self._client_factory else None,
                stats=ProviderStats(blocked=secret.status == "blocked"),
                on_blocked=lambda stats: self._persist_blocked(user_id),
            )
            self._providers[user_id] = provider
        else:
            provider.update_credential(cookie)
        return provider

    def reset(self, user_id: str) -> bool:
        """Unblock the user's provider in memory and in storage."""
        provider = self._providers.get(user_id)
        if provider is not None:
            provider.reset()
        updated = self.repository.update_secret_status(user_id, LINKEDIN_COOKIE_KEY, "active")
        return updated or provider is not None

    async def discard(self, user_id: str) -> None:
        """Forget the cached instance, e.g. after a new cookie was saved."""
        provider = self._providers.pop(user_id, None)
        if provider is not None:
            await provider.aclose()

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()
        self._providers.clear()

    def _persist_blocked(self, user_id: str) -> None:
        try:
            self.repository.update_secret_status(user_id, LINKEDIN_COOKIE_KEY, "blocked")
        except PersistenceError as e:
            logger.error("Could not persist blocked status for user %s: %s", user_id, e)
