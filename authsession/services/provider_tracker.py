"""
Provider Tracker.

Remembers which provider authenticated the current session.

- The *next provider hint* is an in-memory single slot set right before a
  sign-in call that is expected to trigger a backend notification.  The
  next reconciliation with a signed-in user consumes it (read once, then
  cleared) and persists it.  Last write wins.
- The *durable provider id* lives in the key/value store so the provider
  survives restarts; it is the fallback when no hint is pending.

Two sign-in attempts racing before the first notification arrives can
leave the second attempt's hint to be consumed by the first attempt's
notification.  Hints are not correlated with attempts.
"""

from __future__ import annotations

from typing import Optional

from authsession.interfaces import PersistentKeyValueStore
from authsession.logger import StructuredLogger
from authsession.models.enums import AuthProviders
from authsession.services.base_service import BaseService
from authsession.storage.keys import AUTH_PROVIDER_ID_KEY


class ProviderTracker(BaseService):
    """Transient hint plus durable provider id."""

    def __init__(self, storage: PersistentKeyValueStore, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._storage: PersistentKeyValueStore = storage
        self._next_provider: Optional[AuthProviders] = None

    @property
    def next_provider(self) -> Optional[AuthProviders]:
        """The pending hint, without consuming it."""
        return self._next_provider

    def set_next_provider(self, provider: Optional[AuthProviders]) -> None:
        self._logger.debug("next provider => %s", provider)
        self._next_provider = provider

    async def resolve_provider(self, user_present: bool) -> Optional[AuthProviders]:
        """Work out the provider for a reconciliation.

        Without a user there is no provider and the hint stays pending.
        Otherwise a pending hint wins, is persisted and cleared; failing
        that, the durable id is read back.
        """
        if not user_present:
            return None

        if self._next_provider is not None:
            provider = self._next_provider
            self._next_provider = None
            await self.set_durable_provider(provider)
            return provider

        return await self.get_durable_provider()

    async def get_durable_provider(self) -> Optional[AuthProviders]:
        raw = await self._storage.get_value(AUTH_PROVIDER_ID_KEY) or ""
        if not raw:
            return None
        try:
            return AuthProviders(raw)
        except ValueError:
            self._logger.warning("Ignoring unknown persisted provider id %r", raw)
            return None

    async def set_durable_provider(self, provider: AuthProviders) -> None:
        await self._storage.set_value(AUTH_PROVIDER_ID_KEY, str(provider))

    async def clear_durable_provider(self) -> None:
        await self._storage.remove(AUTH_PROVIDER_ID_KEY)
