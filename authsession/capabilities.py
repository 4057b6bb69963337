"""
Default Controller Capabilities.

``DefaultCapabilities`` bundles the durable store with a mutable location
URL.  The location starts as the configured return URL (sent with magic
links) and is switched to the incoming link with ``open_url`` when the app
is reopened from an email.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from authsession.interfaces import PersistentKeyValueStore
from authsession.logger import StructuredLogger


class DefaultCapabilities:
    """Capability object for desktop and CLI hosts.

    Parameters
    ----------
    storage:
        Durable key/value store.
    return_url:
        URL magic links and OAuth redirects return to.
    logger:
        Structured logger.
    google_sign_out:
        Optional coroutine function that ends a platform Google session.
        Hosts without a separate Google session leave it unset.
    """

    def __init__(
        self,
        storage: PersistentKeyValueStore,
        return_url: str,
        logger: StructuredLogger,
        google_sign_out: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._storage: PersistentKeyValueStore = storage
        self._return_url: str = return_url
        self._location_url: str = return_url
        self._logger: StructuredLogger = logger
        self._google_sign_out = google_sign_out

    @property
    def storage(self) -> PersistentKeyValueStore:
        return self._storage

    @property
    def location_url(self) -> str:
        return self._location_url

    def open_url(self, url: str) -> None:
        """Record the URL the app was (re)opened with."""
        self._location_url = url

    def reset_location(self) -> None:
        self._location_url = self._return_url

    async def google_sign_out(self) -> None:
        if self._google_sign_out is None:
            self._logger.debug("No platform Google session to sign out of.")
            return
        await self._google_sign_out()
