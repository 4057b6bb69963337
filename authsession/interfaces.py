"""
Collaborator Interfaces.

Structural protocols for everything the session controller consumes but
does not own: the identity backend, the durable key/value store and the
platform capabilities (storage handle, current location URL, federated
sign-out).  Concrete implementations live in ``authsession.backends`` and
``authsession.storage``; tests supply in-memory fakes.
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol, runtime_checkable

from authsession.models.auth_models import EmailAuthCredential, UserCredential


Unsubscribe = Callable[[], None]


@runtime_checkable
class PersistentKeyValueStore(Protocol):
    """Durable, asynchronous string key/value storage.

    Failures propagate to the caller.  Removing a missing key is a no-op.
    """

    async def get_value(self, key: str) -> Optional[str]: ...  # noqa: E704

    async def set_value(self, key: str, value: str) -> None: ...  # noqa: E704

    async def remove(self, key: str) -> None: ...  # noqa: E704


@runtime_checkable
class BackendUser(Protocol):
    """The backend's handle on the signed-in user."""

    uid: str
    display_name: Optional[str]
    email: Optional[str]
    email_verified: bool
    phone_number: Optional[str]
    photo_url: Optional[str]

    async def update_password(self, password: str) -> None: ...  # noqa: E704

    async def update_profile(self, photo_url: Optional[str] = None) -> None: ...  # noqa: E704

    async def reauthenticate_with_credential(self, credential: EmailAuthCredential) -> None: ...  # noqa: E704

    async def link_with_credential(self, credential: EmailAuthCredential) -> None: ...  # noqa: E704


@runtime_checkable
class IdentityBackend(Protocol):
    """Identity provider the controller signs users in against.

    ``on_auth_state_changed`` registers an indefinitely repeating
    notification and returns a callable that cancels it.  The callback is
    invoked synchronously by the backend; it never completes on its own.
    """

    @property
    def current_user(self) -> Optional[BackendUser]: ...  # noqa: E704

    def on_auth_state_changed(self, callback: Callable[[], None]) -> Unsubscribe: ...  # noqa: E704

    async def fetch_sign_in_methods_for_email(self, email: str) -> list[str]: ...  # noqa: E704

    async def sign_in_with_email_and_password(self, email: str, password: str) -> None: ...  # noqa: E704

    async def create_user_with_email_and_password(self, email: str, password: str) -> None: ...  # noqa: E704

    async def send_sign_in_link_to_email(self, email: str, url: str) -> None: ...  # noqa: E704

    def is_sign_in_with_email_link(self, url: str) -> bool: ...  # noqa: E704

    async def sign_in_with_email_link(self, email: str, url: str) -> None: ...  # noqa: E704

    async def sign_in_with_popup(self, provider_id: str) -> Optional[UserCredential]: ...  # noqa: E704

    async def sign_out(self) -> None: ...  # noqa: E704


@runtime_checkable
class ControllerCapabilities(Protocol):
    """Platform-specific pieces injected into the controller."""

    @property
    def storage(self) -> PersistentKeyValueStore: ...  # noqa: E704

    @property
    def location_url(self) -> str: ...  # noqa: E704

    async def google_sign_out(self) -> None: ...  # noqa: E704
