"""
Shared test configuration and fixtures.

Provides an in-memory identity backend that behaves like a push-based auth
service: every sign-in, sign-up and sign-out changes ``current_user`` and
then notifies the registered auth-state listeners synchronously.
"""

from __future__ import annotations

import asyncio
import io
from typing import Awaitable, Callable, Optional

import pytest

from authsession.capabilities import DefaultCapabilities
from authsession.errors import BackendError, BackendErrorCode
from authsession.logger import StructuredLogger
from authsession.models.auth_models import EmailAuthCredential, UserCredential
from authsession.models.enums import SignInMethod
from authsession.services.auth_controller import AuthController
from authsession.storage.memory import InMemoryKeyValueStore

RETURN_URL = "https://app.example.com/auth/callback"
LINK_URL = "https://app.example.com/auth/callback?mode=signIn&oobCode=abc123"


class FakeUser:
    """Signed-in user handle of ``FakeIdentityBackend``."""

    def __init__(self, backend: "FakeIdentityBackend", uid: str, email: str) -> None:
        self._backend = backend
        self.uid = uid
        self.email = email
        self.display_name: Optional[str] = None
        self.email_verified = True
        self.phone_number: Optional[str] = None
        self.photo_url: Optional[str] = None
        self.update_password_calls = 0
        self.reauth_calls = 0
        self.linked: list[EmailAuthCredential] = []

    async def update_password(self, password: str) -> None:
        self.update_password_calls += 1
        self._backend.raise_if_failing("update_password")
        if self._backend.requires_recent_login:
            raise BackendError(BackendErrorCode.REQUIRES_RECENT_LOGIN, "recent login required")
        account = self._backend.accounts[self.email]
        account["password"] = password
        if SignInMethod.PASSWORD not in account["methods"]:
            account["methods"].append(SignInMethod.PASSWORD)

    async def update_profile(self, photo_url: Optional[str] = None) -> None:
        self._backend.raise_if_failing("update_profile")
        self.photo_url = photo_url

    async def reauthenticate_with_credential(self, credential: EmailAuthCredential) -> None:
        self.reauth_calls += 1
        self._backend.raise_if_failing("reauthenticate")
        if self._backend.accounts[credential.email].get("password") != credential.password:
            raise BackendError(BackendErrorCode.WRONG_PASSWORD, "wrong password")
        self._backend.requires_recent_login = False

    async def link_with_credential(self, credential: EmailAuthCredential) -> None:
        self._backend.raise_if_failing("link")
        self.linked.append(credential)


class FakeIdentityBackend:
    """In-memory ``IdentityBackend`` test double."""

    def __init__(self) -> None:
        self.accounts: dict[str, dict] = {}
        self.current_user: Optional[FakeUser] = None
        self.sent_links: list[tuple[str, str]] = []
        self.method_queries: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.requires_recent_login = False
        self.popup_result: Optional[UserCredential] = None
        self.popup_error: Optional[Exception] = None
        self.sign_out_calls = 0
        self.fetch_methods_gate: Optional[asyncio.Event] = None
        self._listeners: list[Callable[[], None]] = []
        self._next_uid = 1

    # -- helpers ----------------------------------------------------------

    def add_account(self, email: str, password: Optional[str] = None, methods: Optional[list[str]] = None) -> None:
        self.accounts[email] = {
            "password": password,
            "methods": list(methods if methods is not None else [SignInMethod.PASSWORD]),
            "uid": f"uid-{self._next_uid}",
        }
        self._next_uid += 1

    def raise_if_failing(self, op: str) -> None:
        err = self.failures.pop(op, None)
        if err is not None:
            raise err

    def notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _sign_in(self, email: str) -> None:
        account = self.accounts[email]
        self.current_user = FakeUser(self, account["uid"], email)
        self.notify()

    # -- IdentityBackend ----------------------------------------------------

    def on_auth_state_changed(self, callback: Callable[[], None]):
        self._listeners.append(callback)
        asyncio.get_running_loop().call_soon(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    async def fetch_sign_in_methods_for_email(self, email: str) -> list[str]:
        self.method_queries.append(email)
        if self.fetch_methods_gate is not None:
            await self.fetch_methods_gate.wait()
        self.raise_if_failing("fetch_methods")
        account = self.accounts.get(email)
        return list(account["methods"]) if account else []

    async def sign_in_with_email_and_password(self, email: str, password: str) -> None:
        self.raise_if_failing("sign_in_password")
        account = self.accounts.get(email)
        if account is None or account.get("password") != password:
            raise BackendError(BackendErrorCode.WRONG_PASSWORD, "wrong password")
        self._sign_in(email)

    async def create_user_with_email_and_password(self, email: str, password: str) -> None:
        self.raise_if_failing("sign_up")
        if email in self.accounts:
            raise BackendError("auth/email-already-in-use", "email already in use")
        self.add_account(email, password)
        self._sign_in(email)

    async def send_sign_in_link_to_email(self, email: str, url: str) -> None:
        self.raise_if_failing("send_link")
        self.sent_links.append((email, url))

    def is_sign_in_with_email_link(self, url: str) -> bool:
        return "oobCode=" in url

    async def sign_in_with_email_link(self, email: str, url: str) -> None:
        self.raise_if_failing("sign_in_link")
        if email not in self.accounts:
            self.add_account(email, methods=[SignInMethod.EMAIL_LINK])
        elif SignInMethod.EMAIL_LINK not in self.accounts[email]["methods"]:
            self.accounts[email]["methods"].append(SignInMethod.EMAIL_LINK)
        self._sign_in(email)

    async def sign_in_with_popup(self, provider_id: str) -> Optional[UserCredential]:
        if self.popup_error is not None:
            raise self.popup_error
        return self.popup_result

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.raise_if_failing("sign_out")
        self.current_user = None
        self.notify()


@pytest.fixture
def backend() -> FakeIdentityBackend:
    return FakeIdentityBackend()


@pytest.fixture
def storage() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="authsession.tests", stream=io.StringIO(), log_file="")


@pytest.fixture
def capabilities(storage: InMemoryKeyValueStore, logger: StructuredLogger) -> DefaultCapabilities:
    return DefaultCapabilities(storage=storage, return_url=RETURN_URL, logger=logger)


@pytest.fixture
def make_controller(
    backend: FakeIdentityBackend,
    capabilities: DefaultCapabilities,
    logger: StructuredLogger,
) -> Callable[[], Awaitable[AuthController]]:
    """Factory that builds a controller and waits for its first reconciliation."""

    async def _make() -> AuthController:
        controller = AuthController(backend, capabilities, logger)
        await controller.settle()
        return controller

    return _make
