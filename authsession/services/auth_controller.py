"""
Authentication Session Controller.

Single entry point for every sign-in concern on the client: password
sign-in and sign-up, magic links, Google sign-in, password changes,
profile photo updates and sign-out.

Explicit calls only *prime* session metadata (the provider hint, durable
flags) and call the backend.  The actual state transition is driven by the
backend's auth-state notification, which the controller turns into a
reconciliation task running under the ``InitializationGate``.

The notification subscription lives as long as the controller; call
``dispose()`` (or use ``async with``) to cancel it together with any
reconciliation still in flight.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Optional

from authsession.errors import BackendErrorCode, error_code, is_cancellation
from authsession.events import Event, EventSubscriber, FlagSignal, SnapshotSignal
from authsession.gate import InitializationGate
from authsession.interfaces import ControllerCapabilities, IdentityBackend, PersistentKeyValueStore
from authsession.logger import StructuredLogger
from authsession.models.auth_models import (
    AuthResult,
    AuthUserWithProviders,
    EmailAuthProvider,
    MagicLinkResult,
    UserCredential,
)
from authsession.models.enums import AuthProviders, MagicLinkRequestReasons, SignInMethod
from authsession.services.base_service import BaseService
from authsession.services.magic_link import MagicLinkFlow
from authsession.services.password import ReauthenticationFlow
from authsession.services.provider_tracker import ProviderTracker
from authsession.services.session_state import SessionStateMachine
from authsession.storage.keys import MAGIC_LINK_REASON_KEY, PASSWORD_RESET_REQUESTED_KEY
from authsession.utils.general import prepare_email


class AuthController(BaseService):
    """Client-side auth session controller.

    Must be constructed inside a running event loop: the backend
    subscription is registered immediately and notifications are turned
    into tasks on that loop.

    Parameters
    ----------
    backend:
        Identity backend handle.
    capabilities:
        Platform capabilities (durable store, location URL, Google sign-out).
    logger:
        Structured JSON logger.
    state_machine_cls:
        ``SessionStateMachine`` subclass to use, e.g. one overriding
        ``create_auth_user`` to enrich snapshots.
    """

    def __init__(
        self,
        backend: IdentityBackend,
        capabilities: ControllerCapabilities,
        logger: StructuredLogger,
        state_machine_cls: type[SessionStateMachine] = SessionStateMachine,
    ) -> None:
        super().__init__(logger)
        self._backend: IdentityBackend = backend
        self._capabilities: ControllerCapabilities = capabilities

        self._gate: InitializationGate = InitializationGate()
        self._tracker: ProviderTracker = ProviderTracker(self._storage, logger)
        self._state: SessionStateMachine = state_machine_cls(
            backend, self._storage, self._tracker, self._gate, logger,
        )
        self._magic_link: MagicLinkFlow = MagicLinkFlow(
            backend, capabilities, self._tracker, self._state, logger,
        )
        self._password: ReauthenticationFlow = ReauthenticationFlow(
            backend, self._storage, self._state, logger,
        )

        self._on_sign_out: Event[None] = Event("sign_out")

        self._loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        self._loop_thread: int = threading.get_ident()
        self._pending: set[asyncio.Task[None]] = set()
        self._disposed: bool = False
        self._unsubscribe = backend.on_auth_state_changed(self._on_auth_state_changed)

    # ==================================================================
    # Observable state
    # ==================================================================

    @property
    def auth_user(self) -> Optional[AuthUserWithProviders]:
        return self._state.auth_user

    @property
    def auth_user_signal(self) -> SnapshotSignal[AuthUserWithProviders]:
        return self._state.auth_user_signal

    @property
    def initializing(self) -> bool:
        return self._gate.initializing

    @property
    def initializing_signal(self) -> FlagSignal:
        return self._gate.initializing_signal

    @property
    def set_password_mode(self) -> bool:
        return self._state.set_password_mode

    @property
    def set_password_mode_signal(self) -> FlagSignal:
        return self._state.set_password_mode_signal

    @property
    def needs_create_password(self) -> Optional[bool]:
        return self._state.needs_create_password

    @property
    def magic_link_succeeded(self) -> EventSubscriber[Optional[str]]:
        return self._magic_link.magic_link_succeeded

    @property
    def on_pre_process_user(self) -> EventSubscriber[Optional[AuthUserWithProviders]]:
        return self._state.on_pre_process_user

    @property
    def on_sign_out(self) -> EventSubscriber[None]:
        return self._on_sign_out.expose()

    @property
    def apple_sign_in_supported(self) -> bool:
        return False

    @property
    def location_url(self) -> str:
        return self._capabilities.location_url

    @property
    def provider_tracker(self) -> ProviderTracker:
        return self._tracker

    @property
    def _storage(self) -> PersistentKeyValueStore:
        return self._capabilities.storage

    # ==================================================================
    # Backend notifications
    # ==================================================================

    def _on_auth_state_changed(self) -> None:
        if self._disposed:
            return
        if threading.get_ident() == self._loop_thread:
            self._schedule_reconciliation()
        else:
            self._loop.call_soon_threadsafe(self._schedule_reconciliation)

    def _schedule_reconciliation(self) -> None:
        if self._disposed:
            return
        task = self._loop.create_task(self._state.run_reconciliation())
        self._pending.add(task)
        task.add_done_callback(self._reconciliation_done)

    def _reconciliation_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "Session reconciliation failed: %s", exc,
                exc_info=exc,
                extra={"event": "RECONCILE_FAILED"},
            )

    async def settle(self) -> None:
        """Wait until no reconciliation is in flight.

        Yields to the loop first so notifications queued with ``call_soon``
        get scheduled before the pending set is inspected.
        """
        await asyncio.sleep(0)
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
            await asyncio.sleep(0)

    # ==================================================================
    # Password-setup mode
    # ==================================================================

    def force_enable_set_password_mode(self) -> None:
        self._state.force_enable_set_password_mode()

    async def skip_password_mode(self) -> None:
        """Leave password-setup mode without setting a password."""
        self._state.clear_set_password_mode()
        await self._storage.remove(PASSWORD_RESET_REQUESTED_KEY)

    # ==================================================================
    # Account lookup
    # ==================================================================

    async def get_email_auth_methods(self, email: str) -> list[AuthProviders]:
        return await self._state.get_email_auth_methods(email)

    async def get_has_account(self, email: str) -> bool:
        methods = await self.get_email_auth_methods(email)
        return len(methods) > 0

    # ==================================================================
    # Magic link
    # ==================================================================

    async def sign_in_with_email_link(
        self,
        email: str,
        reason: Optional[MagicLinkRequestReasons],
    ) -> None:
        await self._magic_link.send_magic_link_request(email, reason)

    async def process_email_link(self) -> MagicLinkResult:
        return await self._magic_link.process_email_link()

    # ==================================================================
    # Email & password
    # ==================================================================

    async def sign_in_with_email_password(self, email: str, password: str) -> None:
        normalized = prepare_email(email) or ""
        try:
            self._tracker.set_next_provider(AuthProviders.EMAIL_AND_PASSWORD)
            await self._backend.sign_in_with_email_and_password(normalized, password)
            await self._storage.remove(PASSWORD_RESET_REQUESTED_KEY)
        except Exception as err:
            self._tracker.set_next_provider(AuthProviders.NONE)
            self._logger.warning(
                "Password sign-in failed for %s: %s", normalized, err,
                extra={"event": "SIGN_IN_FAILED", "error_code": str(error_code(err))},
            )
            raise

        self._audit("SIGN_IN", "Signed in with email/password: %s", normalized, email=normalized)

    async def create_account_for_email_and_password(self, email: str, password: str) -> None:
        normalized = prepare_email(email) or ""
        self._logger.info("Creating an account for %s", normalized)
        try:
            self._tracker.set_next_provider(AuthProviders.EMAIL_AND_PASSWORD)
            await self._backend.create_user_with_email_and_password(normalized, password)
        except Exception as err:
            self._tracker.set_next_provider(AuthProviders.NONE)
            self._logger.warning(
                "Account creation failed for %s: %s", normalized, err,
                extra={"event": "SIGN_UP_FAILED", "error_code": str(error_code(err))},
            )
            raise

        self._audit("SIGN_UP", "Account created for %s", normalized, email=normalized)

    async def update_password(
        self,
        password: str,
        old_password: Optional[str] = None,
    ) -> AuthResult:
        return await self._password.update_password(password, old_password)

    # ==================================================================
    # Google
    # ==================================================================

    async def do_google_sign_in(self) -> Optional[UserCredential]:
        """Run the federated Google sign-in.  Override for platform SDKs."""
        return await self._backend.sign_in_with_popup(SignInMethod.GOOGLE)

    async def sign_in_with_google(self) -> bool:
        """Sign in with Google.

        Returns ``False`` when the user cancelled or when the credential
        was linked to the existing account instead.  Raises on any other
        failure.
        """
        try:
            self._tracker.set_next_provider(AuthProviders.GOOGLE)

            result = await self.do_google_sign_in()
            if result is None:
                self._logger.warning("Google SignIn: no result (probably canceled)")
                self._tracker.set_next_provider(AuthProviders.NONE)
                return False

            user_email = getattr(result.user, "email", None)
            self._audit(
                "SIGN_IN",
                "Google: successfully signed in with user %s",
                user_email or "(pending redirect)",
                provider=str(AuthProviders.GOOGLE),
            )
            return True

        except Exception as err:
            self._tracker.set_next_provider(AuthProviders.NONE)

            if is_cancellation(err):
                self._logger.info("Cancel sign in with google")
                return False

            self._logger.warning("Google Sign in error: %s", err)

            if error_code(err) == BackendErrorCode.ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL:
                if await self._link_existing_account(getattr(err, "email", None)):
                    return False
            raise

    async def _link_existing_account(self, email: Optional[str]) -> bool:
        """Best effort: link an email-link credential to the current user.

        Failures are logged and reported as ``False``, never raised.
        """
        current_user = self._backend.current_user
        if current_user is None or not email:
            self._logger.info("No signed-in user or email to link the credential to.")
            return False

        try:
            credential = EmailAuthProvider.credential_with_link(email, self.location_url)
            await current_user.link_with_credential(credential)
        except Exception as link_err:
            self._logger.warning(
                "Failed to link credential for %s: %s", email, link_err,
                extra={"event": "LINK_FAILED"},
            )
            return False

        self._audit("ACCOUNT_LINKED", "Linked email credential for %s", email, email=email)
        return True

    # ==================================================================
    # Sign-out
    # ==================================================================

    async def sign_out(self) -> None:
        """Sign out under the initialization gate.

        Steps run in order and any failure aborts the rest; nothing is
        rolled back.  Safe to call when already signed out.
        """
        self._logger.info("Signing out...")
        await self._gate.run(self._do_sign_out)

    async def _do_sign_out(self) -> None:
        try:
            self._state.clear_set_password_mode()

            await self._on_sign_out.trigger_async()

            await self.services_sign_out()

            await self._tracker.clear_durable_provider()
            await self._storage.remove(MAGIC_LINK_REASON_KEY)

            await self._backend.sign_out()
        except Exception:
            self._logger.warning("Failed to sign out!", exc_info=True)
            raise

        self._audit("SIGN_OUT", "Signed out.")

    async def services_sign_out(self) -> None:
        """Sign out of dependent federated sessions."""
        await self._capabilities.google_sign_out()

    # ==================================================================
    # Profile
    # ==================================================================

    async def update_photo_url(self, photo_url: str) -> None:
        """Update the profile photo on the backend and in the snapshot.

        Raises:
            RuntimeError: If no user is currently authenticated.
        """
        current_user = self._backend.current_user
        if current_user is None:
            raise RuntimeError("No user is currently authenticated. Login required.")

        await current_user.update_profile(photo_url=photo_url)

        refreshed = self._backend.current_user or current_user
        self._state.update_photo_url(refreshed.photo_url)
        self._logger.info("User photo URL updated: %s", refreshed.photo_url)

    # ==================================================================
    # Lifecycle
    # ==================================================================

    def dispose(self) -> None:
        """Unsubscribe from the backend and cancel pending reconciliations."""
        if self._disposed:
            return
        self._disposed = True
        self._unsubscribe()
        for task in list(self._pending):
            task.cancel()

    async def aclose(self) -> None:
        pending = list(self._pending)
        self.dispose()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> "AuthController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
