"""
Session State Machine.

Turns backend auth-state notifications into session snapshots::

    Uninitialized -> Reconciling -> SignedOut | SignedIn(provider)

``SignedIn`` carries the independent ``set_password_mode`` flag.

Each notification runs ``reconcile`` under the ``InitializationGate``, and
runs are serialised in arrival order:

1. clear the first-boot flag;
2. read the backend's current user;
3. resolve the provider (pending hint, else the durable id);
4. query the sign-in methods registered for the user's email;
5. build the snapshot and let ``on_pre_process_user`` observers enrich it;
6. commit it with a single assignment and publish it;
7. on a signed-out -> signed-in transition only, decide whether
   password-setup mode must be switched on.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from authsession.events import Event, EventSubscriber, FlagSignal, SnapshotSignal
from authsession.gate import InitializationGate
from authsession.interfaces import BackendUser, IdentityBackend, PersistentKeyValueStore
from authsession.logger import StructuredLogger
from authsession.models.auth_models import AuthUserWithProviders
from authsession.models.enums import SIGN_IN_METHOD_PROVIDERS, AuthProviders
from authsession.services.base_service import BaseService
from authsession.services.provider_tracker import ProviderTracker
from authsession.storage.keys import FLAG_TRUE, PASSWORD_RESET_REQUESTED_KEY


class SessionStateMachine(BaseService):
    """Owns the committed session snapshot and the password-setup flag.

    Parameters
    ----------
    backend:
        Identity backend the snapshot is read from.
    storage:
        Durable key/value store (reset flag).
    tracker:
        Provider hint / durable provider bookkeeping.
    gate:
        Initialization gate every reconciliation runs under.
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        backend: IdentityBackend,
        storage: PersistentKeyValueStore,
        tracker: ProviderTracker,
        gate: InitializationGate,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._backend: IdentityBackend = backend
        self._storage: PersistentKeyValueStore = storage
        self._tracker: ProviderTracker = tracker
        self._gate: InitializationGate = gate

        self._auth_user: SnapshotSignal[AuthUserWithProviders] = SnapshotSignal(None, name="auth_user")
        self._set_password_mode: FlagSignal = FlagSignal(False, name="set_password_mode")
        self._on_pre_process_user: Event[Optional[AuthUserWithProviders]] = Event("pre_process_user")
        self._reconcile_lock: asyncio.Lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def auth_user(self) -> Optional[AuthUserWithProviders]:
        return self._auth_user.value

    @property
    def auth_user_signal(self) -> SnapshotSignal[AuthUserWithProviders]:
        return self._auth_user

    @property
    def set_password_mode(self) -> bool:
        return self._set_password_mode.value

    @property
    def set_password_mode_signal(self) -> FlagSignal:
        return self._set_password_mode

    @property
    def on_pre_process_user(self) -> EventSubscriber[Optional[AuthUserWithProviders]]:
        return self._on_pre_process_user.expose()

    @property
    def needs_create_password(self) -> Optional[bool]:
        """Whether the signed-in account still lacks a password.

        ``None`` when there is no session, the provider is unknown, or the
        session came from a provider that never needs one (Google, dev login).
        """
        user = self.auth_user
        if (
            user is None
            or user.current_provider is None
            or user.current_provider in (AuthProviders.GOOGLE, AuthProviders.DEV_LOGIN)
        ):
            return None

        return AuthProviders.EMAIL_AND_PASSWORD not in user.providers

    # ------------------------------------------------------------------
    # Password-setup mode
    # ------------------------------------------------------------------

    def force_enable_set_password_mode(self) -> None:
        self._set_password_mode.set_true()

    def clear_set_password_mode(self) -> None:
        self._set_password_mode.set_false()

    # ------------------------------------------------------------------
    # Snapshot mutation outside reconciliation
    # ------------------------------------------------------------------

    def update_providers(self, providers: list[AuthProviders]) -> None:
        """Replace the cached provider list of the committed snapshot."""
        user = self.auth_user
        if user is None:
            return
        user.providers = providers
        self._auth_user.set(user)

    def update_photo_url(self, photo_url: Optional[str]) -> None:
        user = self.auth_user
        if user is None:
            return
        user.photo_url = photo_url
        self._auth_user.set(user)

    # ------------------------------------------------------------------
    # Sign-in methods
    # ------------------------------------------------------------------

    async def get_email_auth_methods(self, email: Optional[str]) -> list[AuthProviders]:
        """Map the backend's sign-in methods for *email* to providers.

        Unknown method ids are dropped.  An empty result is logged, not
        treated as an error.
        """
        methods: list[str] = []
        if email and isinstance(email, str):
            methods = await self._backend.fetch_sign_in_methods_for_email(email) or []

        results = [
            SIGN_IN_METHOD_PROVIDERS[m] for m in methods if m in SIGN_IN_METHOD_PROVIDERS
        ]

        if not results:
            self._logger.info(
                "No auth methods for email %s; existing are: %s", email, methods,
            )

        return results

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def run_reconciliation(self) -> None:
        """Reconcile under the initialization gate, one run at a time.

        Runs queue on a FIFO lock, so a run that is still reading a user
        the backend has since dropped commits before the newer run does.
        The gate counter covers the wait for the lock.
        """
        async with self._gate.guard():
            async with self._reconcile_lock:
                await self.reconcile()

    async def reconcile(self) -> None:
        self._gate.clear_first_init()
        backend_user = self._backend.current_user

        methods: list[AuthProviders] = []
        if backend_user is not None and backend_user.email:
            methods = await self.get_email_auth_methods(backend_user.email)

        provider = await self._tracker.resolve_provider(backend_user is not None)

        self._logger.info(
            "Initializing with user: %s; provider = %s; uid = %s",
            backend_user.email if backend_user else None,
            provider,
            backend_user.uid if backend_user else None,
        )

        signed_in = self.auth_user is None and backend_user is not None

        result = self.create_auth_user(backend_user)
        if result is not None:
            result.providers = methods
            result.current_provider = provider

        await self._on_pre_process_user.trigger_async(result)

        self._auth_user.set(result)

        if signed_in:
            await self._evaluate_password_mode(provider)

    def create_auth_user(self, backend_user: Optional[BackendUser]) -> Optional[AuthUserWithProviders]:
        """Build a fresh snapshot from the backend user.

        Override to attach application-specific fields to the snapshot.
        """
        if backend_user is None:
            return None

        return AuthUserWithProviders(
            uid=backend_user.uid,
            display_name=backend_user.display_name,
            email=backend_user.email,
            email_verified=bool(backend_user.email_verified),
            phone_number=backend_user.phone_number,
            photo_url=backend_user.photo_url,
        )

    async def _evaluate_password_mode(self, provider: Optional[AuthProviders]) -> None:
        create_password = self.needs_create_password
        reset_password = (
            provider == AuthProviders.EMAIL_LINK
            and await self._storage.get_value(PASSWORD_RESET_REQUESTED_KEY) == FLAG_TRUE
        )
        if create_password or reset_password:
            self._logger.info(
                "Setting set_password_mode = true; create_password = %s, reset_password = %s",
                create_password,
                reset_password,
            )
            self._set_password_mode.set_true()
