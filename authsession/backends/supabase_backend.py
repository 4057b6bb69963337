"""
Supabase Identity Backend.

Adapts the async ``supabase`` client to the ``IdentityBackend`` protocol.

- The latest session user seen on the auth-state subscription (or returned
  by a sign-in call) is cached and served as ``current_user``.
- Magic links use ``sign_in_with_otp`` with ``email_redirect_to``; the link
  is redeemed with ``verify_otp`` (``token_hash`` links) or
  ``exchange_code_for_session`` (PKCE ``code`` links).
- Google sign-in opens the OAuth URL in the system browser.  The session
  arrives later through the auth-state subscription.
- Supabase has no client-side "sign-in methods for email" lookup.  Methods
  are derived from the *current* user's ``app_metadata.providers``; the
  ``email`` provider counts as a password method once the
  ``password_set`` user-metadata flag is written (on sign-up and on every
  password update), otherwise as an email-link method.

Supabase/GoTrue errors are classified into ``BackendError`` codes by
inspecting the error code and message text.
"""

from __future__ import annotations

import asyncio
import webbrowser
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import parse_qs, urlparse

from supabase import AsyncClient, acreate_client

from authsession.errors import BackendError, BackendErrorCode
from authsession.interfaces import Unsubscribe
from authsession.logger import StructuredLogger
from authsession.models.auth_models import EmailAuthCredential, UserCredential
from authsession.models.enums import SignInMethod

T = TypeVar("T")

_PASSWORD_SET_FLAG: str = "password_set"

# Matched against the lowercased error code and message, first hit wins.
SUPABASE_ERROR_MAP: dict[str, BackendErrorCode] = {
    "reauthentication_needed": BackendErrorCode.REQUIRES_RECENT_LOGIN,
    "reauthentication_not_valid": BackendErrorCode.REQUIRES_RECENT_LOGIN,
    "invalid_credentials": BackendErrorCode.WRONG_PASSWORD,
    "invalid_grant": BackendErrorCode.WRONG_PASSWORD,
    "identity_already_exists": BackendErrorCode.ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL,
    "email_exists": BackendErrorCode.ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL,
}

_LINK_OTP_TYPES: frozenset[str] = frozenset({"magiclink", "email", "signup"})

_OAUTH_PROVIDERS: dict[str, str] = {
    SignInMethod.GOOGLE: "google",
}


def classify_supabase_error(exc: Exception) -> BackendError:
    """Translate a Supabase / GoTrue exception into a ``BackendError``."""
    if isinstance(exc, BackendError):
        return exc

    raw_code = getattr(exc, "code", None)
    haystack = f"{raw_code or ''} {exc}".lower()
    for key, code in SUPABASE_ERROR_MAP.items():
        if key in haystack:
            return BackendError(code, str(exc), original_error=exc)

    return BackendError(
        str(raw_code) if raw_code else BackendErrorCode.UNKNOWN,
        str(exc),
        original_error=exc,
    )


async def _call(awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except Exception as exc:
        raise classify_supabase_error(exc) from exc


class SupabaseUser:
    """``BackendUser`` view over a GoTrue user object."""

    def __init__(self, backend: "SupabaseIdentityBackend", user: Any) -> None:
        self._backend = backend
        self._user = user

    # -- identity ---------------------------------------------------------

    @property
    def raw(self) -> Any:
        return self._user

    @property
    def uid(self) -> str:
        return str(self._user.id)

    @property
    def email(self) -> Optional[str]:
        return self._user.email

    @property
    def email_verified(self) -> bool:
        return getattr(self._user, "email_confirmed_at", None) is not None

    @property
    def phone_number(self) -> Optional[str]:
        return getattr(self._user, "phone", None) or None

    @property
    def display_name(self) -> Optional[str]:
        meta = self._metadata()
        return meta.get("full_name") or meta.get("name")

    @property
    def photo_url(self) -> Optional[str]:
        return self._metadata().get("avatar_url")

    @property
    def password_set(self) -> bool:
        return bool(self._metadata().get(_PASSWORD_SET_FLAG))

    @property
    def providers(self) -> list[str]:
        app_metadata = getattr(self._user, "app_metadata", None) or {}
        return list(app_metadata.get("providers") or [])

    def _metadata(self) -> dict[str, Any]:
        return getattr(self._user, "user_metadata", None) or {}

    # -- operations -------------------------------------------------------

    async def update_password(self, password: str) -> None:
        response = await _call(self._backend.client.auth.update_user(
            {"password": password, "data": {_PASSWORD_SET_FLAG: True}},
        ))
        self._refresh(response)

    async def update_profile(self, photo_url: Optional[str] = None) -> None:
        response = await _call(self._backend.client.auth.update_user(
            {"data": {"avatar_url": photo_url}},
        ))
        self._refresh(response)

    async def reauthenticate_with_credential(self, credential: EmailAuthCredential) -> None:
        if credential.password is None:
            raise BackendError(
                BackendErrorCode.OPERATION_NOT_SUPPORTED,
                "Only email/password credentials can re-authenticate.",
            )
        response = await _call(self._backend.client.auth.sign_in_with_password(
            {"email": credential.email, "password": credential.password},
        ))
        self._refresh(response)

    async def link_with_credential(self, credential: EmailAuthCredential) -> None:
        """Attach *credential*'s email to this user (confirmation by email)."""
        response = await _call(self._backend.client.auth.update_user(
            {"email": credential.email},
        ))
        self._refresh(response)

    def _refresh(self, response: Any) -> None:
        user = getattr(response, "user", None)
        if user is not None:
            self._user = user


class SupabaseIdentityBackend:
    """``IdentityBackend`` backed by a Supabase project.

    Parameters
    ----------
    client:
        An initialised ``supabase.AsyncClient``.
    return_url:
        Redirect target for OAuth flows.
    logger:
        Structured JSON logger.
    open_browser:
        Opens an OAuth URL; returns ``False`` when no browser could be
        launched.  Defaults to ``webbrowser.open``.
    """

    def __init__(
        self,
        client: AsyncClient,
        return_url: str,
        logger: StructuredLogger,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self._client: AsyncClient = client
        self._return_url: str = return_url
        self._logger: StructuredLogger = logger
        self._open_browser = open_browser
        self._current_user: Optional[SupabaseUser] = None

    @classmethod
    async def create(
        cls,
        url: str,
        key: str,
        return_url: str,
        logger: StructuredLogger,
    ) -> "SupabaseIdentityBackend":
        """Create the client and load any persisted session."""
        client = await acreate_client(url, key)
        backend = cls(client, return_url, logger)
        await backend.initialize()
        return backend

    @property
    def client(self) -> AsyncClient:
        return self._client

    async def initialize(self) -> None:
        """Seed ``current_user`` from the client's stored session."""
        session = await _call(self._client.auth.get_session())
        self._set_user(getattr(session, "user", None))

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def current_user(self) -> Optional[SupabaseUser]:
        return self._current_user

    def on_auth_state_changed(self, callback: Callable[[], None]) -> Unsubscribe:
        def _listener(event: str, session: Any) -> None:
            self._logger.debug("Supabase auth event: %s", event)
            self._set_user(getattr(session, "user", None))
            callback()

        subscription = self._client.auth.on_auth_state_change(_listener)

        # Report the current state once, the way a fresh subscription does.
        asyncio.get_running_loop().call_soon(callback)

        return subscription.unsubscribe

    def _set_user(self, user: Any) -> None:
        self._current_user = SupabaseUser(self, user) if user is not None else None

    def _adopt(self, response: Any) -> None:
        user = getattr(response, "user", None)
        if user is not None:
            self._set_user(user)

    # ------------------------------------------------------------------
    # Account lookup
    # ------------------------------------------------------------------

    async def fetch_sign_in_methods_for_email(self, email: str) -> list[str]:
        user = self._current_user
        if user is None or (user.email or "").lower() != email.lower():
            return []

        methods: list[str] = []
        for provider in user.providers:
            if provider == "email":
                methods.append(
                    SignInMethod.PASSWORD if user.password_set else SignInMethod.EMAIL_LINK
                )
            elif provider == "google":
                methods.append(SignInMethod.GOOGLE)
            else:
                methods.append(provider)
        return methods

    # ------------------------------------------------------------------
    # Email & password
    # ------------------------------------------------------------------

    async def sign_in_with_email_and_password(self, email: str, password: str) -> None:
        response = await _call(self._client.auth.sign_in_with_password(
            {"email": email, "password": password},
        ))
        self._adopt(response)

    async def create_user_with_email_and_password(self, email: str, password: str) -> None:
        response = await _call(self._client.auth.sign_up({
            "email": email,
            "password": password,
            "options": {"data": {_PASSWORD_SET_FLAG: True}},
        }))
        self._adopt(response)

    # ------------------------------------------------------------------
    # Magic links
    # ------------------------------------------------------------------

    async def send_sign_in_link_to_email(self, email: str, url: str) -> None:
        await _call(self._client.auth.sign_in_with_otp({
            "email": email,
            "options": {"email_redirect_to": url},
        }))

    def is_sign_in_with_email_link(self, url: str) -> bool:
        params = self._link_params(url)
        if "code" in params:
            return True
        return "token_hash" in params and params.get("type", "email") in _LINK_OTP_TYPES

    async def sign_in_with_email_link(self, email: str, url: str) -> None:
        params = self._link_params(url)
        if "token_hash" in params:
            response = await _call(self._client.auth.verify_otp({
                "token_hash": params["token_hash"],
                "type": "email",
            }))
        elif "code" in params:
            response = await _call(self._client.auth.exchange_code_for_session(
                {"auth_code": params["code"]},
            ))
        else:
            raise BackendError("auth/invalid-action-code", f"Not a sign-in link: {url}")

        user = getattr(response, "user", None)
        if user is not None and user.email and user.email.lower() != email.lower():
            self._logger.warning(
                "Sign-in link was issued for %s, not the pending %s.", user.email, email,
            )
        self._adopt(response)

    @staticmethod
    def _link_params(url: str) -> dict[str, str]:
        """Query and fragment parameters of *url*, first value per key."""
        parsed = urlparse(url)
        params: dict[str, str] = {}
        for part in (parsed.fragment, parsed.query):
            for key, values in parse_qs(part).items():
                if values:
                    params[key] = values[0]
        return params

    # ------------------------------------------------------------------
    # Federated
    # ------------------------------------------------------------------

    async def sign_in_with_popup(self, provider_id: str) -> Optional[UserCredential]:
        provider = _OAUTH_PROVIDERS.get(provider_id)
        if provider is None:
            raise BackendError(
                BackendErrorCode.OPERATION_NOT_SUPPORTED,
                f"Unsupported OAuth provider: {provider_id}",
            )

        response = await _call(self._client.auth.sign_in_with_oauth({
            "provider": provider,
            "options": {"redirect_to": self._return_url},
        }))
        if not self._open_browser(response.url):
            self._logger.warning("Could not open a browser for %s sign-in.", provider)
            return None

        return UserCredential(user=None, provider_id=provider_id)

    # ------------------------------------------------------------------
    # Sign-out
    # ------------------------------------------------------------------

    async def sign_out(self) -> None:
        await _call(self._client.auth.sign_out())
        self._current_user = None
