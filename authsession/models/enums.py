"""
Shared Enumerations for Auth Session Models.

StrEnum values compare equal to their string equivalents, so values read
back from the durable store (plain strings) can be compared directly.
"""

from __future__ import annotations

from enum import StrEnum


class AuthProviders(StrEnum):
    """Credential methods that can produce a session.

    ``NONE`` marks a sign-in attempt that failed or was aborted.  It is
    distinct from Python ``None``, which means "no session".
    """

    NONE = "none"
    EMAIL_AND_PASSWORD = "emailAndPassword"
    EMAIL_LINK = "emailLink"
    GOOGLE = "google"
    DEV_LOGIN = "devLogin"


class MagicLinkRequestReasons(StrEnum):
    """Why a magic link was requested; persisted with the pending email."""

    SIGN_IN = "signin"
    SIGN_UP = "signup"
    PASSWORD_RESET = "passwordReset"


class AuthErrors(StrEnum):
    """Error kinds returned (never raised) by ``update_password``."""

    INVALID_AUTH_STATE = "invalidAuthState"
    WRONG_PASSWORD = "wrongPassword"
    NEEDS_REAUTHENTICATION = "needsReauthentication"


class MagicLinkErrors(StrEnum):
    """Error kinds returned by magic-link redemption."""

    INVALID_LINK = "invalidLink"
    NO_EMAIL_PENDING = "noemail"


class SignInMethod(StrEnum):
    """Backend sign-in method identifiers for an email address."""

    PASSWORD = "password"
    EMAIL_LINK = "emailLink"
    GOOGLE = "google.com"


SIGN_IN_METHOD_PROVIDERS: dict[str, AuthProviders] = {
    SignInMethod.PASSWORD: AuthProviders.EMAIL_AND_PASSWORD,
    SignInMethod.EMAIL_LINK: AuthProviders.EMAIL_LINK,
    SignInMethod.GOOGLE: AuthProviders.GOOGLE,
}
