"""
Authentication Session Models.

Pydantic models for the session snapshot, credentials and the typed
results the controller hands back to the UI layer.

Every operation either resolves with a plain value, resolves with one of
the result models below carrying an error kind, or raises.  Which idiom an
operation uses is fixed per operation.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from authsession.models.enums import AuthErrors, AuthProviders, MagicLinkErrors


# ---------------------------------------------------------------------------
# Session snapshot
# ---------------------------------------------------------------------------

class AuthUser(BaseModel):
    """Backend-reported identity of the signed-in user.

    Replaced wholesale on every reconciliation.  ``photo_url`` is the only
    identity field updated in place (after a profile update).
    """

    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    email_verified: bool = False
    phone_number: Optional[str] = None
    photo_url: Optional[str] = None

    model_config = {"from_attributes": True}


class AuthUserWithProviders(AuthUser):
    """Session snapshot: the identity plus provider bookkeeping.

    Attributes
    ----------
    providers:
        Credential methods registered for the account's email, as last
        queried from the backend.
    current_provider:
        The provider that produced this session, ``None`` when unknown.
    """

    providers: list[AuthProviders] = Field(default_factory=list)
    current_provider: Optional[AuthProviders] = None


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class EmailAuthCredential(BaseModel):
    """Email credential passed to re-authentication and account linking.

    Exactly one of ``password`` or ``link`` is set.
    """

    email: str
    password: Optional[str] = Field(default=None, repr=False)
    link: Optional[str] = None

    @property
    def sign_in_method(self) -> str:
        return "password" if self.password is not None else "emailLink"


class EmailAuthProvider:
    """Factory for ``EmailAuthCredential`` objects."""

    @staticmethod
    def credential(email: str, password: str) -> EmailAuthCredential:
        return EmailAuthCredential(email=email, password=password)

    @staticmethod
    def credential_with_link(email: str, link: str) -> EmailAuthCredential:
        return EmailAuthCredential(email=email, link=link)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Result of ``update_password``.

    Attributes
    ----------
    result:
        ``True`` when the password was updated.
    error:
        Error kind on failure, ``None`` on success.
    original:
        The backend exception behind ``error``, when there was one.
    """

    result: bool
    error: Optional[AuthErrors] = None
    original: Optional[Exception] = None

    model_config = {"arbitrary_types_allowed": True}


class MagicLinkResult(BaseModel):
    """Result of magic-link redemption.

    ``error`` is a ``MagicLinkErrors`` kind for protocol failures, or the
    backend exception itself when the sign-in call failed.  ``email`` is
    the pending address the redemption was attempted with, for display.
    """

    result: bool = False
    error: Optional[Union[MagicLinkErrors, Exception]] = None
    email: Optional[str] = None

    model_config = {"arbitrary_types_allowed": True}


class UserCredential(BaseModel):
    """What a federated sign-in call resolves with.

    ``user`` is ``None`` when the sign-in continues out of band (browser
    redirect) and the session arrives later via an auth-state notification.
    """

    user: Optional[Any] = None
    provider_id: Optional[str] = None

    model_config = {"arbitrary_types_allowed": True}
