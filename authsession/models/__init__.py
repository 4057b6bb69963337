"""
Domain Models Package.

Re-exports the session snapshot, credential and result models together
with the shared enumerations.
"""

from authsession.models.auth_models import (
    AuthResult,
    AuthUser,
    AuthUserWithProviders,
    EmailAuthCredential,
    EmailAuthProvider,
    MagicLinkResult,
    UserCredential,
)
from authsession.models.enums import (
    SIGN_IN_METHOD_PROVIDERS,
    AuthErrors,
    AuthProviders,
    MagicLinkErrors,
    MagicLinkRequestReasons,
    SignInMethod,
)

__all__ = [
    "AuthErrors",
    "AuthProviders",
    "AuthResult",
    "AuthUser",
    "AuthUserWithProviders",
    "EmailAuthCredential",
    "EmailAuthProvider",
    "MagicLinkErrors",
    "MagicLinkRequestReasons",
    "MagicLinkResult",
    "SIGN_IN_METHOD_PROVIDERS",
    "SignInMethod",
    "UserCredential",
]
