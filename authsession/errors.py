"""
Error Types.

``BackendError`` is the single exception type identity backends raise.
The controller interprets only the codes listed in ``BackendErrorCode``;
every other code is logged and re-raised to the caller unchanged.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class BackendErrorCode(StrEnum):
    """Backend error codes the session controller reacts to."""

    REQUIRES_RECENT_LOGIN = "auth/requires-recent-login"
    WRONG_PASSWORD = "auth/wrong-password"
    ACCOUNT_EXISTS_WITH_DIFFERENT_CREDENTIAL = "auth/account-exists-with-different-credential"
    CANCELLED = "-3"
    OPERATION_NOT_SUPPORTED = "auth/operation-not-supported"
    UNKNOWN = "auth/unknown"


class BackendError(Exception):
    """Failure reported by the identity backend.

    Attributes
    ----------
    code:
        Backend error code.  Compared against ``BackendErrorCode`` values.
    message:
        Human-readable description.
    email:
        Email address the failure relates to, when the backend reports
        one (``account-exists-with-different-credential``).
    original_error:
        The SDK exception this error was translated from, if any.
    """

    def __init__(
        self,
        code: str,
        message: str = "",
        email: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.code: str = code
        self.message: str = message or code
        self.email: Optional[str] = email
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"BackendError(code={self.code!r}, message={self.message!r})"


class StorageError(Exception):
    """Raised by durable key/value stores when a read or write fails."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


def error_code(err: BaseException) -> Optional[str]:
    """Return the ``code`` attribute of *err* as a string, if it has one."""
    code = getattr(err, "code", None)
    return str(code) if code is not None else None


def is_cancellation(err: BaseException) -> bool:
    """``True`` when *err* signals the user dismissed a federated sign-in."""
    if error_code(err) == BackendErrorCode.CANCELLED:
        return True
    message = getattr(err, "message", None) or str(err)
    return "error -3" in message
