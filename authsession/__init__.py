"""
Client-side authentication session controller.

Tracks a user's signed-in state across password, magic-link, Google and
developer sign-in, persists what it needs to survive restarts and reports
failures through typed results.

Usage::

    from authsession import AuthController, DefaultCapabilities, InMemoryKeyValueStore
    from authsession.logger import get_logger

    logger = get_logger("auth")
    caps = DefaultCapabilities(InMemoryKeyValueStore(), "https://app/cb", logger)
    controller = AuthController(backend, caps, logger)
"""

from authsession.capabilities import DefaultCapabilities
from authsession.errors import BackendError, BackendErrorCode, StorageError
from authsession.gate import InitializationGate
from authsession.models import (
    AuthErrors,
    AuthProviders,
    AuthResult,
    AuthUser,
    AuthUserWithProviders,
    MagicLinkErrors,
    MagicLinkRequestReasons,
    MagicLinkResult,
)
from authsession.services import AuthController, create_auth_controller
from authsession.storage import InMemoryKeyValueStore, SQLiteKeyValueStore

__all__ = [
    "AuthController",
    "AuthErrors",
    "AuthProviders",
    "AuthResult",
    "AuthUser",
    "AuthUserWithProviders",
    "BackendError",
    "BackendErrorCode",
    "DefaultCapabilities",
    "InMemoryKeyValueStore",
    "InitializationGate",
    "MagicLinkErrors",
    "MagicLinkRequestReasons",
    "MagicLinkResult",
    "SQLiteKeyValueStore",
    "StorageError",
    "create_auth_controller",
]
