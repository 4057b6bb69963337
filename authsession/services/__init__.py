"""
Session Services Package.

The ``create_auth_controller()`` factory is the composition root: it wires
the durable store, the capabilities and the identity backend into a ready
``AuthController``.  The caller owns the returned controller and must
dispose it.
"""

from __future__ import annotations

from typing import Optional

from authsession.capabilities import DefaultCapabilities
from authsession.config import AppConfig
from authsession.interfaces import IdentityBackend, PersistentKeyValueStore
from authsession.logger import StructuredLogger, get_logger
from authsession.services.auth_controller import AuthController
from authsession.services.magic_link import MagicLinkFlow
from authsession.services.password import ReauthenticationFlow
from authsession.services.provider_tracker import ProviderTracker
from authsession.services.session_state import SessionStateMachine

__all__ = [
    "AuthController",
    "MagicLinkFlow",
    "ProviderTracker",
    "ReauthenticationFlow",
    "SessionStateMachine",
    "create_auth_controller",
]


def create_auth_controller(
    config: AppConfig,
    backend: IdentityBackend,
    storage: PersistentKeyValueStore,
    logger: Optional[StructuredLogger] = None,
    state_machine_cls: type[SessionStateMachine] = SessionStateMachine,
) -> tuple[AuthController, DefaultCapabilities]:
    """Wire a controller for *backend* and *storage*.

    Must be called from inside a running event loop.

    Returns:
        The controller and its capabilities object, so the host can
        switch the location URL when the app is opened from a link.
    """
    logger = logger or get_logger("auth")
    capabilities = DefaultCapabilities(
        storage=storage,
        return_url=config.AUTH_RETURN_URL,
        logger=logger,
    )
    controller = AuthController(
        backend=backend,
        capabilities=capabilities,
        logger=logger,
        state_machine_cls=state_machine_cls,
    )
    return controller, capabilities
