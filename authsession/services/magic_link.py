"""
Magic Link Flow.

Two-phase sign-in over the durable store, which carries the pending email
and the request reason across the redirect boundary:

- **request**: persist ``{email, reason}``, drop any stale reset flag and
  ask the backend to email a sign-in link that returns to the app;
- **redeem**: when the app is reopened on the link URL, complete the
  sign-in with the persisted email and act on the persisted reason.

Store writes are issued one at a time, in order, never as a batch.
"""

from __future__ import annotations

from typing import Optional

from authsession.events import Event, EventSubscriber
from authsession.interfaces import ControllerCapabilities, IdentityBackend
from authsession.logger import StructuredLogger
from authsession.models.auth_models import MagicLinkResult
from authsession.models.enums import AuthProviders, MagicLinkErrors, MagicLinkRequestReasons
from authsession.services.base_service import BaseService
from authsession.services.provider_tracker import ProviderTracker
from authsession.services.session_state import SessionStateMachine
from authsession.storage.keys import (
    EMPTY_REASON,
    FLAG_TRUE,
    MAGIC_LINK_REASON_KEY,
    PASSWORD_RESET_REQUESTED_KEY,
    USER_SIGN_IN_EMAIL_KEY,
)
from authsession.utils.general import prepare_email


class MagicLinkFlow(BaseService):
    """Request and redeem emailed sign-in links.

    Parameters
    ----------
    backend:
        Identity backend that sends and verifies links.
    capabilities:
        Supplies the durable store and the current location URL.
    tracker:
        Provider hint bookkeeping.
    state:
        Session state machine (password-setup mode).
    logger:
        Structured JSON logger.
    """

    def __init__(
        self,
        backend: IdentityBackend,
        capabilities: ControllerCapabilities,
        tracker: ProviderTracker,
        state: SessionStateMachine,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._backend: IdentityBackend = backend
        self._capabilities: ControllerCapabilities = capabilities
        self._tracker: ProviderTracker = tracker
        self._state: SessionStateMachine = state
        self._magic_link_succeeded: Event[Optional[str]] = Event("magic_link_succeeded")

    @property
    def magic_link_succeeded(self) -> EventSubscriber[Optional[str]]:
        return self._magic_link_succeeded.expose()

    async def send_magic_link_request(
        self,
        email: str,
        reason: Optional[MagicLinkRequestReasons],
        display_name: Optional[str] = None,
    ) -> None:
        """Persist the pending request and have the backend send the link.

        *display_name* is accepted for sign-up requests; backends that
        cannot attach it to the link ignore it.
        """
        storage = self._capabilities.storage
        normalized = prepare_email(email)
        if not normalized:
            raise ValueError("An email address is required to send a sign-in link.")

        self._logger.info("send_magic_link_request %s %s", normalized, reason)

        await storage.set_value(USER_SIGN_IN_EMAIL_KEY, normalized)
        await storage.set_value(MAGIC_LINK_REASON_KEY, str(reason) if reason else EMPTY_REASON)
        await storage.remove(PASSWORD_RESET_REQUESTED_KEY)

        await self._backend.send_sign_in_link_to_email(
            normalized, url=self._capabilities.location_url,
        )
        self._audit(
            "MAGIC_LINK_SENT",
            "Sign-in link sent to %s",
            normalized,
            email=normalized,
            reason=str(reason or EMPTY_REASON),
        )

    async def process_email_link(self) -> MagicLinkResult:
        """Redeem the link the app was opened with.

        Returns
        -------
        MagicLinkResult
            ``result=True`` on success.  ``InvalidLink`` when the current
            URL is not a sign-in link and ``NoEmailPending`` when no request
            is pending; neither changes any state.  A backend failure is
            returned as ``error`` together with the pending email.
        """
        storage = self._capabilities.storage
        url = self._capabilities.location_url
        email: Optional[str] = None
        try:
            if not self._backend.is_sign_in_with_email_link(url):
                self._logger.info("Current path is not sign in link: %s", url)
                return MagicLinkResult(error=MagicLinkErrors.INVALID_LINK)

            email = prepare_email(await storage.get_value(USER_SIGN_IN_EMAIL_KEY))
            if not email:
                self._logger.info("User was not performing a sign in")
                return MagicLinkResult(error=MagicLinkErrors.NO_EMAIL_PENDING)

            self._tracker.set_next_provider(AuthProviders.EMAIL_LINK)
            await self._backend.sign_in_with_email_link(email, url)

            reason = await storage.get_value(MAGIC_LINK_REASON_KEY)
            self._logger.info("process_email_link reason = %s", reason)
            if reason == MagicLinkRequestReasons.PASSWORD_RESET:
                await storage.set_value(PASSWORD_RESET_REQUESTED_KEY, FLAG_TRUE)
                self._state.force_enable_set_password_mode()

            await storage.remove(MAGIC_LINK_REASON_KEY)
            await storage.remove(USER_SIGN_IN_EMAIL_KEY)

            self._audit(
                "MAGIC_LINK_REDEEMED",
                "process_email_link succeeded with reason = %s",
                reason,
                email=email,
            )
            await self._magic_link_succeeded.trigger_async(reason)

            return MagicLinkResult(result=True, email=email)

        except Exception as err:
            self._tracker.set_next_provider(AuthProviders.NONE)
            self._logger.error(
                "Failed to perform a sign in for user: %s; Error: %s", email, err,
                extra={"event": "MAGIC_LINK_FAILED"},
            )
            return MagicLinkResult(error=err, email=email)
