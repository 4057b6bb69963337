"""
Password Update with Re-authentication.

``update_password`` returns typed ``AuthResult`` values for the failures
the UI is expected to handle (no session, wrong old password, missing
re-authentication) and lets every other backend failure propagate.

When the backend rejects the update because the session is stale and the
caller supplied the old password, the flow re-authenticates once and
retries the update exactly once, without the old password.
"""

from __future__ import annotations

from typing import Optional

from authsession.errors import BackendErrorCode, error_code
from authsession.interfaces import IdentityBackend, PersistentKeyValueStore
from authsession.logger import StructuredLogger
from authsession.models.auth_models import AuthResult, EmailAuthProvider
from authsession.models.enums import AuthErrors
from authsession.services.base_service import BaseService
from authsession.services.session_state import SessionStateMachine
from authsession.storage.keys import PASSWORD_RESET_REQUESTED_KEY


class ReauthenticationFlow(BaseService):
    """Password update with one transparent re-authentication retry."""

    def __init__(
        self,
        backend: IdentityBackend,
        storage: PersistentKeyValueStore,
        state: SessionStateMachine,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._backend: IdentityBackend = backend
        self._storage: PersistentKeyValueStore = storage
        self._state: SessionStateMachine = state

    async def update_password(
        self,
        password: str,
        old_password: Optional[str] = None,
    ) -> AuthResult:
        """Set a new password for the signed-in user.

        Parameters
        ----------
        password:
            The new password.
        old_password:
            Current password, used to re-authenticate if the backend asks
            for a recent login.  Omit it to get ``NeedsReauthentication``
            back instead.

        Returns
        -------
        AuthResult

        Raises
        ------
        Exception
            Any backend failure other than a stale-credential rejection.
        """
        backend_user = self._backend.current_user
        if backend_user is None:
            return AuthResult(result=False, error=AuthErrors.INVALID_AUTH_STATE)

        try:
            await backend_user.update_password(password)
        except Exception as err:
            self._logger.info("failed to update password: %s", error_code(err))
            if error_code(err) != BackendErrorCode.REQUIRES_RECENT_LOGIN:
                raise

            if not old_password:
                return AuthResult(
                    result=False,
                    error=AuthErrors.NEEDS_REAUTHENTICATION,
                    original=err,
                )

            snapshot = self._state.auth_user
            email = (snapshot.email if snapshot else None) or backend_user.email or ""
            credential = EmailAuthProvider.credential(email, old_password)
            try:
                self._logger.info("re-authenticating with email/password for %s", email)
                await backend_user.reauthenticate_with_credential(credential)
            except Exception as reauth_err:
                self._logger.info("failed to re-authenticate, ERROR: %s", reauth_err)
                return AuthResult(
                    result=False,
                    error=(
                        AuthErrors.WRONG_PASSWORD
                        if error_code(reauth_err) == BackendErrorCode.WRONG_PASSWORD
                        else AuthErrors.INVALID_AUTH_STATE
                    ),
                    original=reauth_err,
                )

            return await self.update_password(password)

        self._audit(
            "PASSWORD_UPDATED",
            "password updated successfully for %s",
            backend_user.email,
            uid=backend_user.uid,
        )
        self._state.update_providers(
            await self._state.get_email_auth_methods(backend_user.email),
        )
        self._state.clear_set_password_mode()
        await self._storage.remove(PASSWORD_RESET_REQUESTED_KEY)

        return AuthResult(result=True)
