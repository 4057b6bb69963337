"""Durable store keys written by the session controller."""

AUTH_PROVIDER_ID_KEY: str = "auth:providerid"
USER_SIGN_IN_EMAIL_KEY: str = "auth:signin:email"
MAGIC_LINK_REASON_KEY: str = "auth:signin:reason"
PASSWORD_RESET_REQUESTED_KEY: str = "auth:passwordreset"

EMPTY_REASON: str = "empty"
FLAG_TRUE: str = "true"
