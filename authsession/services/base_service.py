"""
Base Service Class.

Standardises the logger pattern for the session services.  Services extend
this and add their collaborators via ``__init__``.
"""

from __future__ import annotations

from authsession.logger import StructuredLogger


class BaseService:
    """Base class for all session services. Provides a logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    def _audit(self, event: str, msg: str, *args: object, **fields: object) -> None:
        self._logger.audit(event, msg, *args, **fields)
