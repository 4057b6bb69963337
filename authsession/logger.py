"""
Structured JSON Logging Module.

Every service in the controller receives a ``StructuredLogger`` through its
constructor.  Session transitions go through ``StructuredLogger.audit`` with
an event name (``SIGN_IN``, ``SIGN_OUT``, ``MAGIC_LINK_REDEEMED`` ...), which
the formatter lifts to a top-level ``event`` key so the JSON output doubles
as an audit trail of the auth lifecycle.

Credential-looking extra fields (passwords, tokens, sign-in links) are never
written out; their values are replaced with ``"***"``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

REDACTED: str = "***"

_SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "password",
    "old_password",
    "new_password",
    "access_token",
    "refresh_token",
    "token_hash",
    "link",
})

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp`` (UTC, ISO-8601), ``level``, ``logger_name``,
    ``message``, then ``event`` when the record is an audit entry, ``extra``
    for any other caller fields and ``exception`` for tracebacks.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        fields = {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
        event = fields.pop("event", None)
        if event is not None:
            entry["event"] = str(event)
        if fields:
            entry["extra"] = {
                k: REDACTED if k in _SENSITIVE_FIELDS else str(v)
                for k, v in fields.items()
            }

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable logger for the session services.

    Wraps a named ``logging.Logger`` (exposed as ``.logger``) that writes
    JSON to *stream* (stderr by default) and, when ``log_file`` or the
    ``LOG_FILE`` setting is non-empty, to a size-rotated file.  Level and
    rotation limits default to the ``AppConfig`` values.

    Usage::

        log = StructuredLogger(name="auth")
        log.audit("SIGN_IN", "Signed in as %s", email, uid=uid)
    """

    def __init__(
        self,
        name: str = "auth",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Lazy import to avoid circular dependency at module level
        from authsession.config import get_config
        cfg = get_config()

        self._level: int = cfg.log_level if level is None else level
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(self._level)

        # Handlers are attached once per logger name.
        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stderr)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        target = cfg.LOG_FILE if log_file is None else log_file
        if target:
            self._attach_rotating_file(
                Path(target),
                formatter,
                cfg.LOG_MAX_BYTES if max_bytes is None else max_bytes,
                cfg.LOG_BACKUP_COUNT if backup_count is None else backup_count,
            )

    def _attach_rotating_file(
        self,
        path: Path,
        formatter: logging.Formatter,
        max_bytes: int,
        backup_count: int,
    ) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                filename=str(path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Audit log file %s unavailable (%s); logging to the console only.",
                path,
                exc,
            )
            return
        handler.setFormatter(formatter)
        self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def level(self) -> int:
        return self._level

    def audit(self, event: str, msg: str, *args: object, **fields: object) -> None:
        """Record an auth lifecycle *event* at INFO with *fields* as extras."""
        self._logger.info(msg, *args, extra={"event": event, **fields})

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "auth") -> StructuredLogger:
    """``StructuredLogger`` for *name* with configuration defaults."""
    return StructuredLogger(name=name)
