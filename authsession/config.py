"""
Application Configuration.

Pydantic Settings model for the auth session controller.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase (identity backend) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Magic link / OAuth return URL ---
    AUTH_RETURN_URL: str = "http://localhost:3000/auth/callback"

    # --- Durable key/value store ---
    STORAGE_PATH: str = "authsession_local.db"
    STORAGE_TABLE: str = "auth_settings"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("STORAGE_TABLE")
    @classmethod
    def _check_table_name(cls, value: str) -> str:
        """The table name is interpolated into DDL, so keep it an identifier."""
        if not value.isidentifier():
            raise ValueError(f"STORAGE_TABLE must be a plain identifier, got {value!r}")
        return value

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty."""
        _log = logging.getLogger("authsession.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_URL / SUPABASE_ANON_KEY are empty; the Supabase "
                "identity backend cannot be created."
            )

        return self

    @property
    def log_level(self) -> int:
        """Numeric ``logging`` level for ``LOG_LEVEL`` (INFO when unknown)."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO

    def validate_backend_config(self) -> None:
        """Validate that the identity backend can be reached.

        Raises:
            ValueError: If the Supabase URL or anon key is missing.
        """
        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY.get_secret_value():
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path skips the lock.
    Prefer constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
