"""Tests for configuration loading and structured logging."""

import io
import json
import logging
import sys

import pytest
from pydantic import ValidationError

from authsession.config import AppConfig, get_config
from authsession.logger import JSONFormatter, StructuredLogger
from authsession.utils import prepare_email


class TestAppConfig:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
        monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = AppConfig()

        assert config.SUPABASE_URL == "https://proj.supabase.co"
        assert config.SUPABASE_ANON_KEY.get_secret_value() == "anon"
        assert config.log_level == logging.DEBUG
        config.validate_backend_config()

    def test_missing_backend_settings(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

        with pytest.raises(ValueError):
            AppConfig(_env_file=None).validate_backend_config()

    def test_unknown_log_level_falls_back_to_info(self):
        assert AppConfig(LOG_LEVEL="chatty").log_level == logging.INFO

    def test_table_name_must_be_identifier(self):
        with pytest.raises(ValidationError):
            AppConfig(STORAGE_TABLE="auth settings")

    def test_get_config_is_cached(self):
        assert get_config() is get_config()


class TestStructuredLogger:
    def test_audit_entry_has_top_level_event(self):
        stream = io.StringIO()
        log = StructuredLogger(name="authsession.tests.audit", level=logging.INFO, stream=stream, log_file="")

        log.audit("SIGN_OUT", "Signed out %s.", "foo@bar.com", uid="uid-1")

        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["level"] == "INFO"
        assert entry["message"] == "Signed out foo@bar.com."
        assert entry["event"] == "SIGN_OUT"
        assert entry["extra"] == {"uid": "uid-1"}

    def test_credential_fields_are_redacted(self):
        stream = io.StringIO()
        log = StructuredLogger(name="authsession.tests.redact", level=logging.DEBUG, stream=stream, log_file="")

        log.debug("reauth", extra={"password": "hunter2", "email": "foo@bar.com"})

        output = stream.getvalue()
        assert "hunter2" not in output
        entry = json.loads(output.strip().splitlines()[-1])
        assert entry["extra"] == {"password": "***", "email": "foo@bar.com"}
        assert "event" not in entry

    def test_exception_is_serialised(self):
        formatter = JSONFormatter()
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        entry = json.loads(formatter.format(record))
        assert "RuntimeError: boom" in entry["exception"]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Foo@Bar.com ", "foo@bar.com"),
        ("  a@b.c", "a@b.c"),
        ("   ", None),
        (None, None),
    ],
)
def test_prepare_email(raw, expected):
    assert prepare_email(raw) == expected
