"""Tests for logging configuration module."""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Iterator
from io import StringIO
from unittest.mock import patch

import pytest

from soulscape import logging_config
from soulscape.logging_config import (
    JSONFormatter,
    SecretRedactingFilter,
    TextFormatter,
    configure_logging,
    get_log_format,
    get_log_level,
    get_logger,
    redact,
    register_secret,
)

KEY = "0x" + "4f" * 32
TX_HASH = "0x" + "9c" * 32


def _record(
    msg: str = "Test message",
    level: int = logging.INFO,
    name: str = "soulscape.test",
    args: tuple = (),
    **extra: object,
) -> logging.LogRecord:
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="/path/to/evolution.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def secrets() -> Iterator[set[str]]:
    """An isolated secret registry."""
    with patch.object(logging_config, "_secrets", set()) as registry:
        yield registry


class TestGetLogLevel:
    """Tests for get_log_level function."""

    def test_default_is_info(self) -> None:
        """Default log level should be INFO."""
        with patch.dict(os.environ, {}, clear=True):
            assert get_log_level() == logging.INFO

    def test_debug_level(self) -> None:
        """LOG_LEVEL=DEBUG should return logging.DEBUG."""
        with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}):
            assert get_log_level() == logging.DEBUG

    def test_warn_alias(self) -> None:
        """LOG_LEVEL=WARN should work as alias for WARNING."""
        with patch.dict(os.environ, {"LOG_LEVEL": "warn"}):
            assert get_log_level() == logging.WARNING

    def test_invalid_level_defaults_to_info(self) -> None:
        """Invalid log level should default to INFO."""
        with patch.dict(os.environ, {"LOG_LEVEL": "LOUD"}):
            assert get_log_level() == logging.INFO


class TestGetLogFormat:
    """Tests for get_log_format function."""

    def test_default_is_text(self) -> None:
        """Default log format should be text."""
        with patch.dict(os.environ, {}, clear=True):
            assert get_log_format() == "text"

    def test_json_format(self) -> None:
        """LOG_FORMAT=JSON is accepted case-insensitively."""
        with patch.dict(os.environ, {"LOG_FORMAT": "JSON"}):
            assert get_log_format() == "json"

    def test_invalid_format_defaults_to_text(self) -> None:
        """Unknown formats fall back to text."""
        with patch.dict(os.environ, {"LOG_FORMAT": "yaml"}):
            assert get_log_format() == "text"


class TestRedaction:
    """Tests for secret registration and masking."""

    def test_registered_key_is_masked(self, secrets: set[str]) -> None:
        """A registered key is masked with or without its prefix."""
        register_secret(KEY)

        assert redact(f"key={KEY}") == "key=****"
        assert redact(f"key={KEY[2:].upper()}") == "key=****"

    def test_other_hex_is_untouched(self, secrets: set[str]) -> None:
        """Transaction hashes of the same length are not secrets."""
        register_secret(KEY)

        assert redact(f"submitted {TX_HASH}") == f"submitted {TX_HASH}"

    def test_short_and_empty_values_are_ignored(self, secrets: set[str]) -> None:
        """Values too short to be key material are not registered."""
        register_secret(None)
        register_secret("")
        register_secret("0xabc")

        assert secrets == set()

    def test_filter_rewrites_formatted_message(self, secrets: set[str]) -> None:
        """Secrets passed as arguments are masked after formatting."""
        register_secret(KEY)
        record = _record("signing with %s", args=(KEY,))

        assert SecretRedactingFilter().filter(record) is True
        assert record.getMessage() == "signing with ****"

    def test_traceback_is_masked(self, secrets: set[str]) -> None:
        """Exception text is redacted in both formatters."""
        register_secret(KEY)
        try:
            raise ValueError(f"bad key {KEY}")
        except ValueError:
            record = logging.LogRecord(
                "soulscape.test", logging.ERROR, "x.py", 1, "failed", (), sys.exc_info()
            )

        assert KEY[2:] not in JSONFormatter().format(record)
        assert KEY[2:] not in TextFormatter(use_colors=False).format(record)


class TestJSONFormatter:
    """Tests for JSON log formatter."""

    def test_formats_as_valid_json(self) -> None:
        """Output should be valid JSON."""
        data = json.loads(JSONFormatter().format(_record()))

        assert data["message"] == "Test message"
        assert data["level"] == "INFO"
        assert data["logger"] == "soulscape.test"
        assert "timestamp" in data
        assert "source" not in data

    def test_lifts_context_fields(self) -> None:
        """address and token_id appear at the top level."""
        record = _record(address="0xabc", token_id=7, attempt=2)

        data = json.loads(JSONFormatter().format(record))

        assert data["address"] == "0xabc"
        assert data["token_id"] == 7
        assert data["extra"] == {"attempt": 2}

    def test_includes_source_for_error(self) -> None:
        """Error logs should include file:line."""
        data = json.loads(JSONFormatter().format(_record(level=logging.ERROR)))

        assert data["source"] == "evolution.py:42"

    def test_formats_message_with_args(self) -> None:
        """Message arguments should be formatted."""
        record = _record("Count: %d, Name: %s", args=(42, "spirit"))

        assert json.loads(JSONFormatter().format(record))["message"] == "Count: 42, Name: spirit"


class TestTextFormatter:
    """Tests for text log formatter."""

    def test_shortens_logger_name(self) -> None:
        """Logger names under soulscape should be shortened."""
        output = TextFormatter(use_colors=False).format(_record(name="soulscape.engine.evolution"))

        assert "[engine.evolution]" in output
        assert "soulscape.engine" not in output
        assert "INFO" in output

    def test_appends_context(self) -> None:
        """Context fields are appended in braces."""
        output = TextFormatter(use_colors=False).format(_record(address="0xabc", token_id=3))

        assert output.endswith("Test message {address=0xabc token_id=3}")


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configures_soulscape_logger(self) -> None:
        """Should install one redacting handler on the soulscape logger."""
        configure_logging(level=logging.DEBUG, format_type="text")
        logger = logging.getLogger("soulscape")

        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert any(isinstance(f, SecretRedactingFilter) for f in logger.handlers[0].filters)

    def test_reads_from_environment(self) -> None:
        """Should read level and format from environment."""
        with patch.dict(os.environ, {"LOG_LEVEL": "WARNING", "LOG_FORMAT": "json"}):
            configure_logging()

        logger = logging.getLogger("soulscape")
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_reconfigure_replaces_handler(self) -> None:
        """Calling twice does not stack handlers."""
        configure_logging(level=logging.INFO, format_type="text")
        configure_logging(level=logging.INFO, format_type="json")

        handlers = logging.getLogger("soulscape").handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JSONFormatter)


class TestGetLogger:
    """Tests for get_logger convenience function."""

    def test_prefixes_soulscape(self) -> None:
        """Should prefix non-soulscape names with soulscape."""
        assert get_logger("my_module").name == "soulscape.my_module"

    def test_preserves_soulscape_prefix(self) -> None:
        """Should not double-prefix soulscape names."""
        assert get_logger("soulscape.server").name == "soulscape.server"


class TestIntegration:
    """Integration tests for logging."""

    def test_json_logging_to_stream(self, secrets: set[str]) -> None:
        """A redacting JSON handler writes clean lines."""
        register_secret(KEY)
        buffer = StringIO()
        handler = logging.StreamHandler(buffer)
        handler.addFilter(SecretRedactingFilter())
        handler.setFormatter(JSONFormatter())

        logger = logging.getLogger("soulscape.test_json_integration")
        logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False

        logger.warning("leaked %s", KEY, extra={"address": "0xabc"})

        data = json.loads(buffer.getvalue().strip())
        assert data["message"] == "leaked ****"
        assert data["level"] == "WARNING"
        assert data["address"] == "0xabc"
        logger.handlers.clear()
