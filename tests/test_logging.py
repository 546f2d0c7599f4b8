"""Tests for logging configuration and formatters."""

import io
import json
import logging
import sys

import pytest

from serve_s3.logging_config import (
    JSONFormatter,
    TextFormatter,
    configure_logging,
    parse_level,
    record_context,
)


@pytest.fixture
def restore_logging():
    """Restore root and library logger state after a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    botocore_level = logging.getLogger("botocore").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("botocore").setLevel(botocore_level)


def _record(msg: str = "hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord("serve_s3.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRecordContext:
    """Tests for record_context()."""

    def test_known_fields_in_display_order(self):
        record = _record(key="k", bucket="b", operation="PutObject", custom="nope")
        assert list(record_context(record).items()) == [
            ("operation", "PutObject"),
            ("bucket", "b"),
            ("key", "k"),
        ]

    def test_none_values_are_skipped(self):
        assert record_context(_record(status=None)) == {}


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_base_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "serve_s3.test"
        assert entry["message"] == "hello world"
        assert entry["timestamp"].endswith("+00:00")

    def test_known_extras_are_included(self):
        record = _record(operation="PutObject", bucket="b", key="k", status=201, custom="nope")

        entry = json.loads(JSONFormatter().format(record))

        assert entry["operation"] == "PutObject"
        assert entry["bucket"] == "b"
        assert entry["key"] == "k"
        assert entry["status"] == 201
        assert "custom" not in entry

    def test_exception_is_formatted(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "serve_s3.test", logging.ERROR, __file__, 1, "failed", (), None
            )
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in entry["exception"]


class TestTextFormatter:
    """Tests for TextFormatter."""

    def test_plain_line_without_context(self):
        line = TextFormatter().format(_record())
        assert line.endswith("INFO serve_s3.test: hello world")

    def test_context_is_appended(self):
        record = _record(operation="GetObject", bucket="b", key="a/b.pdf")

        line = TextFormatter().format(record)

        assert line.endswith("hello world [operation=GetObject bucket=b key=a/b.pdf]")


class TestParseLevel:
    """Tests for parse_level()."""

    def test_names_are_case_insensitive(self):
        assert parse_level("debug") == logging.DEBUG
        assert parse_level("WARNING") == logging.WARNING

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="unknown log level"):
            parse_level("LOUD")


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_json_format(self, restore_logging):
        configure_logging("WARNING", "json")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        (handler,) = root.handlers
        assert isinstance(handler.formatter, JSONFormatter)

    def test_text_format(self, restore_logging):
        configure_logging("info", "text")

        (handler,) = logging.getLogger().handlers
        assert isinstance(handler.formatter, TextFormatter)
        assert logging.getLogger().level == logging.INFO

    def test_writes_to_given_stream(self, restore_logging):
        stream = io.StringIO()
        configure_logging("INFO", "json", stream=stream)

        logging.getLogger("serve_s3.test").info("stored", extra={"bucket": "b"})

        entry = json.loads(stream.getvalue())
        assert entry["message"] == "stored"
        assert entry["bucket"] == "b"

    def test_unknown_format(self, restore_logging):
        with pytest.raises(ValueError, match="unknown log format"):
            configure_logging("INFO", "xml")

    def test_library_loggers_quiet_unless_debug(self, restore_logging):
        configure_logging("INFO")
        assert logging.getLogger("botocore").level == logging.WARNING

        configure_logging("DEBUG")
        assert logging.getLogger("botocore").level == logging.DEBUG
