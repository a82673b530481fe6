"""Tests for logging setup."""

import json
import logging

import pytest

from openwriter.logging_utils import JSONFormatter, setup_logging


def test_json_formatter() -> None:
    record = logging.LogRecord(
        "openwriter.versions",
        logging.WARNING,
        __file__,
        10,
        "Snapshot failed for %s",
        ("abcd1234",),
        None,
    )
    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "WARNING"  # noqa: S101
    assert payload["logger"] == "openwriter.versions"  # noqa: S101
    assert payload["message"] == "Snapshot failed for abcd1234"  # noqa: S101


def test_setup_logging_reads_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENWRITER_LOG_LEVEL", "debug")
    setup_logging()
    assert logging.getLogger().level == logging.DEBUG  # noqa: S101

    setup_logging("error")
    assert logging.getLogger().level == logging.ERROR  # noqa: S101

    monkeypatch.setenv("OPENWRITER_LOG_LEVEL", "nonsense")
    setup_logging()
    assert logging.getLogger().level == logging.WARNING  # noqa: S101

    json_handlers = [
        handler
        for handler in logging.getLogger().handlers
        if isinstance(handler.formatter, JSONFormatter)
    ]
    assert len(json_handlers) <= 1  # noqa: S101
