"""Tests for logging setup and operation contexts."""

from __future__ import annotations

import json
import logging

import pytest

from btclient.models import LogLevel, ObservabilityConfig
from btclient.utils.logging_config import (
    ROOT_LOGGER,
    CorrelationFilter,
    LoggingContext,
    StructuredFormatter,
    correlation_id,
    get_logger,
    setup_logging,
)
from btclient.utils.rich_logging import CorrelationRichHandler

pytestmark = [pytest.mark.unit, pytest.mark.utils]


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("btclient.test", logging.INFO, __file__, 10, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_get_logger_namespaces():
    assert get_logger("client").name == "btclient.client"
    assert get_logger("btclient.tracker").name == "btclient.tracker"
    assert get_logger(ROOT_LOGGER).name == ROOT_LOGGER


def test_structured_formatter_includes_extra_fields():
    record = make_record(info_hash="ab" * 20)
    CorrelationFilter().filter(record)
    entry = json.loads(StructuredFormatter().format(record))
    assert entry["message"] == "hello world"
    assert entry["level"] == "INFO"
    assert entry["info_hash"] == "ab" * 20
    assert "correlation_id" in entry
    assert "msg" not in entry
    assert "args" not in entry


def test_setup_logging_with_file(tmp_path):
    log_file = tmp_path / "logs" / "btclient.log"
    setup_logging(
        ObservabilityConfig(
            log_level=LogLevel.DEBUG, log_file=str(log_file), structured_logging=True
        )
    )
    root = logging.getLogger(ROOT_LOGGER)
    assert root.level == logging.DEBUG
    assert any(isinstance(h, CorrelationRichHandler) for h in root.handlers)

    get_logger("test").debug("written to file")
    for handler in root.handlers:
        handler.flush()
    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert json.loads(line)["message"] == "written to file"


class TestLoggingContext:
    def test_success(self, caplog):
        logger = logging.getLogger("tests.context")
        with caplog.at_level(logging.DEBUG, logger="tests.context"):
            with LoggingContext("torrent_add", logger, info_hash="00" * 20):
                pass
        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "Starting torrent_add"
        assert messages[1].startswith("Completed torrent_add in ")
        assert caplog.records[1].levelno == logging.INFO
        assert caplog.records[1].info_hash == "00" * 20
        assert correlation_id.get() is not None

    def test_failure_propagates(self, caplog):
        logger = logging.getLogger("tests.context")
        with caplog.at_level(logging.DEBUG, logger="tests.context"):
            with pytest.raises(RuntimeError):
                with LoggingContext("lookup", logger):
                    raise RuntimeError("boom")
        assert caplog.records[-1].levelno == logging.ERROR
        assert "Failed lookup" in caplog.records[-1].getMessage()
