"""Tests for structured logging helpers."""

import json
import logging

from dataverse_streams.logging_utils import (
    StreamLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
    get_engine_logger,
)


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("dataverse_streams.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJsonFormatter:
    """Tests for JSON log output."""

    def test_basic_fields(self):
        output = json.loads(StructuredJsonFormatter().format(make_record()))
        assert output["level"] == "INFO"
        assert output["logger"] == "dataverse_streams.test"
        assert output["message"] == "hello"
        assert "timestamp" in output

    def test_extra_fields(self):
        record = make_record(stream_id="k123", event_cid="bafyA")
        output = json.loads(StructuredJsonFormatter().format(record))
        assert output["stream_id"] == "k123"
        assert output["event_cid"] == "bafyA"

    def test_unserializable_extra(self):
        record = make_record(payload=object())
        output = json.loads(StructuredJsonFormatter().format(record))
        assert output["payload"].startswith("<object")

    def test_exception_included(self):
        try:
            raise ValueError("bad")
        except ValueError:
            import sys

            record = logging.LogRecord(
                "dataverse_streams", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )
        output = json.loads(StructuredJsonFormatter().format(record))
        assert "ValueError: bad" in output["exception"]


class TestLoggerHelpers:
    """Tests for logger configuration helpers."""

    def test_configure_replaces_handlers(self):
        logger = configure_structured_logging(logging.DEBUG, logger_name="dataverse_streams.cfgtest")
        configure_structured_logging(logging.DEBUG, logger_name="dataverse_streams.cfgtest")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, StructuredJsonFormatter)
        assert logger.level == logging.DEBUG
        logger.handlers.clear()

    def test_engine_logger_name(self):
        assert get_engine_logger("resolver").name == "dataverse_streams.resolver"

    def test_adapter_adds_context(self, caplog):
        adapter = StreamLoggerAdapter(logging.getLogger("dataverse_streams.adapter"), {"stream_id": "k1"})
        with caplog.at_level(logging.INFO, logger="dataverse_streams.adapter"):
            adapter.info("applied", extra={"event_cid": "bafyA"})
        record = caplog.records[-1]
        assert record.stream_id == "k1"
        assert record.event_cid == "bafyA"
