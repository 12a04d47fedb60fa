"""Tests for searchdivert.logging -- JSON output and correlation ids."""

from __future__ import annotations

import io
import json
import logging

from searchdivert.logging import (
    JSONFormatter,
    bind_query_id,
    bind_request_id,
    configure_logging,
    get_query_id,
    get_request_id,
)


def _record(message: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("searchdivert.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationIds:
    def test_bind_request_id_generates(self) -> None:
        rid = bind_request_id()
        assert len(rid) == 12
        assert get_request_id() == rid

    def test_bind_explicit_ids(self) -> None:
        bind_request_id("req-1")
        bind_query_id("q-1")
        assert get_request_id() == "req-1"
        assert get_query_id() == "q-1"
        bind_query_id("")


class TestJSONFormatter:
    def test_core_fields(self) -> None:
        bind_request_id("req-2")
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "searchdivert.test"
        assert entry["request_id"] == "req-2"
        assert "query_id" not in entry

    def test_query_id_and_extra(self) -> None:
        entry = json.loads(JSONFormatter().format(_record(query_id="q-9", found=3)))
        assert entry["query_id"] == "q-9"
        assert entry["found"] == 3


class TestConfigureLogging:
    def test_replaces_handlers(self) -> None:
        configure_logging(level=logging.DEBUG)
        configure_logging(level=logging.WARNING, json_format=False)
        root = logging.getLogger("searchdivert")
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert root.propagate is False

    def test_text_format_shows_correlation_ids(self) -> None:
        stream = io.StringIO()
        configure_logging(json_format=False, stream=stream)
        bind_request_id("req-7")
        bind_query_id("q-7")
        try:
            logging.getLogger("searchdivert.engine").info("diverted")
        finally:
            bind_query_id("")
        assert "[req-7/q-7] searchdivert.engine - diverted" in stream.getvalue()
