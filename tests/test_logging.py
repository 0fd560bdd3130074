"""Tests for structured logging."""

from __future__ import annotations

import json
import logging

import pytest

from wheel_engine.utils import (
    StructuredFormatter,
    clear_execution_context,
    get_logger,
    run_context,
    run_id,
    set_execution_context,
    timed_operation,
)


def _payloads(caplog: pytest.LogCaptureFixture) -> list[dict]:
    return [json.loads(record.getMessage()) for record in caplog.records]


@pytest.fixture(autouse=True)
def _clean_context():
    clear_execution_context()
    yield
    clear_execution_context()


class TestStructuredLogger:
    def test_message_is_json_with_extra(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="wheel_engine.test")
        get_logger("wheel_engine.test").info("Quote fetched", extra={"symbol": "IBIT", "attempt": 2})

        payload = _payloads(caplog)[0]
        assert payload["message"] == "Quote fetched"
        assert payload["module"] == "wheel_engine.test"
        assert payload["symbol"] == "IBIT"
        assert payload["attempt"] == 2
        assert "run_id" not in payload

    def test_record_attributes_are_not_shadowed(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="wheel_engine.test")
        get_logger("wheel_engine.test").info("x", extra={"name": "shadow", "strike": 61})

        payload = _payloads(caplog)[0]
        assert payload["strike"] == 61
        assert payload["dropped_fields"] == ["name"]

    def test_bind(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="wheel_engine.test")
        get_logger("wheel_engine.test").bind(symbol="ETHA").info("bound")
        assert _payloads(caplog)[0]["symbol"] == "ETHA"

    def test_run_context(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="wheel_engine.test")
        logger = get_logger("wheel_engine.test")

        with run_context("abc123", command="analyze"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = _payloads(caplog)
        assert inside["run_id"] == "abc123"
        assert inside["context"] == {"command": "analyze"}
        assert "run_id" not in outside
        assert run_id.get() is None

    def test_execution_context_merges(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="wheel_engine.test")
        set_execution_context(symbol="IBIT")
        set_execution_context(stage="detect")
        get_logger("wheel_engine.test").info("ctx")

        assert _payloads(caplog)[0]["context"] == {"symbol": "IBIT", "stage": "detect"}


class TestTimedOperation:
    def test_slow_call_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger=__name__)

        @timed_operation(threshold_ms=-1.0)
        def detect() -> list[int]:
            return [1, 2, 3]

        assert detect() == [1, 2, 3]
        record = caplog.records[-1]
        payload = json.loads(record.getMessage())
        assert record.levelno == logging.WARNING
        assert payload["result_size"] == 3
        assert payload["status"] == "completed"

    def test_failure_is_recorded_and_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger=__name__)

        @timed_operation()
        def broken() -> None:
            raise ValueError("boom")

        with pytest.raises(ValueError):
            broken()
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["status"] == "failed"
        assert payload["error_type"] == "ValueError"

    @pytest.mark.asyncio
    async def test_async(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger=__name__)

        @timed_operation()
        async def fetch() -> str:
            return "ok"

        assert await fetch() == "ok"
        assert json.loads(caplog.records[-1].getMessage())["status"] == "completed"


class TestStructuredFormatter:
    def _record(self, msg: str, level: int = logging.INFO) -> logging.LogRecord:
        return logging.LogRecord("third.party", level, __file__, 1, msg, None, None)

    def test_passes_structured_messages_through(self) -> None:
        formatted = StructuredFormatter().format(self._record('{"message": "hi", "symbol": "IBIT"}'))
        assert json.loads(formatted) == {"message": "hi", "symbol": "IBIT", "level": "INFO"}

    def test_wraps_plain_messages(self) -> None:
        formatted = json.loads(StructuredFormatter().format(self._record("plain {not json", logging.ERROR)))
        assert formatted["message"] == "plain {not json"
        assert formatted["module"] == "third.party"
        assert formatted["level"] == "ERROR"
