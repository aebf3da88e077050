from __future__ import annotations

import asyncio
import json
import logging

import pytest
import structlog

from src.core.logger import (
    MAIN_LOG,
    CycleTimer,
    _mask_credentials,
    _round_floats,
    cycle_context,
    get_logger,
    setup_logging,
)


class RecordingLogger:
    def __init__(self):
        self.events = []

    def _record(self, level):
        def log(event, **fields):
            self.events.append((level, event, fields))
        return log

    def __getattr__(self, level):
        return self._record(level)


@pytest.fixture
def json_logs(tmp_path):
    setup_logging(log_level="DEBUG", log_dir=str(tmp_path), json_output=True)
    yield tmp_path / MAIN_LOG
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


def _last_line(path):
    for handler in logging.getLogger().handlers:
        handler.flush()
    return json.loads(path.read_text().strip().splitlines()[-1])


class TestProcessors:

    def test_credentials_masked(self):
        out = _mask_credentials(None, None, {
            "event": "predictor ready", "api_key": "sk-abcdef123456", "auth_token": "short",
        })
        assert out["api_key"] == "sk-a****3456"
        assert out["auth_token"] == "****"
        assert out["event"] == "predictor ready"

    def test_floats_rounded(self):
        out = _round_floats(None, None, {"confidence": 0.913724519, "bars": 60, "end": float("-inf")})
        assert out["confidence"] == 0.913725
        assert out["bars"] == 60
        assert out["end"] == float("-inf")


class TestCycleContext:

    def test_binds_and_unbinds(self):
        with cycle_context(symbol="BTC/USD", timeframe="4h"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["symbol"] == "BTC/USD"
            assert bound["timeframe"] == "4h"
        assert "symbol" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_tasks_keep_their_own_context(self):
        async def cycle(symbol):
            with cycle_context(symbol=symbol):
                await asyncio.sleep(0.01)
                return structlog.contextvars.get_contextvars()["symbol"]

        seen = await asyncio.gather(cycle("BTC/USD"), cycle("ETH/USD"))
        assert seen == ["BTC/USD", "ETH/USD"]


class TestCycleTimer:

    def test_success_logs_debug(self):
        log = RecordingLogger()
        with CycleTimer(log, "decision_cycle", roster_version=3) as timer:
            pass
        level, event, fields = log.events[0]
        assert (level, event) == ("debug", "decision_cycle completed")
        assert fields["roster_version"] == 3
        assert timer.elapsed_ms >= 0.0

    def test_slow_block_warns(self):
        log = RecordingLogger()
        with CycleTimer(log, "decision_cycle", slow_ms=-1.0):
            pass
        assert log.events[0][0] == "warning"

    def test_failure_logs_error_and_propagates(self):
        log = RecordingLogger()
        with pytest.raises(ValueError):
            with CycleTimer(log, "decision_cycle"):
                raise ValueError("bad window")
        level, event, fields = log.events[0]
        assert (level, event) == ("error", "decision_cycle failed")
        assert "bad window" in fields["error"]

    def test_cancellation_is_silent(self):
        log = RecordingLogger()
        with pytest.raises(asyncio.CancelledError):
            with CycleTimer(log, "decision_cycle"):
                raise asyncio.CancelledError()
        assert log.events == []


class TestSetup:

    def test_json_file_output_carries_cycle_context(self, json_logs):
        logger = get_logger("fusion_test")
        with cycle_context(symbol="BTC/USD", timeframe="4h"):
            logger.info("Signal fusion", confidence=0.681424, api_key="sk-abcdef123456")
        line = _last_line(json_logs)
        assert line["event"] == "Signal fusion"
        assert line["logger"] == "fusion_test"
        assert line["level"] == "info"
        assert line["symbol"] == "BTC/USD"
        assert line["timeframe"] == "4h"
        assert line["api_key"] == "sk-a****3456"
        assert "timestamp" in line

    def test_repeated_setup_does_not_duplicate_handlers(self, json_logs, tmp_path):
        setup_logging(log_level="INFO", log_dir=str(tmp_path), json_output=True)
        assert len(logging.getLogger().handlers) == 3
