"""Tests for the shared structured logging setup."""

import json
import logging

import pytest
import structlog

from common.logger import JSONFormatter, configure_logging, get_logger


@pytest.fixture
def restore_logging():
    """Restore root handlers and structlog defaults after each test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
    structlog.reset_defaults()


class TestConfigureLogging:

    def test_json_log_file(self, tmp_path, restore_logging):
        log_file = tmp_path / "logs" / "hedge.log"
        configure_logging("hedge-ratio", log_level="DEBUG", log_format="json", log_file=str(log_file))

        get_logger("tests.logger").info("Filter updated", hedge_ratio=1.25, pair_id="EWA_EWC")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["event"] == "Filter updated"
        assert entry["service"] == "hedge-ratio"
        assert entry["hedge_ratio"] == 1.25
        assert entry["level"] == "info"
        assert "timestamp" in entry
        assert "process_id" in entry

    def test_level_filtering(self, tmp_path, restore_logging):
        log_file = tmp_path / "hedge.log"
        configure_logging("hedge-ratio", log_level="WARNING", log_file=str(log_file))

        logger = get_logger("tests.logger.level")
        logger.info("Hidden")
        logger.warning("Shown")
        for handler in logging.getLogger().handlers:
            handler.flush()

        events = [json.loads(line)["event"] for line in log_file.read_text().splitlines()]
        assert events == ["Shown"]

    def test_console_format(self, tmp_path, restore_logging):
        log_file = tmp_path / "console.log"
        configure_logging("hedge-ratio", log_format="console", log_file=str(log_file))

        get_logger("tests.logger.console").info("Replay finished", rows=3)
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text()
        assert "Replay finished" in text
        assert "rows" in text


class TestJSONFormatter:

    def test_plain_stdlib_record(self):
        record = logging.LogRecord("joblib", logging.WARNING, __file__, 1, "disk %s", ("full",), None)
        record.pair_id = "EWA_EWC"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["event"] == "disk full"
        assert entry["level"] == "warning"
        assert entry["logger"] == "joblib"
        assert entry["pair_id"] == "EWA_EWC"

    def test_rendered_json_passes_through(self):
        rendered = json.dumps({"event": "ready"})
        record = logging.LogRecord("x", logging.INFO, __file__, 1, rendered, (), None)

        assert JSONFormatter().format(record) == rendered
