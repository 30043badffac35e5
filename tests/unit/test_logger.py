"""Tests for logging setup."""

import json
import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest
import structlog

from trove_keeper.config import get_settings
from trove_keeper.logger import get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_lines_on_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that JSON events carry context and a timestamp and avoid stdout."""
        with patch.dict(os.environ, {"LOG_FORMAT": "json", "LOG_LEVEL": "INFO"}):
            setup_logging()

        get_logger("trove", component="cache").info("Cached entry", url="https://example.com")

        captured = capsys.readouterr()
        event = json.loads(captured.err.strip().splitlines()[-1])
        assert captured.out == ""
        assert event["event"] == "Cached entry"
        assert event["component"] == "cache"
        assert event["url"] == "https://example.com"
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that events below LOG_LEVEL are dropped."""
        with patch.dict(os.environ, {"LOG_FORMAT": "json", "LOG_LEVEL": "WARNING"}):
            setup_logging()

        logger = get_logger("trove")
        logger.info("hidden")
        logger.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err
