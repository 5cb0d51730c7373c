"""Tests for engine settings and logging configuration."""

import logging
from logging.handlers import RotatingFileHandler
from uuid import uuid4

import pytest
from pydantic import ValidationError

from progression.config.settings import Settings
from progression.core.logging import (
    configure_structlog,
    filter_sensitive_data,
    stringify_ids,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.video_watch_threshold_percent == 90
        assert settings.attempt_insert_max_retries == 5
        assert settings.unsectioned_position == "last"
        assert settings.course_completed_channel == "progression:course_completed"

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("VIDEO_WATCH_THRESHOLD_PERCENT", "75")
        monkeypatch.setenv("ENVIRONMENT", "testing")

        settings = Settings(_env_file=None)

        assert settings.video_watch_threshold_percent == 75
        assert settings.is_testing

    @pytest.mark.parametrize("value", [0, 101])
    def test_threshold_bounds(self, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, video_watch_threshold_percent=value)

    def test_unsectioned_position_choices(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, unsectioned_position="middle")


class TestLogging:
    def test_console_only_configuration(self, tmp_path):
        """Should not create log files when file output is disabled."""
        settings = Settings(_env_file=None, log_to_file=False, log_format="json")

        configure_structlog(settings, log_dir=tmp_path)

        handlers = logging.getLogger().handlers
        assert not any(isinstance(h, RotatingFileHandler) for h in handlers)
        assert list(tmp_path.iterdir()) == []

    def test_file_output(self, tmp_path):
        settings = Settings(_env_file=None, log_to_file=True)

        configure_structlog(settings, log_dir=tmp_path / "logs")

        handlers = logging.getLogger().handlers
        assert sum(isinstance(h, RotatingFileHandler) for h in handlers) == 2
        assert (tmp_path / "logs").is_dir()

    def test_filter_sensitive_data(self):
        event = filter_sensitive_data(
            None,
            "info",
            {
                "event": "cassandra_connecting",
                "cassandra_password": "hunter22",
                "api_key": "abc",
                "hosts": ["localhost"],
            },
        )

        assert event["cassandra_password"] == "hu****22"
        assert event["api_key"] == "***"
        assert event["hosts"] == ["localhost"]

    def test_stringify_ids(self):
        learner_id = uuid4()

        event = stringify_ids(None, "info", {"event": "x", "learner_id": learner_id, "n": 3})

        assert event == {"event": "x", "learner_id": str(learner_id), "n": 3}
