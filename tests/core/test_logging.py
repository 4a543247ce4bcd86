"""Tests for structured logging."""

import json
import logging
from pathlib import Path

import pytest
import structlog

from covlab.config.models import LoggingConfig, LogOutputConfig
from covlab.core.logging import (
    clear_run_id,
    configure_logging,
    ensure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)


class TestRunIdCorrelation:
    """Run ID context variable tests."""

    def setup_method(self) -> None:
        """Clear run ID before each test."""
        clear_run_id()

    def test_given_run_id_when_set_then_can_retrieve(self) -> None:
        """Run ID can be set and retrieved."""
        # Given
        run_id = "run-123"

        # When
        result = set_run_id(run_id)

        # Then
        assert result == run_id
        assert get_run_id() == run_id

    def test_given_no_id_when_set_then_generates_uuid(self) -> None:
        """Set generates UUID-based ID when none provided."""
        # When
        rid = set_run_id()

        # Then
        assert rid is not None
        assert len(rid) == 12  # uuid4().hex[:12]

    def test_given_set_id_when_clear_then_removes_id(self) -> None:
        """Clear removes the current run ID."""
        # Given
        set_run_id("to-clear")

        # When
        clear_run_id()

        # Then
        assert get_run_id() is None


class TestLoggingConfiguration:
    """Logging configuration tests."""

    def setup_method(self) -> None:
        """Reset structlog and stdlib logging before each test."""
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()
        clear_run_id()

    def teardown_method(self) -> None:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()
        clear_run_id()

    def test_given_json_format_when_log_then_valid_json_output(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """JSON format produces valid JSON with required fields."""
        # Given
        configure_logging(json_format=True, level="INFO")
        logger = get_logger("test")

        # When
        logger.info("test message", key="value")

        # Then
        captured = capsys.readouterr()
        lines = [line for line in captured.err.strip().split("\n") if line]
        if lines:
            data = json.loads(lines[-1])
            assert data["event"] == "test message"
            assert data["key"] == "value"
            assert "timestamp" in data
            assert data["level"] == "info"

    def test_given_config_object_when_configure_then_takes_precedence(self, tmp_path: Path) -> None:
        """LoggingConfig object takes precedence over simple params."""
        # Given
        log_file = tmp_path / "test.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[LogOutputConfig(format="json", destination=str(log_file))],
        )

        # When - config's DEBUG should override the level="ERROR" param
        configure_logging(config=config, json_format=False, level="ERROR")
        get_logger().debug("debug msg")

        # Then
        assert "debug msg" in log_file.read_text()

    def test_given_run_id_when_log_then_run_id_in_record(self, tmp_path: Path) -> None:
        """Events logged during a run carry its correlation ID."""
        # Given
        log_file = tmp_path / "run.log"
        configure_logging(
            config=LoggingConfig(
                level="INFO",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )
        set_run_id("abc123")

        # When
        get_logger("covlab.test").info("report_built", files=2)

        # Then
        data = json.loads(log_file.read_text().strip().split("\n")[-1])
        assert data["run_id"] == "abc123"
        assert data["logger"] == "covlab.test"
        assert data["files"] == 2

    def test_given_multi_output_config_when_configure_then_logs_to_all(
        self, tmp_path: Path
    ) -> None:
        """Multiple outputs receive logs according to their levels."""
        # Given
        debug_file = tmp_path / "debug.log"
        info_file = tmp_path / "info.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[
                LogOutputConfig(format="json", destination=str(info_file), level="INFO"),
                LogOutputConfig(format="json", destination=str(debug_file)),
            ],
        )

        # When
        configure_logging(config=config)
        logger = get_logger()
        logger.debug("debug only")
        logger.info("info msg")

        # Then
        info_content = info_file.read_text()
        assert "info msg" in info_content
        assert "debug only" not in info_content

        debug_content = debug_file.read_text()
        assert "debug only" in debug_content
        assert "info msg" in debug_content

    def test_given_logger_created_before_configure_when_log_then_config_applies(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Module-level loggers pick up configuration made after their creation."""
        # Given
        early = get_logger("covlab.early")
        log_file = tmp_path / "late.log"

        # When
        configure_logging(
            config=LoggingConfig(
                level="DEBUG",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )
        early.debug("after_configure")

        # Then
        assert "after_configure" in log_file.read_text()
        assert capsys.readouterr().out == ""


class TestEnsureLogging:
    def setup_method(self) -> None:
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()

    def teardown_method(self) -> None:
        structlog.reset_defaults()

    def test_given_unconfigured_when_ensured_then_debug_dropped_and_stdout_untouched(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        # Given
        logger = get_logger("covlab.library")

        # When
        ensure_logging()
        logger.debug("hidden")
        logger.info("hidden_too")

        # Then
        assert structlog.is_configured()
        assert capsys.readouterr().out == ""

    def test_given_configured_when_ensured_then_configuration_kept(self, tmp_path: Path) -> None:
        log_file = tmp_path / "kept.log"
        configure_logging(
            config=LoggingConfig(
                level="DEBUG",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )

        ensure_logging()
        get_logger().debug("still_debug")

        assert "still_debug" in log_file.read_text()
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()


class TestLogOutputConfig:
    def test_given_relative_file_destination_when_validated_then_rejected(self) -> None:
        with pytest.raises(ValueError, match="absolute"):
            LogOutputConfig(destination="logs/covlab.log")
