"""Tests for the coverage context (registry of live counters)."""

import json
import logging
import threading
from pathlib import Path

import structlog

from covlab.config.models import LoggingConfig, LogOutputConfig
from covlab.core.logging import configure_logging
from covlab.coverage.instrument import instrument_source
from covlab.coverage.registry import TRACKER_NAME, CoverageContext

FILENAME = "/repo/mod.py"


def _registered(text: str = "a = 1\nb = x or y\n") -> CoverageContext:
    ctx = CoverageContext()
    ctx.register(instrument_source(FILENAME, text))
    return ctx


class TestRegister:
    def test_given_instrumented_file_when_registered_then_counters_zeroed(self) -> None:
        # Given
        ctx = CoverageContext()
        result = instrument_source(FILENAME, "a = 1\nb = x or y\n\n")

        # When
        record = ctx.register(result)

        # Then
        assert FILENAME in ctx
        assert len(ctx) == 1
        assert record.lines == {1: 0, 2: 0}
        assert set(record.statements) == {2}
        assert set(record.statements[2]) == {1, 2}
        assert record.source == ["a = 1", "b = x or y", "", ""]

    def test_tracker_name_is_module_global(self) -> None:
        assert TRACKER_NAME == "__covlab__"


class TestTrackingCalls:
    def test_line_increments_counter(self) -> None:
        ctx = _registered()
        ctx.line(FILENAME, 1)
        ctx.line(FILENAME, 1)
        assert ctx.files[FILENAME].lines[1] == 2

    def test_statement_returns_value_unchanged(self) -> None:
        ctx = _registered()
        marker = object()
        assert ctx.statement(FILENAME, 1, 2, marker) is marker

    def test_scored_statement_tracks_outcomes_independently(self) -> None:
        ctx = _registered()
        ctx.statement(FILENAME, 1, 2, 0)
        statement = ctx.files[FILENAME].statements[2][1]
        assert (statement.hit_true, statement.hit_false) == (False, True)

        ctx.statement(FILENAME, 1, 2, "yes")
        assert statement.covered

    def test_non_scored_statement_never_truth_tests(self) -> None:
        class NoBool:
            def __bool__(self) -> bool:
                raise AssertionError("truth-tested")

        ctx = _registered()
        ctx.statement(FILENAME, 2, 2, NoBool())
        assert ctx.files[FILENAME].statements[2][2].covered

    def test_unknown_file_or_record_ignored(self) -> None:
        ctx = _registered()
        ctx.line("/repo/other.py", 1)
        ctx.line(FILENAME, 99)
        assert ctx.statement(FILENAME, 42, 2, "v") == "v"
        assert ctx.files[FILENAME].lines == {1: 0, 2: 0}

    def test_concurrent_increments_are_not_lost(self) -> None:
        ctx = _registered()

        def work() -> None:
            for _ in range(1000):
                ctx.line(FILENAME, 1)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert ctx.files[FILENAME].lines[1] == 8000


class TestSnapshot:
    def test_snapshot_is_independent_copy(self) -> None:
        ctx = _registered()
        ctx.line(FILENAME, 1)

        snapshot = ctx.snapshot()
        snapshot[FILENAME].lines[1] = 100
        snapshot[FILENAME].statements[2][1].hit_true = True
        ctx.line(FILENAME, 1)

        assert ctx.files[FILENAME].lines[1] == 2
        assert not ctx.files[FILENAME].statements[2][1].hit_true

    def test_clear_drops_files(self) -> None:
        ctx = _registered()
        ctx.clear()
        assert len(ctx) == 0


class TestReinstrumentation:
    def setup_method(self) -> None:
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()

    def teardown_method(self) -> None:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()

    def test_given_counts_when_reregistered_then_schema_replaced_and_warning_logged(
        self, tmp_path: Path
    ) -> None:
        # Given
        log_file = tmp_path / "covlab.log"
        configure_logging(
            config=LoggingConfig(
                level="WARNING",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )
        ctx = _registered()
        old_record = ctx.files[FILENAME]
        ctx.line(FILENAME, 1)
        ctx.line(FILENAME, 2)
        ctx.line(FILENAME, 2)

        # When
        new_record = ctx.register(instrument_source(FILENAME, "a = 1\n"))

        # Then
        assert ctx.files[FILENAME] is new_record is not old_record
        assert new_record.lines == {1: 0}
        events = [json.loads(line) for line in log_file.read_text().splitlines()]
        warning = next(e for e in events if e["event"] == "file_reinstrumented")
        assert warning["path"] == FILENAME
        assert warning["discarded_hits"] == 3
        assert warning["level"] == "warning"
