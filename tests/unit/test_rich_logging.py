"""Tests for run-context logging."""

import logging
import sys

from boss_agent.utils.rich_logging import BossLogFormatter, ContextLogger, setup_rich_logging


def _make_record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord("boss_agent.test", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContextLogger:
    def test_construction(self):
        base = logging.getLogger("boss_agent.test")
        run_log = ContextLogger(base, run_name="nightly")

        assert run_log.run_name == "nightly"
        assert run_log.logger is base
        assert run_log.current_run_id is None

    def test_process_injects_run_context(self):
        run_log = ContextLogger(logging.getLogger("boss_agent.test"))
        run_log.set_run_context(run_id="boss-1", work_item_key="PROJ-1", phase="executing")

        msg, kwargs = run_log.process("hi", {"extra": {"attempt": 2}})

        assert msg == "hi"
        assert kwargs["extra"] == {
            "attempt": 2,
            "run_id": "boss-1",
            "work_item_key": "PROJ-1",
            "phase": "executing",
        }

    def test_process_without_context_adds_nothing(self):
        run_log = ContextLogger(logging.getLogger("boss_agent.test"))
        _, kwargs = run_log.process("hi", {})
        assert kwargs["extra"] == {}

    def test_clear_context(self):
        run_log = ContextLogger(logging.getLogger("boss_agent.test"))
        run_log.set_run_context(run_id="boss-1", phase="analyzing")
        run_log.clear_context()
        assert run_log.process("hi", {})[1]["extra"] == {}

    def test_run_started_logs_with_context(self, caplog):
        run_log = ContextLogger(logging.getLogger("boss_agent.test"))

        with caplog.at_level(logging.INFO, logger="boss_agent.test"):
            run_log.run_started("boss-1", "Refactor auth", "PROJ-1")
            run_log.phase_change("executing")

        first, second = caplog.records
        assert "Starting run boss-1: Refactor auth" in first.getMessage()
        assert first.work_item_key == "PROJ-1"
        assert second.phase == "executing"


class TestBossLogFormatter:
    def test_work_item_key_and_phase_prefix(self):
        line = BossLogFormatter(use_colors=False).format(
            _make_record(run_id="boss-1", work_item_key="PROJ-1", phase="executing")
        )
        assert line.endswith("INFO     [executing] [PROJ-1] hello")

    def test_run_id_when_no_work_item(self):
        line = BossLogFormatter(use_colors=False).format(_make_record(run_id="boss-1"))
        assert line.endswith("[boss-1] hello")

    def test_colors(self):
        line = BossLogFormatter(use_colors=True).format(_make_record(level=logging.ERROR))
        assert "\033[31mERROR" in line
        assert "\033[0m" in line

    def test_exception_is_appended(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        line = BossLogFormatter(use_colors=False).format(record)
        assert "failed\nTraceback" in line
        assert "ValueError: boom" in line


class TestSetupRichLogging:
    def test_file_handler_in_workspace(self, tmp_path):
        logger = setup_rich_logging(log_level="DEBUG", workspace=tmp_path, use_file=True)
        try:
            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 2
            assert (tmp_path / "logs" / "boss-agent.log").exists()
        finally:
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)
