"""Rich logging with per-run context and readable formatting."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class BossLogFormatter(logging.Formatter):
    """Formatter that prefixes messages with run context."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        run_context = ""
        if getattr(record, "work_item_key", None):
            run_context = f"[{record.work_item_key}] "
        elif getattr(record, "run_id", None):
            run_context = f"[{record.run_id}] "

        phase_context = ""
        if getattr(record, "phase", None):
            phase_context = f"[{record.phase}] "

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        line = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"{phase_context}{run_context}{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that stamps run context on every record.

    One instance per run; concurrent runs must not share an adapter since the
    context is mutable.
    """

    def __init__(self, logger: logging.Logger, run_name: str = "boss-agent"):
        super().__init__(logger, {})
        self.run_name = run_name
        self.current_run_id: Optional[str] = None
        self.current_work_item_key: Optional[str] = None
        self.current_phase: Optional[str] = None

    def set_run_context(
        self,
        run_id: Optional[str] = None,
        work_item_key: Optional[str] = None,
        phase: Optional[str] = None,
    ):
        if run_id:
            self.current_run_id = run_id
        if work_item_key:
            self.current_work_item_key = work_item_key
        if phase is not None:
            self.current_phase = phase

    def clear_context(self):
        self.current_run_id = None
        self.current_work_item_key = None
        self.current_phase = None

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})

        if self.current_run_id:
            extra["run_id"] = self.current_run_id
        if self.current_work_item_key:
            extra["work_item_key"] = self.current_work_item_key
        if self.current_phase:
            extra["phase"] = self.current_phase

        kwargs["extra"] = extra
        return msg, kwargs

    def run_started(self, run_id: str, title: str, work_item_key: Optional[str] = None):
        self.set_run_context(run_id=run_id, work_item_key=work_item_key)
        self.info(f"📋 Starting run {run_id}: {title}")

    def phase_change(self, phase: str):
        self.set_run_context(phase=phase)
        phase_emoji = {
            "analyzing": "🔍",
            "deciding": "⚖️",
            "decomposing": "📝",
            "executing": "🤖",
            "monitoring": "⏳",
            "aggregating": "🧮",
        }
        emoji = phase_emoji.get(phase.lower(), "▶️")
        self.info(f"{emoji} Phase: {phase}")

    def run_completed(self, duration_seconds: float, summary: Optional[str] = None):
        msg = f"✅ Run completed in {duration_seconds:.1f}s"
        if summary:
            msg += f" ({summary})"
        self.info(msg)

    def run_failed(self, error: str):
        self.error(f"❌ Run failed: {error}")

    def progress(self, message: str):
        self.info(f"⏳ {message}")


def setup_rich_logging(
    log_level: str = "INFO",
    workspace: Optional[Path] = None,
    use_file: bool = False,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the package logger for CLI use.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        workspace: Workspace path; logs go to <workspace>/logs when use_file is set
        use_file: Also write a plain-text log file
        use_colors: Colorize console output

    Returns:
        The configured ``boss_agent`` logger
    """
    logger = logging.getLogger("boss_agent")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(BossLogFormatter(use_colors=use_colors and sys.stderr.isatty()))
    logger.addHandler(console_handler)

    if use_file and workspace is not None:
        log_dir = workspace / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_dir / "boss-agent.log")
        file_handler.setFormatter(BossLogFormatter(use_colors=False))
        logger.addHandler(file_handler)

    return logger
