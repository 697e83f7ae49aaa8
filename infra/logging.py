"""
Centralized Logging
-------------------
Structured logging with run_id propagation for full request traceability.

Design:
- Every top-level request gets a unique run_id
- run_id propagates through: Planner -> Executor -> Policy -> Store
- Console output through Rich, file output as JSON lines
- Clear severity discipline: INFO=state, WARNING=recoverable, ERROR=abort

Usage:
    from infra.logging import get_logger, RunContext, log_run_end

    logger = get_logger("core.runtime")

    with RunContext() as run_id:
        logger.info("Planning")
        # ... processing ...
        log_run_end(run_id, success=True, steps_executed=2)
"""

import contextvars
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "followme"

# Context variable for run_id - thread-safe and async-safe
_run_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "run_id", default=None
)


def generate_run_id() -> str:
    """Generate a unique run ID: <epoch-ms>-<random hex>."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


def get_run_id() -> Optional[str]:
    return _run_id_var.get()


def set_run_id(run_id: str) -> contextvars.Token:
    return _run_id_var.set(run_id)


def reset_run_id(token: contextvars.Token) -> None:
    _run_id_var.reset(token)


class RunContext:
    """
    Context manager for run scoping.

    Usage:
        with RunContext() as run_id:
            # All logs within this block carry run_id
            logger.info("Executing...")
    """

    def __init__(self, run_id: Optional[str] = None):
        self._run_id = run_id or generate_run_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = set_run_id(self._run_id)
        return self._run_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            reset_run_id(self._token)


class RunIdFilter(logging.Filter):
    """Logging filter that adds run_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "run_id", None) is None:
            record.run_id = get_run_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    EXTRA_FIELDS = ("tool_name", "execution_time_ms", "success", "steps_executed", "error")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": getattr(record, "run_id", "-"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class RunConsoleFormatter(logging.Formatter):
    """Prefixes console messages with the run_id when one is active."""

    def format(self, record: logging.LogRecord) -> str:
        run_id = getattr(record, "run_id", "-")
        prefix = f"[{run_id}] " if run_id != "-" else ""
        return f"{prefix}{record.name}: {record.getMessage()}"


_logging_initialized = False
_log_file_path: Optional[Path] = None


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = True,
    force: bool = False,
) -> Optional[Path]:
    """
    Configure the followme logging tree.

    Args:
        level: Logging level (default INFO)
        log_dir: Directory for log files (default: ./logs)
        console: Enable Rich console output (stderr)
        file: Enable JSON-lines file output
        force: Reconfigure even if already configured

    Returns:
        Path of the log file, if file logging is enabled
    """
    global _logging_initialized, _log_file_path

    if _logging_initialized and not force:
        return _log_file_path

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(min(level, logging.DEBUG) if file else level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    run_filter = RunIdFilter()

    if console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
        )
        console_handler.setLevel(level)
        console_handler.setFormatter(RunConsoleFormatter())
        console_handler.addFilter(run_filter)
        root_logger.addHandler(console_handler)

    _log_file_path = None
    if file:
        log_path = Path(log_dir) if log_dir else Path("logs")
        log_path.mkdir(parents=True, exist_ok=True)
        _log_file_path = log_path / "followme.log"

        file_handler = logging.FileHandler(str(_log_file_path), mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(run_filter)
        root_logger.addHandler(file_handler)

    _logging_initialized = True
    return _log_file_path


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger in the followme namespace.

    Args:
        name: Logger name (prefixed with 'followme.' if not already)
    """
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def log_run_end(
    run_id: str,
    success: bool,
    steps_executed: int = 0,
    error: Optional[str] = None,
) -> None:
    """
    Log the end of a run with summary information.

    This is the RUN_END boundary event for post-mortems.
    """
    logger = get_logger("core.run")

    extra = {
        "run_id": run_id,
        "success": success,
        "steps_executed": steps_executed,
    }

    if success:
        logger.info(
            f"RUN_END: success={success}, steps_executed={steps_executed}",
            extra=extra,
        )
    else:
        extra["error"] = error or "Unknown error"
        logger.error(
            f"RUN_END: success={success}, error={error or 'Unknown'}",
            extra=extra,
        )
