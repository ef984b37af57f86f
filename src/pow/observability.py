from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


LOGGER_NAME = "pow"

# Environment variables for configuration
ENV_LOG_DIR = "POW_LOG_DIR"
ENV_LOG_LEVEL = "POW_LOG_LEVEL"
ENV_LOG_MAX_BYTES = "POW_LOG_MAX_BYTES"
ENV_LOG_BACKUP_COUNT = "POW_LOG_BACKUP_COUNT"
ENV_LOG_DISABLE_FILE = "POW_LOG_DISABLE_FILE"

# Defaults
DEFAULT_LOG_DIR = Path.home() / ".pow" / "logs"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

_logger_initialized = False
_session_start: Optional[str] = None
_overrides: Dict[str, Any] = {}


def configure(
    *,
    level: Optional[str] = None,
    log_dir: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
    disable_file: Optional[bool] = None,
) -> None:
    """Apply settings from the loaded config before the first log call.

    Values left as None fall back to the POW_LOG_* environment variables.
    Calling this after the logger is initialised rebuilds its handlers.
    """
    global _logger_initialized
    for key, value in (
        ("level", level),
        ("log_dir", log_dir),
        ("max_bytes", max_bytes),
        ("backup_count", backup_count),
        ("disable_file", disable_file),
    ):
        if value is not None and value != "":
            _overrides[key] = value
    _logger_initialized = False


def _get_log_level() -> int:
    """Get log level from overrides or environment, defaulting to INFO."""
    level_name = str(_overrides.get("level") or os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)).upper()
    return getattr(logging, level_name, logging.INFO)


def _file_logging_disabled() -> bool:
    if "disable_file" in _overrides:
        return bool(_overrides["disable_file"])
    return os.getenv(ENV_LOG_DISABLE_FILE, "").lower() in ("1", "true", "yes")


def _get_log_file_path() -> Optional[Path]:
    """Get the log file path, creating directories if needed.

    Returns None if file logging is disabled via POW_LOG_DISABLE_FILE=1.
    """
    global _session_start
    if _file_logging_disabled():
        return None

    log_dir = Path(_overrides.get("log_dir") or os.getenv(ENV_LOG_DIR, DEFAULT_LOG_DIR)).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    if _session_start is None:
        _session_start = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    # Session-based filename: pow_2024-01-15_143022.log
    return log_dir / f"pow_{_session_start}.log"


def _get_logger() -> logging.Logger:
    """Get or initialize the pow diagnostic logger.

    By default, logs to ~/.pow/logs/pow_<session>.log

    Configuration via config file or environment variables:
    - POW_LOG_DIR: Directory for log files (default: ~/.pow/logs/)
    - POW_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - POW_LOG_MAX_BYTES: Max log file size before rotation (default: 10MB)
    - POW_LOG_BACKUP_COUNT: Number of backup files to keep (default: 5)
    - POW_LOG_DISABLE_FILE: Set to 1 to disable file logging

    User-facing output never goes through this logger; see pow.console.
    """
    global _logger_initialized
    logger = logging.getLogger(LOGGER_NAME)

    if not _logger_initialized:
        _logger_initialized = True
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

        log_level = _get_log_level()
        logger.setLevel(log_level)

        formatter = logging.Formatter(
            "[%(levelname)s %(asctime)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S"
        )

        log_file = _get_log_file_path()
        if log_file:
            max_bytes = int(_overrides.get("max_bytes") or os.getenv(ENV_LOG_MAX_BYTES, DEFAULT_MAX_BYTES))
            backup_count = int(_overrides.get("backup_count") or os.getenv(ENV_LOG_BACKUP_COUNT, DEFAULT_BACKUP_COUNT))

            file_handler = RotatingFileHandler(
                str(log_file),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(log_level)
            logger.addHandler(file_handler)

        # stderr mirror only in verbose mode; stdout belongs to the console output
        if log_level <= logging.DEBUG:
            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(formatter)
            stream_handler.setLevel(log_level)
            logger.addHandler(stream_handler)

        if not logger.handlers:
            # Keeps logging.lastResort from printing to stderr
            logger.addHandler(logging.NullHandler())

    return logger


def _with_fields(message: str, fields: Dict[str, Any]) -> str:
    if not fields:
        return message
    return f"{message} " + json.dumps(fields, separators=(",", ":"), sort_keys=True, default=str)


def log_action(
    action: str,
    *,
    outcome: str = "ok",
    duration_ms: Optional[float] = None,
    **fields: Any,
) -> None:
    """Emit a structured log line for an action.

    Fields are serialized to JSON for safety. Keep schema lightweight.

    Args:
        action: Name of the action being logged (e.g. "engine.transition")
        outcome: Result status ("ok", "error", etc.)
        duration_ms: How long the action took in milliseconds
        **fields: Additional fields to include
    """
    payload: Dict[str, Any] = {
        "ts": datetime.now().isoformat(),
        "action": action,
        "outcome": outcome,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    if fields:
        payload.update(fields)

    _get_logger().info(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))


def log_debug(message: str, **fields: Any) -> None:
    """Log a debug message with optional structured fields.

    Only emitted when log level is DEBUG.
    """
    logger = _get_logger()
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(_with_fields(message, fields))


def log_warning(message: str, **fields: Any) -> None:
    """Log a warning message with optional structured fields."""
    _get_logger().warning(_with_fields(message, fields))


def log_error(message: str, **fields: Any) -> None:
    """Log an error message with optional structured fields."""
    _get_logger().error(_with_fields(message, fields))


@contextmanager
def timeit(action: str, **fields: Any):
    """Time a block and emit a structured log on exit.

    On exception, logs outcome="error" and re-raises.

    Yields:
        A dict the block can update with extra fields for the final log line
    """
    start = time.perf_counter()
    result_info: Dict[str, Any] = {}
    try:
        yield result_info
    except BaseException:
        duration_ms = (time.perf_counter() - start) * 1000.0
        log_action(action, outcome="error", duration_ms=duration_ms, **{**fields, **result_info})
        raise
    duration_ms = (time.perf_counter() - start) * 1000.0
    log_action(action, outcome="ok", duration_ms=duration_ms, **{**fields, **result_info})
