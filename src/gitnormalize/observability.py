from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from git import Repo


LOGGER_NAME = "gitnormalize"

# Environment variables for configuration
ENV_LOG_DIR = "GITNORMALIZE_LOG_DIR"
ENV_LOG_LEVEL = "GITNORMALIZE_LOG_LEVEL"
ENV_LOG_MAX_BYTES = "GITNORMALIZE_LOG_MAX_BYTES"
ENV_LOG_BACKUP_COUNT = "GITNORMALIZE_LOG_BACKUP_COUNT"
ENV_LOG_DISABLE_FILE = "GITNORMALIZE_LOG_DISABLE_FILE"

# Defaults
DEFAULT_LOG_DIR = Path.home() / ".gitnormalize" / "logs"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

# Commits shown by log_graph
GRAPH_COMMIT_LIMIT = 50

_logger_initialized = False
_session_start: Optional[str] = None

_FORMATTER = logging.Formatter("[%(levelname)s %(asctime)s] %(message)s", datefmt="%Y-%m-%dT%H:%M:%S")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _get_log_level() -> int:
    """Level named by GITNORMALIZE_LOG_LEVEL; unknown names mean INFO."""
    level_name = os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.INFO)


def _file_logging_disabled() -> bool:
    return os.getenv(ENV_LOG_DISABLE_FILE, "").lower() in ("1", "true", "yes")


def _get_log_file_path() -> Optional[Path]:
    """Session log file (gitnormalize_<start>.log), or None when file logging is off."""
    global _session_start
    if _file_logging_disabled():
        return None

    if _session_start is None:
        _session_start = _utcnow().strftime("%Y-%m-%d_%H%M%S")

    log_dir = Path(os.getenv(ENV_LOG_DIR) or DEFAULT_LOG_DIR).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"gitnormalize_{_session_start}.log"


def _build_handlers(level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    log_file = _get_log_file_path()
    if log_file is not None:
        rotating = RotatingFileHandler(
            str(log_file),
            maxBytes=int(os.getenv(ENV_LOG_MAX_BYTES) or DEFAULT_MAX_BYTES),
            backupCount=int(os.getenv(ENV_LOG_BACKUP_COUNT) or DEFAULT_BACKUP_COUNT),
        )
        rotating.setLevel(level)
        handlers.append(rotating)

    # CI output only shows warnings and above unless --verbose
    stderr = logging.StreamHandler()
    stderr.setLevel(max(level, logging.WARNING))
    handlers.append(stderr)

    for handler in handlers:
        handler.setFormatter(_FORMATTER)
    return handlers


def _get_logger() -> logging.Logger:
    """The gitnormalize logger, built from GITNORMALIZE_LOG_* on first use."""
    global _logger_initialized
    logger = logging.getLogger(LOGGER_NAME)
    if _logger_initialized:
        return logger

    _logger_initialized = True
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    level = _get_log_level()
    logger.setLevel(level)
    for handler in _build_handlers(level):
        logger.addHandler(handler)
    return logger


def configure_logging(
    level: Optional[str] = None,
    *,
    log_dir: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
    disable_file: Optional[bool] = None,
    verbose: bool = False,
) -> logging.Logger:
    """Apply logging settings and rebuild the handlers.

    Settings are exported to the GITNORMALIZE_LOG_* environment variables so
    that they follow the same path as settings made by the user directly.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files (empty keeps the default)
        max_bytes: Max log file size before rotation
        backup_count: Number of rotated files to keep
        disable_file: Disable file logging entirely
        verbose: Also show INFO lines on stderr
    """
    global _logger_initialized
    if level:
        os.environ[ENV_LOG_LEVEL] = level.upper()
    if log_dir:
        os.environ[ENV_LOG_DIR] = log_dir
    if max_bytes is not None:
        os.environ[ENV_LOG_MAX_BYTES] = str(max_bytes)
    if backup_count is not None:
        os.environ[ENV_LOG_BACKUP_COUNT] = str(backup_count)
    if disable_file is not None:
        os.environ[ENV_LOG_DISABLE_FILE] = "1" if disable_file else "0"

    _logger_initialized = False
    logger = _get_logger()
    if verbose:
        for handler in logger.handlers:
            if not isinstance(handler, RotatingFileHandler):
                handler.setLevel(logger.level)
    return logger


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
        action: Name of the action being logged
        outcome: Result status ("ok", "error", etc.)
        duration_ms: How long the action took in milliseconds
        **fields: Additional fields to include
    """
    payload: Dict[str, Any] = {
        "ts": _utcnow().strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "action": action,
        "outcome": outcome,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    if fields:
        payload.update(fields)

    _get_logger().info(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))


def _with_fields(message: str, fields: Dict[str, Any]) -> str:
    if not fields:
        return message
    return message + " " + json.dumps(fields, separators=(",", ":"), sort_keys=True, default=str)


def log_debug(message: str, **fields: Any) -> None:
    """Log a debug message with optional structured fields.

    Only emitted when log level is DEBUG.
    """
    logger = _get_logger()
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(_with_fields(message, fields))


def log_info(message: str, **fields: Any) -> None:
    """Log an info message with optional structured fields."""
    _get_logger().info(_with_fields(message, fields))


def log_warning(message: str, **fields: Any) -> None:
    """Log a warning message with optional structured fields."""
    _get_logger().warning(_with_fields(message, fields))


def log_error(message: str, **fields: Any) -> None:
    """Log an error message with optional structured fields."""
    _get_logger().error(_with_fields(message, fields))


def log_graph(repo: "Repo", *, limit: int = GRAPH_COMMIT_LIMIT) -> None:
    """Dump the commit graph of every ref at DEBUG level."""
    logger = _get_logger()
    if not logger.isEnabledFor(logging.DEBUG):
        return
    try:
        graph = repo.git.log("--graph", "--oneline", "--decorate", "--all", "-n", str(limit))
    except Exception as e:
        logger.debug(f"Could not render commit graph: {e}")
        return
    logger.debug("Commit graph:\n" + graph)


@contextmanager
def timeit(action: str, **fields: Any):
    """Time a block and emit a structured log on exit.

    On exception, logs outcome="error" with the exception type and re-raises.

    Yields:
        A dict whose entries are added to the emitted log line
    """
    start = time.perf_counter()
    result_info: Dict[str, Any] = {}
    try:
        yield result_info
        duration_ms = (time.perf_counter() - start) * 1000.0
        log_action(action, outcome="ok", duration_ms=duration_ms, **{**fields, **result_info})
    except Exception as exc:
        duration_ms = (time.perf_counter() - start) * 1000.0
        log_action(
            action,
            outcome="error",
            duration_ms=duration_ms,
            error=type(exc).__name__,
            **fields,
        )
        raise
