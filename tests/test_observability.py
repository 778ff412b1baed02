import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from gitnormalize import observability as obs
from gitnormalize.observability import (
    ENV_LOG_BACKUP_COUNT,
    ENV_LOG_DIR,
    ENV_LOG_DISABLE_FILE,
    ENV_LOG_LEVEL,
    ENV_LOG_MAX_BYTES,
    LOGGER_NAME,
    _get_log_file_path,
    _get_log_level,
    configure_logging,
    log_action,
    log_debug,
    log_error,
    log_graph,
    log_info,
    log_warning,
    timeit,
)


@pytest.fixture(autouse=True)
def reset_logger():
    """Reset logger state between tests."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    obs._logger_initialized = False
    obs._session_start = None
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    obs._logger_initialized = False
    obs._session_start = None


def test_log_action_emits_json(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    log_action("fetch", outcome="ok", duration_ms=123, remote="origin", branches=["a", "b"])
    data = json.loads(caplog.records[-1].message)
    assert data["action"] == "fetch"
    assert data["outcome"] == "ok"
    assert data["duration_ms"] == 123
    assert data["remote"] == "origin"
    assert data["branches"] == ["a", "b"]
    assert data["ts"].endswith("Z")


def test_log_action_serializes_unknown_types(caplog, tmp_path):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    log_action("normalize", path=tmp_path)
    data = json.loads(caplog.records[-1].message)
    assert data["path"] == str(tmp_path)


def test_timeit_success_logs(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    with timeit("test.block", path="/repo") as info:
        info["created"] = 2
    data = json.loads(caplog.records[-1].message)
    assert data["action"] == "test.block"
    assert data["outcome"] == "ok"
    assert data["path"] == "/repo"
    assert data["created"] == 2
    assert isinstance(data["duration_ms"], (int, float))


def test_timeit_result_overrides_field(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    with timeit("test.block", status="pending") as info:
        info["status"] = "done"
    data = json.loads(caplog.records[-1].message)
    assert data["status"] == "done"


def test_timeit_error_logs(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    with pytest.raises(RuntimeError):
        with timeit("test.err", path="/repo"):
            raise RuntimeError("boom")
    data = json.loads(caplog.records[-1].message)
    assert data["action"] == "test.err"
    assert data["outcome"] == "error"
    assert data["error"] == "RuntimeError"
    assert data["path"] == "/repo"


def test_log_debug_only_at_debug_level(caplog, monkeypatch):
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    log_debug("hidden", sha="abc")
    assert not [r for r in caplog.records if r.levelno == logging.DEBUG]

    monkeypatch.setenv(ENV_LOG_LEVEL, "DEBUG")
    obs._logger_initialized = False
    log_debug("shown", sha="abc")
    record = caplog.records[-1]
    assert record.levelno == logging.DEBUG
    assert record.message == 'shown {"sha":"abc"}'


def test_level_helpers(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    log_info("plain message")
    log_warning("careful", branch="develop")
    log_error("broken")
    levels = [(r.levelno, r.message) for r in caplog.records]
    assert (logging.INFO, "plain message") in levels
    assert (logging.WARNING, 'careful {"branch":"develop"}') in levels
    assert (logging.ERROR, "broken") in levels


def test_get_log_level(monkeypatch):
    monkeypatch.setenv(ENV_LOG_LEVEL, "warning")
    assert _get_log_level() == logging.WARNING
    monkeypatch.setenv(ENV_LOG_LEVEL, "nonsense")
    assert _get_log_level() == logging.INFO


def test_file_logging_disabled():
    # conftest sets GITNORMALIZE_LOG_DISABLE_FILE=1
    assert _get_log_file_path() is None


def test_file_logging_writes_session_file(tmp_path, monkeypatch):
    monkeypatch.setenv(ENV_LOG_DISABLE_FILE, "0")
    monkeypatch.setenv(ENV_LOG_DIR, str(tmp_path / "logs"))

    log_path = _get_log_file_path()
    assert log_path is not None
    assert log_path.parent == tmp_path / "logs"
    assert log_path.name.startswith("gitnormalize_")

    log_info("to the file")
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
    assert "to the file" in log_path.read_text(encoding="utf-8")


def test_configure_logging_exports_settings(tmp_path, monkeypatch):
    for name in (ENV_LOG_LEVEL, ENV_LOG_DIR, ENV_LOG_MAX_BYTES, ENV_LOG_BACKUP_COUNT, ENV_LOG_DISABLE_FILE):
        monkeypatch.setenv(name, "")

    logger = configure_logging(
        "debug",
        log_dir=str(tmp_path / "logs"),
        max_bytes=1024,
        backup_count=2,
        disable_file=False,
    )

    assert logger.level == logging.DEBUG
    file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 1024
    assert file_handlers[0].backupCount == 2


def test_configure_logging_verbose_lowers_stream_level(monkeypatch):
    monkeypatch.setenv(ENV_LOG_LEVEL, "INFO")
    quiet = configure_logging("INFO")
    stream = [h for h in quiet.handlers if not isinstance(h, RotatingFileHandler)][0]
    assert stream.level == logging.WARNING

    loud = configure_logging("INFO", verbose=True)
    stream = [h for h in loud.handlers if not isinstance(h, RotatingFileHandler)][0]
    assert stream.level == logging.INFO


def test_log_graph_at_debug(caplog, monkeypatch, upstream):
    upstream.make_a_commit("first")
    monkeypatch.setenv(ENV_LOG_LEVEL, "DEBUG")
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)

    log_graph(upstream.repo)

    assert "first" in caplog.records[-1].message
    assert caplog.records[-1].message.startswith("Commit graph:")
