import json
import logging

import pytest

from pow import observability as obs

log_action = obs.log_action
log_debug = obs.log_debug
log_warning = obs.log_warning
log_error = obs.log_error
timeit = obs.timeit
LOGGER_NAME = obs.LOGGER_NAME
_get_log_level = obs._get_log_level
_get_log_file_path = obs._get_log_file_path


@pytest.fixture(autouse=True)
def reset_logger():
    """Reset logger state between tests."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    obs._logger_initialized = False
    obs._session_start = None
    obs._overrides.clear()
    yield
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    obs._logger_initialized = False
    obs._session_start = None
    obs._overrides.clear()


def test_log_action_emits_json(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    log_action("engine.transition", outcome="ok", duration_ms=123, to_phase="done")
    data = json.loads(caplog.records[-1].message)
    assert data["action"] == "engine.transition"
    assert data["outcome"] == "ok"
    assert data["duration_ms"] == 123
    assert data["to_phase"] == "done"


def test_timeit_success_logs(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    with timeit("dependencies.install", manager="npm"):
        pass
    data = json.loads(caplog.records[-1].message)
    assert data["action"] == "dependencies.install"
    assert data["outcome"] == "ok"
    assert data["manager"] == "npm"
    assert isinstance(data["duration_ms"], (int, float))


def test_timeit_error_logs_and_reraises(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    with pytest.raises(RuntimeError):
        with timeit("sync.prepare", remote="origin"):
            raise RuntimeError("boom")
    data = json.loads(caplog.records[-1].message)
    assert data["outcome"] == "error"
    assert data["remote"] == "origin"


def test_timeit_block_can_add_fields(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    with timeit("sync.prepare") as info:
        info["manager"] = "yarn"
    assert json.loads(caplog.records[-1].message)["manager"] == "yarn"


def test_log_debug_with_fields(caplog, monkeypatch):
    monkeypatch.setenv("POW_LOG_LEVEL", "DEBUG")
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    log_debug("GIT_OP_END: fetch", elapsed=0.1, branch="main")
    msg = caplog.records[-1].message
    assert msg.startswith("GIT_OP_END: fetch ")
    assert '"branch":"main"' in msg


def test_log_debug_not_emitted_at_info(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    log_debug("should not appear")
    assert not [r for r in caplog.records if r.levelno == logging.DEBUG]


def test_log_warning_and_error(caplog):
    caplog.set_level(logging.WARNING, logger=LOGGER_NAME)
    log_warning("test warning")
    log_error("test error", error_type="RuntimeError")
    assert caplog.records[-2].levelno == logging.WARNING
    assert caplog.records[-1].levelno == logging.ERROR
    assert '"error_type":"RuntimeError"' in caplog.records[-1].message


def test_log_level_from_env(monkeypatch):
    monkeypatch.setenv("POW_LOG_LEVEL", "DEBUG")
    assert _get_log_level() == logging.DEBUG
    monkeypatch.setenv("POW_LOG_LEVEL", "WARNING")
    assert _get_log_level() == logging.WARNING


def test_unknown_log_level_falls_back_to_info(monkeypatch):
    monkeypatch.setenv("POW_LOG_LEVEL", "LOUD")
    assert _get_log_level() == logging.INFO


def test_configure_overrides_env(monkeypatch):
    monkeypatch.setenv("POW_LOG_LEVEL", "WARNING")
    obs.configure(level="DEBUG")
    assert _get_log_level() == logging.DEBUG


def test_disable_file_logging():
    # POW_LOG_DISABLE_FILE=1 is set for every test
    assert _get_log_file_path() is None


def test_custom_log_dir(monkeypatch, tmp_path):
    monkeypatch.delenv("POW_LOG_DISABLE_FILE", raising=False)
    custom_dir = tmp_path / "custom_logs"
    monkeypatch.setenv("POW_LOG_DIR", str(custom_dir))
    path = _get_log_file_path()
    assert path is not None
    assert path.parent == custom_dir
    assert path.name.startswith("pow_") and path.suffix == ".log"
    assert custom_dir.exists()


def test_file_handler_writes_session_log(monkeypatch, tmp_path):
    monkeypatch.delenv("POW_LOG_DISABLE_FILE", raising=False)
    obs.configure(log_dir=str(tmp_path / "logs"), disable_file=False)
    log_warning("written to file")
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
    files = list((tmp_path / "logs").glob("pow_*.log"))
    assert len(files) == 1
    assert "written to file" in files[0].read_text()


def test_stderr_mirror_only_in_debug(monkeypatch):
    logger = obs._get_logger()
    assert not any(type(h) is logging.StreamHandler for h in logger.handlers)

    obs.configure(level="DEBUG")
    logger = obs._get_logger()
    assert any(type(h) is logging.StreamHandler for h in logger.handlers)
