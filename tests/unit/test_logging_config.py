from __future__ import annotations

import logging
from pathlib import Path

import pytest

from shared import logging_config


def _flush_managed_handlers() -> None:
    for handler in logging.getLogger().handlers:
        if getattr(handler, logging_config._HANDLER_TAG, False):  # type: ignore[attr-defined]
            handler.flush()


@pytest.fixture(autouse=True)
def reset_logging():
    logging_config._reset_for_tests()
    try:
        yield
    finally:
        logging_config._reset_for_tests()


def test_logging_creates_file_in_configured_directory(tmp_path, monkeypatch):
    monkeypatch.setenv("WEBEXT_PATCHER_LOG_DIR", str(tmp_path))

    log_path = logging_config.ensure_app_logging()
    logging.getLogger("services.patcher.service").debug("debug message")
    logging.getLogger("services.patcher.service").error("error message")
    _flush_managed_handlers()

    assert log_path == tmp_path / "patcher.log"
    contents = log_path.read_text(encoding="utf-8")
    assert "debug message" in contents
    assert "error message" in contents


def test_log_file_env_overrides_directory(tmp_path, monkeypatch):
    monkeypatch.setenv("WEBEXT_PATCHER_LOG_DIR", str(tmp_path / "ignored"))
    monkeypatch.setenv("WEBEXT_PATCHER_LOG_FILE", str(tmp_path / "custom" / "run.log"))

    assert logging_config.ensure_app_logging() == tmp_path / "custom" / "run.log"


def test_caller_directory_is_used_without_env(tmp_path, monkeypatch):
    monkeypatch.delenv("WEBEXT_PATCHER_LOG_DIR", raising=False)
    monkeypatch.delenv("WEBEXT_PATCHER_LOG_FILE", raising=False)

    assert logging_config.ensure_app_logging(tmp_path / "logs") == tmp_path / "logs" / "patcher.log"


def test_logging_configuration_is_idempotent(tmp_path, monkeypatch):
    monkeypatch.setenv("WEBEXT_PATCHER_LOG_DIR", str(tmp_path))

    first_path = logging_config.ensure_app_logging()
    second_path = logging_config.ensure_app_logging(tmp_path / "elsewhere")

    assert first_path == second_path
    managed_handlers = [
        handler
        for handler in logging.getLogger().handlers
        if getattr(handler, logging_config._HANDLER_TAG, False)  # type: ignore[attr-defined]
    ]

    # stderr is not a tty under pytest, so only the file handler is installed.
    assert len(managed_handlers) == 1
    assert isinstance(managed_handlers[0], logging.FileHandler)
    assert Path(managed_handlers[0].baseFilename) == first_path


def test_can_adjust_file_log_verbosity(tmp_path, monkeypatch):
    monkeypatch.setenv("WEBEXT_PATCHER_LOG_DIR", str(tmp_path))
    log_path = logging_config.ensure_app_logging()

    logging_config.set_file_log_verbosity("error")
    logging.getLogger("services.patcher.archive").info("info after change")
    logging.getLogger("services.patcher.archive").error("error after change")
    _flush_managed_handlers()

    contents = log_path.read_text(encoding="utf-8")
    assert logging_config.get_file_log_verbosity() is logging_config.LogVerbosity.ERROR
    assert "info after change" not in contents
    assert "error after change" in contents

    with pytest.raises(ValueError):
        logging_config.set_file_log_verbosity("chatty")


def test_home_directory_is_redacted(tmp_path, monkeypatch):
    if len(Path.home().parts) < 2:
        pytest.skip("home directory is the filesystem root")
    monkeypatch.setenv("WEBEXT_PATCHER_LOG_DIR", str(tmp_path))
    log_path = logging_config.ensure_app_logging()
    install_root = Path.home() / ".claude_webext_launcher" / "app-latest"

    logging.getLogger("services.patcher.archive").info("Extracting into %s", install_root)
    _flush_managed_handlers()

    contents = log_path.read_text(encoding="utf-8")
    assert f"{logging_config.USER_HOME_PLACEHOLDER}" in contents
    assert str(install_root) not in contents
