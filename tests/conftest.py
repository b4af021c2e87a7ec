from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _isolated_log_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Route patcher log files to a temporary location during tests."""

    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.delenv("WEBEXT_PATCHER_LOG_FILE", raising=False)
    monkeypatch.setenv("WEBEXT_PATCHER_LOG_DIR", str(log_dir))
    yield


@pytest.fixture(autouse=True)
def _reset_config_cache():
    from app.config import reset_patcher_config_cache

    reset_patcher_config_cache()
    yield
    reset_patcher_config_cache()
