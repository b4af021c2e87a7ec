"""Version of the patcher itself (not of the application it patches)."""

from __future__ import annotations

import os
import subprocess
from functools import lru_cache
from importlib import resources
from importlib.metadata import PackageNotFoundError, version as distribution_version

_FALLBACK_VERSION = "0.0.0-dev"
_VERSION_ENV = "WEBEXT_PATCHER_VERSION"
_DISTRIBUTION = "webext-patcher"


def _version_from_env() -> str | None:
    env_version = os.environ.get(_VERSION_ENV)
    if not env_version:
        return None
    return _normalize(env_version) or None


def _read_version_file() -> str | None:
    try:
        text = resources.files(__package__).joinpath("VERSION").read_text(encoding="utf-8")
    except (FileNotFoundError, ModuleNotFoundError, OSError):
        return None
    return _normalize(text) or None


def _version_from_metadata() -> str | None:
    try:
        return distribution_version(_DISTRIBUTION)
    except PackageNotFoundError:
        return None


def _version_from_git() -> str | None:
    try:
        output = subprocess.check_output(
            ["git", "describe", "--tags", "--dirty"],
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return _normalize(output) or None


def _normalize(raw_version: str) -> str:
    version = raw_version.strip()
    if version.startswith("v"):
        version = version[1:]
    return version


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the patcher version.

    The order of precedence is:
    1. The ``WEBEXT_PATCHER_VERSION`` environment variable.
    2. The ``VERSION`` file packaged next to this module.
    3. Installed distribution metadata.
    4. ``git describe`` output when running from a source checkout.
    5. A fallback development version string.
    """

    resolvers = (_version_from_env, _read_version_file, _version_from_metadata, _version_from_git)
    for resolver in resolvers:
        version = resolver()
        if version:
            return version
    return _FALLBACK_VERSION


__all__ = ["get_app_version"]
