"""Central logging configuration for the patcher.

A patch run touches the user's home directory constantly (install root, helper
tools, bundle paths), so every record written by the handlers installed here
passes through a formatter that replaces the home directory and the user name
with placeholders.  The resulting log file can be attached to a bug report as
is.  Repeated invocations never register duplicate handlers.

Two environment variables allow customising where the log file is written:

``WEBEXT_PATCHER_LOG_FILE``
    Absolute path to the log file that should be created.

``WEBEXT_PATCHER_LOG_DIR``
    Directory where the default log file name will be created.  Ignored when
    ``WEBEXT_PATCHER_LOG_FILE`` is present.

Without either, the log lands in ``<log_dir>/patcher.log`` when the caller
passes a directory and in ``~/.claude_webext_launcher/logs`` otherwise.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Iterable

_LOG_FILE_ENV = "WEBEXT_PATCHER_LOG_FILE"
_LOG_DIR_ENV = "WEBEXT_PATCHER_LOG_DIR"
_DEFAULT_DIRNAME = ".claude_webext_launcher"
_DEFAULT_LOGNAME = "patcher.log"
_HANDLER_TAG = "_webext_patcher_logging_handler"
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_CONFIGURED = False
_LOG_PATH: Path | None = None
_FILE_HANDLER: logging.FileHandler | None = None
_CONSOLE_HANDLER: logging.StreamHandler | None = None

USER_PLACEHOLDER = "<user>"
USER_HOME_PLACEHOLDER = "<user_home>"


class LogVerbosity(str, Enum):
    """Verbosity levels supported by the patcher log file."""

    DISABLED = "disabled"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"


_VERBOSITY_LEVELS: dict[LogVerbosity, int] = {
    LogVerbosity.DISABLED: logging.CRITICAL + 1,
    LogVerbosity.ERROR: logging.ERROR,
    LogVerbosity.WARNING: logging.WARNING,
    LogVerbosity.INFO: logging.INFO,
    LogVerbosity.VERBOSE: logging.DEBUG,
}

_DEFAULT_VERBOSITY = LogVerbosity.VERBOSE
_CURRENT_VERBOSITY = _DEFAULT_VERBOSITY


def _home_variants() -> set[str]:
    raw = {str(Path.home())}
    for env_var in ("HOME", "USERPROFILE"):
        value = os.environ.get(env_var)
        if value:
            raw.add(os.path.expanduser(value))
    homedrive = os.environ.get("HOMEDRIVE", "")
    homepath = os.environ.get("HOMEPATH")
    if homepath:
        raw.add(os.path.join(homedrive, homepath) if homedrive else homepath)

    variants: set[str] = set()
    for candidate in raw:
        normalised = os.path.normpath(candidate) if candidate else ""
        if normalised in {"", os.sep, "."}:
            continue
        variants.update(
            {normalised, normalised.replace("\\", "/"), normalised.replace("/", "\\")}
        )
    return variants


def _user_names() -> set[str]:
    names = {Path.home().name}
    names.update(os.environ.get(var, "") for var in ("USERNAME", "USER", "LOGNAME"))
    return {name.strip() for name in names if name and name.strip()}


def _build_redaction_patterns() -> tuple[tuple[re.Pattern[str], str], ...]:
    path_flags = re.IGNORECASE if os.name == "nt" else 0
    patterns: list[tuple[re.Pattern[str], str]] = [
        (re.compile(re.escape(path), path_flags), USER_HOME_PLACEHOLDER)
        # Longest first so a nested home path is not half-replaced.
        for path in sorted(_home_variants(), key=len, reverse=True)
    ]
    for name in sorted(_user_names(), key=len, reverse=True):
        escaped = re.escape(name)
        if any(character.isalnum() for character in name):
            escaped = rf"(?<!\w){escaped}(?!\w)"
        patterns.append((re.compile(escaped, re.IGNORECASE), USER_PLACEHOLDER))
    return tuple(patterns)


_REDACTION_PATTERNS = _build_redaction_patterns()


def redact(message: str) -> str:
    """Replace the home directory and user names in ``message``."""

    if not message:
        return message
    for pattern, replacement in _REDACTION_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class _RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return redact(super().format(record))


def ensure_app_logging(
    log_dir: Path | None = None,
    *,
    console_level: int | None = logging.INFO,
) -> Path:
    """Configure the root logger for a patch run.

    The first invocation installs a file handler at the current
    :class:`LogVerbosity` and, when stderr is interactive and ``console_level``
    is not ``None``, a console handler at ``console_level``.  Subsequent calls
    are no-ops and return the already configured log file path.

    Returns
    -------
    Path
        Location of the log file that records patch diagnostics.
    """

    global _CONFIGURED, _LOG_PATH, _FILE_HANDLER, _CONSOLE_HANDLER

    if _CONFIGURED and _LOG_PATH is not None:
        return _LOG_PATH

    log_path = _resolve_log_path(log_dir)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    formatter = _RedactingFormatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(_VERBOSITY_LEVELS[_CURRENT_VERBOSITY])
    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_TAG, True)
    root.addHandler(file_handler)
    _FILE_HANDLER = file_handler

    if console_level is not None and _should_log_to_stderr(root.handlers):
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(formatter)
        setattr(console, _HANDLER_TAG, True)
        root.addHandler(console)
        _CONSOLE_HANDLER = console

    _CONFIGURED = True
    _LOG_PATH = log_path

    logging.getLogger(__name__).info(
        "Writing patcher logs to %s (verbosity=%s)",
        log_path,
        _CURRENT_VERBOSITY.value,
    )
    return log_path


def set_file_log_verbosity(verbosity: LogVerbosity | str) -> None:
    """Adjust the minimum severity recorded in the patcher log file."""

    global _CURRENT_VERBOSITY

    if isinstance(verbosity, str):
        try:
            verbosity = LogVerbosity(verbosity.lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported log verbosity: {verbosity}") from exc

    _CURRENT_VERBOSITY = verbosity
    if _FILE_HANDLER is not None:
        _FILE_HANDLER.setLevel(_VERBOSITY_LEVELS[verbosity])
    logging.getLogger(__name__).debug("File log verbosity set to %s", verbosity.value)


def get_file_log_verbosity() -> LogVerbosity:
    return _CURRENT_VERBOSITY


def set_console_level(level: int) -> None:
    """Change the console threshold, e.g. for ``--verbose``."""

    if _CONSOLE_HANDLER is not None:
        _CONSOLE_HANDLER.setLevel(level)


def _resolve_log_path(log_dir: Path | None = None) -> Path:
    env_file = os.environ.get(_LOG_FILE_ENV)
    if env_file:
        return Path(env_file).expanduser()

    env_dir = os.environ.get(_LOG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser() / _DEFAULT_LOGNAME

    if log_dir is not None:
        return log_dir / _DEFAULT_LOGNAME
    return Path.home() / _DEFAULT_DIRNAME / "logs" / _DEFAULT_LOGNAME


def _should_log_to_stderr(handlers: Iterable[logging.Handler]) -> bool:
    stderr = getattr(sys, "stderr", None)
    is_tty = getattr(stderr, "isatty", None)
    if not callable(is_tty):
        return False
    try:
        if not is_tty():
            return False
    except (OSError, ValueError):
        return False
    return not any(
        isinstance(handler, logging.StreamHandler) and handler.stream is stderr
        for handler in handlers
    )


def _reset_for_tests() -> None:
    """Remove handlers installed by :func:`ensure_app_logging`."""

    global _CONFIGURED, _LOG_PATH, _FILE_HANDLER, _CONSOLE_HANDLER, _CURRENT_VERBOSITY

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    _CONFIGURED = False
    _LOG_PATH = None
    _FILE_HANDLER = None
    _CONSOLE_HANDLER = None
    _CURRENT_VERBOSITY = _DEFAULT_VERBOSITY


__all__ = [
    "LogVerbosity",
    "USER_HOME_PLACEHOLDER",
    "USER_PLACEHOLDER",
    "ensure_app_logging",
    "get_file_log_verbosity",
    "redact",
    "set_console_level",
    "set_file_log_verbosity",
]
