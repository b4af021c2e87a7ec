"""Patcher configuration loaded from JSON resources."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "app.json"
_PATCHER_CONFIG_CACHE: PatcherConfig | None = None

_MACOS_DATA_DIR = Path("Library") / "Application Support" / "Claude WebExtension Launcher"
_DEFAULT_DATA_DIRNAME = ".claude_webext_launcher"

_INTEGRITY_SCOPES = ("header", "file")
_DEFAULT_PROBE_TIMEOUT = 30.0


@dataclass(frozen=True)
class ToolCommands:
    """Command lines used to launch the external helpers."""

    packer: tuple[str, ...] = ("asar",)
    reformatter: tuple[str, ...] = ("js-beautify",)
    node: tuple[str, ...] = ("node",)
    icon_tool: tuple[str, ...] = ()


@dataclass(frozen=True)
class PatcherConfig:
    """Structured configuration values for the patcher."""

    data_dir: Path
    windows_releases_url: str | None = None
    macos_manifest_url: str | None = None
    tools: ToolCommands = ToolCommands()
    generic_versions: tuple[str, ...] = ()
    allow_generic_fallback: bool = True
    keep_container_backup: bool = True
    integrity_scope: str = "header"
    integrity_probe_timeout: float = _DEFAULT_PROBE_TIMEOUT
    icons_dir: Path | None = None

    @property
    def node_modules_dir(self) -> Path:
        return self.data_dir / "node_modules"


def default_data_dir(platform: str | None = None) -> Path:
    """Return the per-user directory that holds installs and helper tools."""

    current = platform or sys.platform
    home = Path.home()
    if current == "darwin":
        return home / _MACOS_DATA_DIR
    return home / _DEFAULT_DATA_DIRNAME


def get_patcher_config() -> PatcherConfig:
    """Return the cached patcher configuration."""

    global _PATCHER_CONFIG_CACHE
    if _PATCHER_CONFIG_CACHE is None:
        _PATCHER_CONFIG_CACHE = load_patcher_config()
    return _PATCHER_CONFIG_CACHE


def reset_patcher_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _PATCHER_CONFIG_CACHE
    _PATCHER_CONFIG_CACHE = None


def load_patcher_config(path: str | Path | None = None) -> PatcherConfig:
    """Load configuration from ``path`` or the bundled JSON resource."""

    data = _read_config_data(path)
    tools_section = data.get("tools")
    integrity_section = data.get("integrity")
    if not isinstance(integrity_section, Mapping):
        integrity_section = {}

    scope = integrity_section.get("scope")
    if not isinstance(scope, str) or scope.strip().lower() not in _INTEGRITY_SCOPES:
        scope = "header"

    return PatcherConfig(
        data_dir=_coerce_path(data.get("data_dir")) or default_data_dir(),
        windows_releases_url=_coerce_url(data.get("windows_releases_url")),
        macos_manifest_url=_coerce_url(data.get("macos_manifest_url")),
        tools=_parse_tools_section(tools_section),
        generic_versions=_coerce_string_list(data.get("generic_versions")),
        allow_generic_fallback=_coerce_bool(data.get("allow_generic_fallback"), default=True),
        keep_container_backup=_coerce_bool(data.get("keep_container_backup"), default=True),
        integrity_scope=scope.strip().lower(),
        integrity_probe_timeout=_coerce_positive_float(
            integrity_section.get("probe_timeout_seconds"), default=_DEFAULT_PROBE_TIMEOUT
        ),
        icons_dir=_coerce_path(data.get("icons_dir")),
    )


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _parse_tools_section(section: Any) -> ToolCommands:
    defaults = ToolCommands()
    if not isinstance(section, Mapping):
        return defaults
    return ToolCommands(
        packer=_coerce_command(section.get("packer"), defaults.packer),
        reformatter=_coerce_command(section.get("reformatter"), defaults.reformatter),
        node=_coerce_command(section.get("node"), defaults.node),
        icon_tool=_coerce_command(section.get("icon_tool"), defaults.icon_tool),
    )


def _coerce_command(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value.strip() else default
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        command = tuple(item for item in value if item)
        return command or default
    return default


def _coerce_string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


def _coerce_path(value: Any) -> Path | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return Path(value.strip()).expanduser()


def _coerce_url(value: Any) -> str | None:
    if isinstance(value, str) and value.strip().startswith(("https://", "http://")):
        return value.strip()
    return None


def _coerce_bool(value: Any, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


def _coerce_positive_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not isfinite(candidate) or candidate <= 0:
        return default
    return candidate


__all__ = [
    "PatcherConfig",
    "ToolCommands",
    "default_data_dir",
    "get_patcher_config",
    "load_patcher_config",
    "reset_patcher_config_cache",
]
