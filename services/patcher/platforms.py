"""Platform-specific layout of the managed installation root."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from services.patcher import constants


_LOGGER = logging.getLogger(__name__)

PLATFORM_WINDOWS = "windows"
PLATFORM_MACOS = "macos"

_MAC_BUNDLE = "Claude.app"
_MAC_HELPERS = (
    "Claude Helper",
    "Claude Helper (GPU)",
    "Claude Helper (Plugin)",
    "Claude Helper (Renderer)",
)


@dataclass(frozen=True)
class InstallLayout:
    """Paths owned by one versioned copy of the target application."""

    platform: str
    root: Path
    executable: Path
    resources_dir: Path
    bundle: Path | None = None
    archive_prefix: str = ""
    package_template: str = constants.WINDOWS_PACKAGE_TEMPLATE
    preserve_symlinks: bool = False
    helper_executables: tuple[Path, ...] = ()
    self_update_helper: Path | None = None
    integrity_manifest: Path | None = None

    @property
    def container(self) -> Path:
        return self.resources_dir / constants.CONTAINER_NAME

    @property
    def container_backup(self) -> Path:
        return self.container.with_name(
            constants.CONTAINER_NAME + constants.CONTAINER_BACKUP_SUFFIX
        )

    @property
    def version_marker(self) -> Path:
        return self.root / constants.VERSION_MARKER_NAME

    @property
    def patched_marker(self) -> Path:
        return self.root / constants.PATCHED_MARKER_NAME

    @property
    def is_macos(self) -> bool:
        return self.platform == PLATFORM_MACOS

    def package_name(self, version: str) -> str:
        return self.package_template.format(version=version)


def detect_platform(platform: str | None = None) -> str:
    """Map ``sys.platform`` onto one of the supported layouts."""

    current = platform or sys.platform
    if current == "darwin" or current == PLATFORM_MACOS:
        return PLATFORM_MACOS
    if not current.startswith("win") and current != PLATFORM_WINDOWS:
        _LOGGER.debug("Using the Windows layout on unrecognised platform %s", current)
    return PLATFORM_WINDOWS


def windows_layout(root: Path) -> InstallLayout:
    resources = root / "resources"
    return InstallLayout(
        platform=PLATFORM_WINDOWS,
        root=root,
        executable=root / "claude.exe",
        resources_dir=resources,
        archive_prefix=constants.WINDOWS_ARCHIVE_PREFIX,
        package_template=constants.WINDOWS_PACKAGE_TEMPLATE,
    )


def macos_layout(root: Path) -> InstallLayout:
    bundle = root / _MAC_BUNDLE
    contents = bundle / "Contents"
    frameworks = contents / "Frameworks"
    helpers = tuple(
        frameworks / f"{name}.app" / "Contents" / "MacOS" / name for name in _MAC_HELPERS
    )
    crashpad = (
        frameworks / "Electron Framework.framework" / "Helpers" / "chrome_crashpad_handler"
    )
    return InstallLayout(
        platform=PLATFORM_MACOS,
        root=root,
        executable=contents / "MacOS" / "Claude",
        resources_dir=contents / "Resources",
        bundle=bundle,
        package_template=constants.MACOS_PACKAGE_TEMPLATE,
        preserve_symlinks=True,
        helper_executables=(*helpers, crashpad),
        self_update_helper=frameworks / "Squirrel.framework" / "Resources" / "ShipIt",
        integrity_manifest=contents / "Info.plist",
    )


def build_layout(root: Path, platform: str | None = None) -> InstallLayout:
    """Return the :class:`InstallLayout` for ``root`` on ``platform``."""

    if detect_platform(platform) == PLATFORM_MACOS:
        return macos_layout(root)
    return windows_layout(root)


__all__ = [
    "InstallLayout",
    "PLATFORM_MACOS",
    "PLATFORM_WINDOWS",
    "build_layout",
    "detect_platform",
    "macos_layout",
    "windows_layout",
]
