"""Platform-specific steps that keep the modified bundle launchable."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from services.patcher.constants import QUARANTINE_ATTRIBUTE
from services.patcher.models import ExternalToolFailure
from services.patcher.platforms import InstallLayout
from services.patcher.tools import CommandRunner, ExternalTool


_LOGGER = logging.getLogger(__name__)

_WINDOWS_ICON = "app.ico"
_MACOS_ICON = "app.icns"
_MACOS_BUNDLE_ICON = "electron.icns"


class Finalizer:
    """Replace icons, re-sign and clear quarantine; never fatal."""

    def __init__(
        self,
        layout: InstallLayout,
        runner: CommandRunner,
        *,
        icons_dir: Path | None = None,
        icon_tool: tuple[str, ...] = (),
        codesign: tuple[str, ...] = ("codesign",),
        xattr: tuple[str, ...] = ("xattr",),
    ) -> None:
        self._layout = layout
        self._runner = runner
        self._icons_dir = icons_dir
        self._icon_tool = icon_tool
        self._codesign = codesign
        self._xattr = xattr

    def finalize(self) -> None:
        try:
            self.replace_icons()
        except OSError as exc:
            _LOGGER.warning("Could not replace icons: %s", exc)
        if self._layout.is_macos:
            self.sign_and_clear_quarantine()

    def replace_icons(self) -> None:
        icons_dir = self._icons_dir
        if icons_dir is None or not icons_dir.is_dir():
            _LOGGER.debug("No icon directory configured; keeping vendor icons")
            return
        _LOGGER.info("Replacing icons from %s", icons_dir)
        if self._layout.is_macos:
            source = icons_dir / _MACOS_ICON
            if source.is_file():
                shutil.copyfile(source, self._layout.resources_dir / _MACOS_BUNDLE_ICON)
                _LOGGER.debug("Replaced %s", _MACOS_BUNDLE_ICON)
        else:
            self._set_executable_icon(icons_dir / _WINDOWS_ICON)

        for icon in sorted(icons_dir.iterdir()):
            if icon.is_file():
                shutil.copyfile(icon, self._layout.resources_dir / icon.name)
                _LOGGER.debug("Copied %s -> %s", icon.name, self._layout.resources_dir)

    def _set_executable_icon(self, icon: Path) -> None:
        if not self._icon_tool or not icon.is_file():
            return
        tool = ExternalTool(self._icon_tool, runner=self._runner)
        try:
            tool.run(str(self._layout.executable), "--set-icon", str(icon))
        except ExternalToolFailure as exc:
            _LOGGER.warning("Could not replace executable icon: %s", exc)

    def sign_and_clear_quarantine(self) -> None:
        bundle = self._layout.bundle
        if bundle is None:
            return
        _LOGGER.info("Finalizing %s (signing and clearing quarantine)", bundle.name)
        codesign = ExternalTool(self._codesign, runner=self._runner)
        xattr = ExternalTool(self._xattr, runner=self._runner)

        try:
            codesign.run("--remove-signature", str(bundle), check=False)
        except ExternalToolFailure as exc:
            _LOGGER.debug("Could not remove existing signature: %s", exc)

        try:
            codesign.run("--force", "--deep", "--sign", "-", str(bundle))
        except ExternalToolFailure as exc:
            _LOGGER.warning("Could not sign app: %s", exc)
        else:
            _LOGGER.info("App signed successfully")

        try:
            xattr.run("-dr", QUARANTINE_ATTRIBUTE, str(bundle))
        except ExternalToolFailure as exc:
            _LOGGER.warning("Could not clear quarantine: %s", exc)
        else:
            _LOGGER.info("Cleared quarantine attributes on %s", bundle.name)


__all__ = ["Finalizer"]
