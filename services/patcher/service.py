"""Service coordinating resolution, installation, patching and repair."""

from __future__ import annotations

import logging
from pathlib import Path

from services.patcher.archive import (
    clear_version_marker,
    install_release,
    is_patched,
    read_version_marker,
    write_patched_marker,
)
from services.patcher.catalog import PatchCatalog
from services.patcher.finalizer import Finalizer
from services.patcher.integrity import IntegrityReconciler
from services.patcher.models import (
    NetworkError,
    NoSupportedVersionAvailable,
    PatchOutcome,
    PatchStageError,
    PatcherError,
    ReleaseDescriptor,
)
from services.patcher.platforms import InstallLayout
from services.patcher.providers import ReleaseSource, resolve_latest_supported
from services.patcher.repack import Repacker


_LOGGER = logging.getLogger(__name__)

STAGE_RESOLVE = "resolving supported version"
STAGE_INSTALL = "installing release"
STAGE_PATCH = "applying patches"
STAGE_INTEGRITY = "repairing integrity hash"


class PatchService:
    """Keep the installation root on the newest supported, patched version."""

    def __init__(
        self,
        layout: InstallLayout,
        source: ReleaseSource,
        catalog: PatchCatalog,
        repacker: Repacker,
        reconciler: IntegrityReconciler,
        finalizer: Finalizer,
        *,
        download_dir: Path,
        allow_generic: bool = True,
    ) -> None:
        self._layout = layout
        self._source = source
        self._catalog = catalog
        self._repacker = repacker
        self._reconciler = reconciler
        self._finalizer = finalizer
        self._download_dir = download_dir
        self._allow_generic = allow_generic

    @property
    def layout(self) -> InstallLayout:
        return self._layout

    def current_version(self) -> str | None:
        return read_version_marker(self._layout)

    def resolve(self) -> ReleaseDescriptor:
        try:
            return resolve_latest_supported(self._catalog.supported_versions, self._source)
        except PatcherError as exc:
            raise PatchStageError(STAGE_RESOLVE, exc) from exc

    def ensure_patched(self, *, force: bool = False, skip_patches: bool = False) -> PatchOutcome:
        """Install and patch the newest supported version when needed.

        ``skip_patches`` installs without touching the container and only
        finalizes the bundle; with an up-to-date install it re-runs the
        finalizer so an unsigned bundle stays launchable. An install of the
        resolved version that never finished patching is reinstalled.
        """

        current = self.current_version()
        if current:
            _LOGGER.info("Current version: %s", current)
        release = self.resolve()

        if current == release.version and not force:
            if skip_patches:
                _LOGGER.info("Up to date; finalizing existing install without injection")
                self._finalizer.finalize()
                return PatchOutcome(release.version, current, finalized=True)
            if is_patched(self._layout):
                _LOGGER.info("Version %s is already installed", release.version)
                return PatchOutcome(release.version, current)
            _LOGGER.info("Version %s is installed but not patched; reinstalling", release.version)

        _LOGGER.info("Updating to %s", release.version)
        try:
            install_release(release, self._layout, self._download_dir)
        except PatcherError as exc:
            raise PatchStageError(STAGE_INSTALL, exc) from exc
        except OSError as exc:
            raise PatchStageError(STAGE_INSTALL, PatcherError(str(exc))) from exc

        if skip_patches:
            _LOGGER.info("Safe mode: skipping container injection and hash repair")
            self._finalizer.finalize()
            return PatchOutcome(release.version, current, installed=True, finalized=True)

        try:
            patched = self.apply_patches(release.version)
            try:
                write_patched_marker(self._layout)
            except OSError as exc:
                raise PatchStageError(STAGE_PATCH, PatcherError(str(exc))) from exc
        except PatchStageError:
            clear_version_marker(self._layout)
            raise
        return PatchOutcome(
            release.version, current, installed=True, patched=patched, finalized=patched
        )

    def ensure_patched_or_keep_current(
        self, *, force: bool = False, skip_patches: bool = False
    ) -> PatchOutcome:
        """Like :meth:`ensure_patched` but keep an existing install when offline."""

        try:
            return self.ensure_patched(force=force, skip_patches=skip_patches)
        except PatchStageError as exc:
            current = self.current_version()
            recoverable = isinstance(exc.cause, (NetworkError, NoSupportedVersionAvailable))
            if exc.stage != STAGE_RESOLVE or not recoverable or current is None:
                raise
            _LOGGER.warning("%s; continuing with installed version %s", exc, current)
            return PatchOutcome(current, current)

    def apply_patches(self, version: str) -> bool:
        """Patch the container for ``version``; ``False`` when nothing applies."""

        units = self._catalog.units_for(version, allow_generic=self._allow_generic)
        if not units:
            _LOGGER.info("No patches registered for version %s", version)
            return False

        _LOGGER.info("Applying %s patch unit(s) for version %s", len(units), version)
        try:
            self._repacker.run(self._layout.container, units)
        except PatcherError as exc:
            raise PatchStageError(STAGE_PATCH, exc) from exc
        except OSError as exc:
            raise PatchStageError(STAGE_PATCH, PatcherError(str(exc))) from exc

        try:
            self._reconciler.reconcile()
        except PatcherError as exc:
            raise PatchStageError(STAGE_INTEGRITY, exc) from exc
        except OSError as exc:
            raise PatchStageError(STAGE_INTEGRITY, PatcherError(str(exc))) from exc

        self._finalizer.finalize()
        _LOGGER.info("Patches applied successfully")
        return True


__all__ = [
    "PatchService",
    "STAGE_INSTALL",
    "STAGE_INTEGRITY",
    "STAGE_PATCH",
    "STAGE_RESOLVE",
]
