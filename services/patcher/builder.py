"""Helpers for constructing the patch service from configuration."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from app.config import PatcherConfig, get_patcher_config
from services.patcher.catalog import PatchCatalog, build_default_catalog
from services.patcher.constants import (
    APP_FOLDER_NAME,
    MACOS_MANIFEST_URL,
    SCRATCH_FOLDER_NAME,
    WINDOWS_RELEASES_URL,
)
from services.patcher.finalizer import Finalizer
from services.patcher.integrity import (
    SCOPE_FILE,
    IntegrityProbe,
    IntegrityReconciler,
    ManifestIntegrityProbe,
    RuntimeIntegrityProbe,
)
from services.patcher.platforms import InstallLayout, build_layout
from services.patcher.providers import ReleaseIndexSource, ReleaseManifestSource, ReleaseSource
from services.patcher.repack import Repacker
from services.patcher.service import PatchService
from services.patcher.tools import (
    AsarHeaderHasher,
    AsarPacker,
    CommandRunner,
    ExternalTool,
    Reformatter,
)


_LOGGER = logging.getLogger(__name__)


def _build_source(layout: InstallLayout, config: PatcherConfig) -> ReleaseSource:
    if layout.is_macos:
        return ReleaseManifestSource(config.macos_manifest_url or MACOS_MANIFEST_URL)
    return ReleaseIndexSource(
        config.windows_releases_url or WINDOWS_RELEASES_URL,
        filename_template=layout.package_template,
    )


def _build_probe(
    layout: InstallLayout, config: PatcherConfig, runner: CommandRunner
) -> IntegrityProbe:
    if not layout.is_macos:
        executable = ExternalTool(
            (str(layout.executable),),
            runner=runner,
            timeout=config.integrity_probe_timeout,
        )
        return RuntimeIntegrityProbe(executable)

    assert layout.integrity_manifest is not None
    if config.integrity_scope == SCOPE_FILE:
        return ManifestIntegrityProbe(
            layout.integrity_manifest, layout.container, scope=SCOPE_FILE
        )
    node = ExternalTool(config.tools.node, runner=runner)
    hasher = AsarHeaderHasher(node, config.node_modules_dir)
    return ManifestIntegrityProbe(
        layout.integrity_manifest, layout.container, header_hasher=hasher
    )


def build_patch_service(
    config: PatcherConfig | None = None,
    platform: str | None = None,
    *,
    catalog: PatchCatalog | None = None,
    runner: CommandRunner = subprocess.run,
) -> PatchService:
    """Construct a :class:`PatchService` for the current environment."""

    config = config or get_patcher_config()
    data_dir: Path = config.data_dir
    layout = build_layout(data_dir / APP_FOLDER_NAME, platform)
    _LOGGER.debug("Using %s layout rooted at %s", layout.platform, layout.root)

    catalog = catalog or build_default_catalog(config.generic_versions)
    packer = AsarPacker(ExternalTool(config.tools.packer, runner=runner))
    reformatter = Reformatter(ExternalTool(config.tools.reformatter, runner=runner))
    repacker = Repacker(
        packer,
        data_dir / SCRATCH_FOLDER_NAME,
        reformatter=reformatter,
        keep_backup=config.keep_container_backup,
    )
    reconciler = IntegrityReconciler(layout, _build_probe(layout, config, runner))
    finalizer = Finalizer(
        layout,
        runner,
        icons_dir=config.icons_dir,
        icon_tool=config.tools.icon_tool,
    )

    return PatchService(
        layout,
        _build_source(layout, config),
        catalog,
        repacker,
        reconciler,
        finalizer,
        download_dir=data_dir,
        allow_generic=config.allow_generic_fallback,
    )


__all__ = ["build_patch_service"]
