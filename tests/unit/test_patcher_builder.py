from __future__ import annotations

from pathlib import Path

from app.config import PatcherConfig, ToolCommands
from services.patcher import build_patch_service
from services.patcher.constants import MACOS_MANIFEST_URL, WINDOWS_RELEASES_URL
from services.patcher.integrity import ManifestIntegrityProbe, RuntimeIntegrityProbe
from services.patcher.platforms import PLATFORM_MACOS, PLATFORM_WINDOWS
from services.patcher.providers import ReleaseIndexSource, ReleaseManifestSource
from tests.unit.patcher_test_utils import FakeToolRunner


def test_windows_service_uses_index_source_and_runtime_probe(tmp_path: Path) -> None:
    service = build_patch_service(PatcherConfig(data_dir=tmp_path), "win32", runner=FakeToolRunner())

    assert service.layout.platform == PLATFORM_WINDOWS
    assert service.layout.root == tmp_path / "app-latest"
    assert isinstance(service._source, ReleaseIndexSource)  # type: ignore[attr-defined]
    assert service._source._index_url == WINDOWS_RELEASES_URL  # type: ignore[attr-defined]
    probe = service._reconciler._probe  # type: ignore[attr-defined]
    assert isinstance(probe, RuntimeIntegrityProbe)


def test_macos_service_uses_manifest_source_and_plist_probe(tmp_path: Path) -> None:
    service = build_patch_service(PatcherConfig(data_dir=tmp_path), "darwin", runner=FakeToolRunner())

    assert service.layout.platform == PLATFORM_MACOS
    assert service.layout.bundle == tmp_path / "app-latest" / "Claude.app"
    assert isinstance(service._source, ReleaseManifestSource)  # type: ignore[attr-defined]
    assert service._source._manifest_url == MACOS_MANIFEST_URL  # type: ignore[attr-defined]
    probe = service._reconciler._probe  # type: ignore[attr-defined]
    assert isinstance(probe, ManifestIntegrityProbe)


def test_configured_tools_are_used(tmp_path: Path) -> None:
    runner = FakeToolRunner()
    config = PatcherConfig(
        data_dir=tmp_path,
        tools=ToolCommands(packer=("npx", "asar"), reformatter=("prettier",)),
        generic_versions=("0.13.0",),
    )

    service = build_patch_service(config, "linux", runner=runner)

    assert service.layout.platform == PLATFORM_WINDOWS
    assert "0.13.0" in service._catalog.supported_versions  # type: ignore[attr-defined]
    assert service._repacker._packer._tool.command == ("npx", "asar")  # type: ignore[attr-defined]
