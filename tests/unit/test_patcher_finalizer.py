from __future__ import annotations

from pathlib import Path

from services.patcher.finalizer import Finalizer
from services.patcher.platforms import macos_layout, windows_layout
from tests.unit.patcher_test_utils import FakeToolRunner


def _macos_bundle(tmp_path: Path):
    layout = macos_layout(tmp_path / "app-latest")
    layout.resources_dir.mkdir(parents=True)
    return layout


def test_macos_finalize_signs_and_clears_quarantine(tmp_path: Path) -> None:
    layout = _macos_bundle(tmp_path)
    runner = FakeToolRunner()

    Finalizer(layout, runner).finalize()

    bundle = str(layout.bundle)
    assert runner.calls == [
        ["codesign", "--remove-signature", bundle],
        ["codesign", "--force", "--deep", "--sign", "-", bundle],
        ["xattr", "-dr", "com.apple.quarantine", bundle],
    ]


def test_macos_finalize_failures_are_warnings(tmp_path: Path, caplog) -> None:
    layout = _macos_bundle(tmp_path)
    runner = FakeToolRunner(failing={"codesign"}, missing={"xattr"})

    with caplog.at_level("WARNING"):
        Finalizer(layout, runner).finalize()

    assert "Could not sign app" in caplog.text
    assert "Could not clear quarantine" in caplog.text


def test_windows_finalize_never_signs(tmp_path: Path) -> None:
    layout = windows_layout(tmp_path / "app-latest")
    layout.resources_dir.mkdir(parents=True)
    runner = FakeToolRunner()

    Finalizer(layout, runner).finalize()

    assert runner.calls == []


def test_windows_icons_are_applied_and_copied(tmp_path: Path) -> None:
    layout = windows_layout(tmp_path / "app-latest")
    layout.resources_dir.mkdir(parents=True)
    icons = tmp_path / "icons"
    icons.mkdir()
    (icons / "app.ico").write_bytes(b"ico")
    (icons / "tray.png").write_bytes(b"png")
    runner = FakeToolRunner()

    Finalizer(layout, runner, icons_dir=icons, icon_tool=("rcedit",)).finalize()

    assert runner.commands("rcedit") == [
        ["rcedit", str(layout.executable), "--set-icon", str(icons / "app.ico")]
    ]
    assert (layout.resources_dir / "tray.png").read_bytes() == b"png"
    assert (layout.resources_dir / "app.ico").read_bytes() == b"ico"


def test_macos_bundle_icon_is_replaced(tmp_path: Path) -> None:
    layout = _macos_bundle(tmp_path)
    icons = tmp_path / "icons"
    icons.mkdir()
    (icons / "app.icns").write_bytes(b"icns")

    Finalizer(layout, FakeToolRunner(), icons_dir=icons).finalize()

    assert (layout.resources_dir / "electron.icns").read_bytes() == b"icns"


def test_missing_icon_directory_is_ignored(tmp_path: Path) -> None:
    layout = windows_layout(tmp_path / "app-latest")
    runner = FakeToolRunner()

    Finalizer(layout, runner, icons_dir=tmp_path / "nowhere", icon_tool=("rcedit",)).finalize()

    assert runner.calls == []
