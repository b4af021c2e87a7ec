from __future__ import annotations

from pathlib import Path

import pytest

from services.patcher.catalog import ExactTarget, PatchUnit
from services.patcher.models import ExternalToolFailure, PatchTargetNotFound
from services.patcher.repack import Repacker, backup_path_for, container_backup
from services.patcher.tools import AsarPacker, ExternalTool, Reformatter
from tests.unit.patcher_test_utils import FakeToolRunner, read_zip, write_zip


def _unit(path: str = "main.js") -> PatchUnit:
    return PatchUnit(
        name="greeting",
        locators=(ExactTarget(path),),
        transform=lambda content: content.replace(b"hello", b"patched hello", 1),
    )


def _repacker(tmp_path: Path, runner: FakeToolRunner, *, keep_backup: bool = True) -> Repacker:
    return Repacker(
        AsarPacker(ExternalTool(("asar",), runner=runner)),
        tmp_path / "asar-temp",
        reformatter=Reformatter(ExternalTool(("js-beautify",), runner=runner)),
        keep_backup=keep_backup,
    )


def test_repack_patches_container_and_keeps_backup(tmp_path: Path) -> None:
    container = write_zip(tmp_path / "resources" / "app.asar", {"main.js": b"hello"})
    original = container.read_bytes()
    runner = FakeToolRunner()

    patched = _repacker(tmp_path, runner).run(container, [_unit()])

    assert patched == [Path("main.js")]
    assert b"patched hello" in read_zip(container)["main.js"]
    assert backup_path_for(container).read_bytes() == original
    assert not (tmp_path / "asar-temp").exists()


def test_repack_can_discard_backup(tmp_path: Path) -> None:
    container = write_zip(tmp_path / "app.asar", {"main.js": b"hello"})

    _repacker(tmp_path, FakeToolRunner(), keep_backup=False).run(container, [_unit()])

    assert not backup_path_for(container).exists()


def test_failed_pack_restores_exact_original(tmp_path: Path) -> None:
    container = write_zip(tmp_path / "app.asar", {"main.js": b"hello"})
    original = container.read_bytes()
    runner = FakeToolRunner(failing={"asar pack"})

    with pytest.raises(ExternalToolFailure):
        _repacker(tmp_path, runner).run(container, [_unit()])

    assert container.read_bytes() == original
    assert not backup_path_for(container).exists()
    assert not (tmp_path / "asar-temp").exists()


def test_failed_patch_never_touches_container(tmp_path: Path) -> None:
    container = write_zip(tmp_path / "app.asar", {"main.js": b"goodbye"})
    original = container.read_bytes()
    runner = FakeToolRunner()

    with pytest.raises(PatchTargetNotFound):
        _repacker(tmp_path, runner).run(container, [_unit()])

    assert container.read_bytes() == original
    assert runner.commands("asar") == [
        ["asar", "extract", str(container), str(tmp_path / "asar-temp")]
    ]


def test_stale_scratch_directory_is_replaced(tmp_path: Path) -> None:
    container = write_zip(tmp_path / "app.asar", {"main.js": b"hello"})
    scratch = tmp_path / "asar-temp"
    scratch.mkdir()
    (scratch / "leftover.js").write_text("old", encoding="utf-8")

    _repacker(tmp_path, FakeToolRunner()).run(container, [_unit()])

    assert "leftover.js" not in read_zip(container)


def test_container_backup_restores_on_exception(tmp_path: Path) -> None:
    container = tmp_path / "app.asar"
    container.write_bytes(b"original")

    with pytest.raises(KeyboardInterrupt):
        with container_backup(container):
            container.write_bytes(b"half written")
            raise KeyboardInterrupt

    assert container.read_bytes() == b"original"
    assert not backup_path_for(container).exists()
