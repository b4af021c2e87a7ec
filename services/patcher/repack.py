"""Unpack, patch and repack the application container."""

from __future__ import annotations

import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from services.patcher.catalog import PatchUnit
from services.patcher.constants import CONTAINER_BACKUP_SUFFIX
from services.patcher.patching import apply_units
from services.patcher.tools import AsarPacker, Reformatter


_LOGGER = logging.getLogger(__name__)


def backup_path_for(container: Path) -> Path:
    return container.with_name(container.name + CONTAINER_BACKUP_SUFFIX)


@contextmanager
def container_backup(container: Path, *, keep: bool = True) -> Iterator[Path]:
    """Move ``container`` aside for the duration of a risky rewrite.

    The original is renamed (not copied) to ``<name>.backup``. Any exception
    inside the block discards whatever was written at ``container`` and renames
    the backup back. On success the backup is left in place unless ``keep`` is
    false.
    """

    backup = backup_path_for(container)
    os.replace(container, backup)
    _LOGGER.debug("Moved %s to %s", container.name, backup.name)
    try:
        yield backup
    except BaseException:
        _LOGGER.warning("Restoring %s from %s", container.name, backup.name)
        _discard(container)
        os.replace(backup, container)
        raise
    if not keep:
        backup.unlink(missing_ok=True)
        _LOGGER.debug("Removed container backup %s", backup)


def _discard(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)


class Repacker:
    """Run patch units against an unpacked copy of the container."""

    def __init__(
        self,
        packer: AsarPacker,
        scratch_dir: Path,
        *,
        reformatter: Reformatter | None = None,
        keep_backup: bool = True,
    ) -> None:
        self._packer = packer
        self._scratch_dir = scratch_dir
        self._reformatter = reformatter
        self._keep_backup = keep_backup

    def run(self, container: Path, units: Iterable[PatchUnit]) -> list[Path]:
        """Patch ``container`` in place; return the patched paths (scratch-relative)."""

        if self._scratch_dir.exists():
            shutil.rmtree(self._scratch_dir)
        self._packer.extract(container, self._scratch_dir)
        try:
            patched = apply_units(self._scratch_dir, units, self._reformatter)
            relative = [path.relative_to(self._scratch_dir) for path in patched]
            with container_backup(container, keep=self._keep_backup):
                self._packer.pack(self._scratch_dir, container)
        finally:
            shutil.rmtree(self._scratch_dir, ignore_errors=True)
        _LOGGER.info("Repacked %s with %s patched file(s)", container.name, len(relative))
        return relative


__all__ = ["Repacker", "backup_path_for", "container_backup"]
