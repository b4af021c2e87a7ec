"""Apply patch units to the files of an unpacked container."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from services.patcher.catalog import PatchUnit
from services.patcher.constants import BEAUTIFIED_MARKER
from services.patcher.models import PatchTargetNotFound
from services.patcher.tools import Reformatter


_LOGGER = logging.getLogger(__name__)

_MARKER_BYTES = BEAUTIFIED_MARKER.encode("utf-8")


def is_beautified(content: bytes) -> bool:
    return _MARKER_BYTES in content


def ensure_beautified(path: Path, content: bytes, reformatter: Reformatter | None) -> bytes:
    """Reformat ``path`` unless it already carries the marker comment.

    Returns the content the transform should see: the reformatted, marked text
    on success and the untouched input otherwise.
    """

    if path.suffix != ".js" or reformatter is None or is_beautified(content):
        return content
    if not reformatter.format_in_place(path):
        path.write_bytes(content)
        return content
    marked = _MARKER_BYTES + b"\n" + path.read_bytes()
    path.write_bytes(marked)
    _LOGGER.debug("Beautified %s", path.name)
    return marked


def apply_unit(root: Path, unit: PatchUnit, reformatter: Reformatter | None = None) -> Path:
    """Apply ``unit`` to the first candidate it changes and return that path."""

    candidates = unit.candidate_paths(root)
    for path in candidates:
        relative = path.relative_to(root).as_posix()
        try:
            original = path.read_bytes()
        except OSError as exc:
            _LOGGER.debug("Skipping %s: %s", relative, exc)
            continue

        _LOGGER.info("Found candidate %s for patch %s", relative, unit.name)
        content = ensure_beautified(path, original, reformatter)
        patched = unit.transform(content)
        if patched == content:
            _LOGGER.info("Patch %s left %s unchanged", unit.name, relative)
            if content != original:
                path.write_bytes(original)
            continue

        try:
            path.write_bytes(patched)
        except OSError as exc:
            _LOGGER.warning("Failed to write %s: %s", relative, exc)
            continue
        _LOGGER.info("Applied patch %s to %s", unit.name, relative)
        return path

    raise PatchTargetNotFound(
        f"Patch {unit.name} failed: none of {len(candidates)} candidate files could be patched"
    )


def apply_units(
    root: Path, units: Iterable[PatchUnit], reformatter: Reformatter | None = None
) -> list[Path]:
    units = list(units)
    patched: list[Path] = []
    for index, unit in enumerate(units, start=1):
        _LOGGER.info("Applying patch %s/%s (%s)", index, len(units), unit.name)
        patched.append(apply_unit(root, unit, reformatter))
    return patched


__all__ = ["apply_unit", "apply_units", "ensure_beautified", "is_beautified"]
