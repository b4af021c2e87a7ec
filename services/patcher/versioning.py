"""Helpers for ordering the dotted version strings of supported releases."""

from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable

from packaging.version import InvalidVersion, Version


__all__ = [
    "compare_versions",
    "parse_release_segments",
    "sort_versions_descending",
]


def parse_release_segments(version: str) -> tuple[int, ...]:
    """Return the numeric segments of a plain dotted ``version`` string.

    Raises :class:`ValueError` for anything other than a bare release such as
    ``0.12.55``; pre-release, post-release and local labels are rejected.
    """

    try:
        parsed = Version(version.strip())
    except InvalidVersion as exc:
        raise ValueError(f"Unsupported version string: {version!r}") from exc
    if parsed.is_prerelease or parsed.is_postrelease or parsed.local or parsed.epoch:
        raise ValueError(f"Unsupported version string: {version!r}")
    return parsed.release


def compare_versions(left: str, right: str) -> int:
    """Compare two dotted versions segment by segment.

    Returns ``1`` when ``left`` is newer, ``-1`` when it is older and ``0``
    when both are identical. Missing trailing segments count as zero; when the
    padded segments are all equal the version with more segments is treated
    as newer, so ``1.2.0`` sorts above ``1.2``.
    """

    left_segments = parse_release_segments(left)
    right_segments = parse_release_segments(right)
    length = max(len(left_segments), len(right_segments))
    for index in range(length):
        left_value = left_segments[index] if index < len(left_segments) else 0
        right_value = right_segments[index] if index < len(right_segments) else 0
        if left_value != right_value:
            return 1 if left_value > right_value else -1
    if len(left_segments) != len(right_segments):
        return 1 if len(left_segments) > len(right_segments) else -1
    return 0


def sort_versions_descending(versions: Iterable[str]) -> list[str]:
    """Return ``versions`` ordered newest first."""

    return sorted(versions, key=cmp_to_key(compare_versions), reverse=True)
