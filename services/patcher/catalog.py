"""Supported-version table mapping versions to ordered patch units."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Union

from services.patcher.injection import fixed_transform_0_12_55, generic_transform


_LOGGER = logging.getLogger(__name__)

Transform = Callable[[bytes], bytes]


@dataclass(frozen=True)
class ExactTarget:
    """A file at a fixed path relative to the unpacked container."""

    path: str
    precedence = 0

    def candidates(self, root: Path) -> list[Path]:
        return [root / self.path]


@dataclass(frozen=True)
class GlobTarget:
    """Every file matching ``pattern`` below the unpacked container."""

    pattern: str
    precedence = 1

    def candidates(self, root: Path) -> list[Path]:
        return sorted(path for path in root.glob(self.pattern) if path.is_file())


@dataclass(frozen=True)
class ScanTarget:
    """Files in ``directory`` named ``<prefix>*<suffix>``, tried last."""

    directory: str
    prefix: str = "index-"
    suffix: str = ".js"
    precedence = 2

    def candidates(self, root: Path) -> list[Path]:
        folder = root / self.directory
        try:
            entries = sorted(folder.iterdir())
        except OSError:
            return []
        return [
            entry
            for entry in entries
            if entry.is_file()
            and entry.name.startswith(self.prefix)
            and entry.name.endswith(self.suffix)
        ]


TargetLocator = Union[ExactTarget, GlobTarget, ScanTarget]


@dataclass(frozen=True)
class PatchUnit:
    """One transformation plus the files it may apply to."""

    name: str
    locators: tuple[TargetLocator, ...]
    transform: Transform

    def candidate_paths(self, root: Path) -> list[Path]:
        """Return candidates ordered exact names, then globs, then scans."""

        ordered = sorted(self.locators, key=lambda locator: locator.precedence)
        seen: set[Path] = set()
        candidates: list[Path] = []
        for locator in ordered:
            for path in locator.candidates(root):
                if path in seen:
                    continue
                seen.add(path)
                candidates.append(path)
        return candidates


@dataclass(frozen=True)
class PatchCatalog:
    """Read-only lookup from supported version to its patch units."""

    versions: Mapping[str, tuple[PatchUnit, ...]]
    generic: tuple[PatchUnit, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "versions", MappingProxyType(dict(self.versions)))

    @property
    def supported_versions(self) -> tuple[str, ...]:
        return tuple(self.versions)

    def units_for(self, version: str, *, allow_generic: bool = True) -> tuple[PatchUnit, ...]:
        units = self.versions.get(version, ())
        if units:
            return units
        if allow_generic and self.generic:
            _LOGGER.info("No dedicated patches for %s; using generic anchor detection", version)
            return self.generic
        return ()


def default_generic_units() -> tuple[PatchUnit, ...]:
    return (
        PatchUnit(
            name="extension-loader",
            locators=(
                GlobTarget(".vite/build/index-*.js"),
                ScanTarget(".vite/build", prefix="", suffix=".js"),
            ),
            transform=generic_transform(),
        ),
    )


def build_default_catalog(generic_versions: Iterable[str] = ()) -> PatchCatalog:
    """Return the built-in catalog; ``generic_versions`` map to the generic units."""

    generic = default_generic_units()
    versions: dict[str, tuple[PatchUnit, ...]] = {
        "0.12.55": (
            PatchUnit(
                name="extension-loader",
                locators=(
                    ExactTarget(".vite/build/index-BZRfNpEg.js"),
                    ExactTarget(".vite/build/index-DyHP6ri_.js"),
                ),
                transform=fixed_transform_0_12_55(),
            ),
        ),
    }
    for version in generic_versions:
        versions.setdefault(version, generic)
    return PatchCatalog(versions=versions, generic=generic)


__all__ = [
    "ExactTarget",
    "GlobTarget",
    "PatchCatalog",
    "PatchUnit",
    "ScanTarget",
    "TargetLocator",
    "Transform",
    "build_default_catalog",
    "default_generic_units",
]
