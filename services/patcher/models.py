"""Data models and error types used by the patch pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class ReleaseDescriptor:
    """A supported version the vendor currently distributes."""

    version: str
    download_url: str


@dataclass(frozen=True)
class IntegrityPair:
    """Hash embedded by the vendor and hash of the repacked container."""

    expected: str
    actual: str

    @property
    def in_sync(self) -> bool:
        return self.expected == self.actual


@dataclass(frozen=True)
class PatchOutcome:
    """Summary of a single :meth:`PatchService.ensure_patched` run."""

    version: str
    previous_version: str | None
    installed: bool = False
    patched: bool = False
    finalized: bool = False


class PatcherError(RuntimeError):
    """Base class for every failure raised by the patch pipeline."""


class NetworkError(PatcherError):
    """Raised when the release source or package download is unreachable."""


class NoSupportedVersionAvailable(PatcherError):
    """Raised when none of the supported versions is currently distributed."""


class ExtractionError(PatcherError):
    """Raised when the downloaded package cannot be unpacked."""


class PatchTargetNotFound(PatcherError):
    """Raised when a patch unit found no candidate file it could change."""


class HashNotFound(PatcherError):
    """Raised when the integrity hash is missing where it is expected."""


class ExternalToolFailure(PatcherError):
    """Raised when an external command exits non-zero or cannot be launched."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        details = message
        if output.strip():
            details = f"{message}\nOutput: {output.strip()}"
        super().__init__(details)
        self.command = tuple(command)
        self.returncode = returncode
        self.output = output


class PatchStageError(PatcherError):
    """Wrap a stage failure with the name of the stage that raised it."""

    def __init__(self, stage: str, cause: PatcherError) -> None:
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


__all__ = [
    "ExternalToolFailure",
    "ExtractionError",
    "HashNotFound",
    "IntegrityPair",
    "NetworkError",
    "NoSupportedVersionAvailable",
    "PatchOutcome",
    "PatchStageError",
    "PatchTargetNotFound",
    "PatcherError",
    "ReleaseDescriptor",
]
