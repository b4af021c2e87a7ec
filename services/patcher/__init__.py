"""Public API for the patch service package."""

from __future__ import annotations

from services.patcher.builder import build_patch_service
from services.patcher.catalog import (
    ExactTarget,
    GlobTarget,
    PatchCatalog,
    PatchUnit,
    ScanTarget,
    build_default_catalog,
)
from services.patcher.constants import (
    APP_FOLDER_NAME,
    BEAUTIFIED_MARKER,
    MACOS_MANIFEST_URL,
    MAX_ARCHIVE_ENTRIES,
    MAX_ARCHIVE_FILE_SIZE,
    MAX_ARCHIVE_TOTAL_BYTES,
    MAX_COMPRESSION_RATIO,
    VERSION_MARKER_NAME,
    WINDOWS_RELEASES_URL,
)
from services.patcher.models import (
    ExternalToolFailure,
    ExtractionError,
    HashNotFound,
    IntegrityPair,
    NetworkError,
    NoSupportedVersionAvailable,
    PatchOutcome,
    PatchStageError,
    PatchTargetNotFound,
    PatcherError,
    ReleaseDescriptor,
)
from services.patcher.platforms import InstallLayout, build_layout
from services.patcher.providers import (
    ReleaseIndexSource,
    ReleaseManifestSource,
    ReleaseSource,
    resolve_latest_supported,
)
from services.patcher.service import PatchService
from services.patcher.versioning import compare_versions, sort_versions_descending

__all__ = [
    "APP_FOLDER_NAME",
    "BEAUTIFIED_MARKER",
    "MACOS_MANIFEST_URL",
    "MAX_ARCHIVE_ENTRIES",
    "MAX_ARCHIVE_FILE_SIZE",
    "MAX_ARCHIVE_TOTAL_BYTES",
    "MAX_COMPRESSION_RATIO",
    "VERSION_MARKER_NAME",
    "WINDOWS_RELEASES_URL",
    "ExactTarget",
    "GlobTarget",
    "PatchCatalog",
    "PatchUnit",
    "ScanTarget",
    "build_default_catalog",
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
    "InstallLayout",
    "build_layout",
    "ReleaseIndexSource",
    "ReleaseManifestSource",
    "ReleaseSource",
    "resolve_latest_supported",
    "PatchService",
    "compare_versions",
    "sort_versions_descending",
    "build_patch_service",
]
