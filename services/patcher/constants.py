"""Constants shared across the patch pipeline modules."""

from __future__ import annotations

_DOWNLOAD_BUCKET = (
    "https://storage.googleapis.com/osprey-downloads-c02f6a0d-347c-492b-a752-3e0651722e97"
)
WINDOWS_RELEASES_URL = f"{_DOWNLOAD_BUCKET}/nest-win-x64/RELEASES"
MACOS_MANIFEST_URL = f"{_DOWNLOAD_BUCKET}/nest/update_manifest.json"

WINDOWS_PACKAGE_TEMPLATE = "AnthropicClaude-{version}-full.nupkg"
MACOS_PACKAGE_TEMPLATE = "Claude-{version}.zip"
WINDOWS_ARCHIVE_PREFIX = "lib/net45/"

APP_FOLDER_NAME = "app-latest"
VERSION_MARKER_NAME = "claude-version.txt"
PATCHED_MARKER_NAME = "claude-patched.txt"
CONTAINER_NAME = "app.asar"
CONTAINER_BACKUP_SUFFIX = ".backup"
SCRATCH_FOLDER_NAME = "asar-temp"

BEAUTIFIED_MARKER = "/* CLAUDE-MANAGER-BEAUTIFIED */"

INTEGRITY_MANIFEST_KEY = "ElectronAsarIntegrity"
INTEGRITY_CONTAINER_REFERENCE = "Resources/app.asar"
INTEGRITY_FAILURE_MARKER = "Integrity check failed"
QUARANTINE_ATTRIBUTE = "com.apple.quarantine"

MAX_ARCHIVE_TOTAL_BYTES = 4 * 1024 * 1024 * 1024  # 4 GiB
MAX_ARCHIVE_FILE_SIZE = 1024 * 1024 * 1024  # 1 GiB per file
MAX_ARCHIVE_ENTRIES = 50000
MAX_COMPRESSION_RATIO = 1000  # Uncompressed vs compressed bytes
