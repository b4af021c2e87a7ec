"""Download and unpack release packages into the installation root."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import zipfile
from http.client import HTTPException
from pathlib import Path
from urllib.request import urlopen

from services.patcher import constants
from services.patcher.models import ExtractionError, NetworkError, ReleaseDescriptor
from services.patcher.platforms import InstallLayout


_LOGGER = logging.getLogger(__name__)

_EXECUTABLE_MODE = 0o755


def download_release(release: ReleaseDescriptor, layout: InstallLayout, target_dir: Path) -> Path:
    """Download the package for ``release`` and return the temporary file path."""

    target_dir.mkdir(parents=True, exist_ok=True)
    target_path = target_dir / f"{layout.package_name(release.version)}.tmp"
    _LOGGER.info("Downloading version %s from %s", release.version, release.download_url)
    try:
        with urlopen(release.download_url) as response, target_path.open("wb") as destination:  # nosec - HTTPS
            shutil.copyfileobj(response, destination)
    except (OSError, HTTPException, ValueError) as exc:
        target_path.unlink(missing_ok=True)
        raise NetworkError(f"Failed to download package: {exc}") from exc
    _LOGGER.debug("Downloaded package to %s", target_path)
    return target_path


def extract_release(archive_path: Path, layout: InstallLayout) -> None:
    """Replace the installation root with the contents of ``archive_path``."""

    _LOGGER.info("Extracting %s into %s", archive_path.name, layout.root)
    try:
        clear_patched_marker(layout)
        if layout.root.exists():
            shutil.rmtree(layout.root)
        layout.root.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as archive:
            extract_zip_safely(archive, layout)
        restore_executable_permissions(layout)
        remove_self_update_helper(layout)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ExtractionError(f"Failed to extract package: {exc}") from exc


def install_release(release: ReleaseDescriptor, layout: InstallLayout, download_dir: Path) -> None:
    """Download, extract and mark ``release`` as the installed version."""

    archive_path = download_release(release, layout, download_dir)
    try:
        extract_release(archive_path, layout)
    finally:
        archive_path.unlink(missing_ok=True)
        _LOGGER.debug("Removed temporary package %s", archive_path)
    try:
        write_version_marker(layout, release.version)
    except OSError as exc:
        raise ExtractionError(f"Failed to record installed version: {exc}") from exc


def normalise_entry_name(name: str) -> str:
    return name.replace("\\", "/")


def is_directory_entry(member: zipfile.ZipInfo) -> bool:
    """Return ``True`` when ``member`` describes a directory.

    Some archive producers emit zero-length directory entries without the
    directory flag, and with either separator convention.
    """

    if member.is_dir():
        return True
    return member.file_size == 0 and normalise_entry_name(member.filename).endswith("/")


def is_symlink_entry(member: zipfile.ZipInfo) -> bool:
    mode = member.external_attr >> 16
    return stat.S_ISLNK(mode)


def relative_entry_path(member: zipfile.ZipInfo, layout: InstallLayout) -> str | None:
    """Return the path of ``member`` below the installation root, if extracted."""

    name = normalise_entry_name(member.filename)
    prefix = layout.archive_prefix
    if prefix:
        if not name.startswith(prefix):
            return None
        name = name[len(prefix):]
    name = name.strip("/")
    return name or None


def extract_zip_safely(archive: zipfile.ZipFile, layout: InstallLayout) -> None:
    root = layout.root.resolve()
    total_bytes = 0
    processed_entries = 0
    for member in archive.infolist():
        relative = relative_entry_path(member, layout)
        if relative is None:
            continue
        processed_entries += 1
        if processed_entries > constants.MAX_ARCHIVE_ENTRIES:
            raise ExtractionError("Package contained too many entries")
        path = Path(relative)
        if path.is_absolute():
            raise ExtractionError("Package contained an absolute path entry")
        destination = root / path
        try:
            destination.resolve().relative_to(root)
        except ValueError:
            raise ExtractionError(f"Package contained an unsafe relative path: {relative}")

        if is_directory_entry(member):
            destination.mkdir(parents=True, exist_ok=True)
            continue
        if destination.is_dir():
            continue

        _check_entry_limits(member)
        total_bytes += member.file_size
        if total_bytes > constants.MAX_ARCHIVE_TOTAL_BYTES:
            raise ExtractionError("Package expanded beyond safe limits")

        destination.parent.mkdir(parents=True, exist_ok=True)
        if layout.preserve_symlinks and is_symlink_entry(member):
            if _extract_symlink(archive, member, destination):
                continue

        with archive.open(member) as source, destination.open("wb") as target:
            shutil.copyfileobj(source, target)
        _apply_entry_mode(member, destination)

    _LOGGER.info("Extracted %s entries totalling %s bytes", processed_entries, total_bytes)


def _check_entry_limits(member: zipfile.ZipInfo) -> None:
    if member.file_size > constants.MAX_ARCHIVE_FILE_SIZE:
        _LOGGER.error(
            "Package member %s exceeded file size limit (%s > %s)",
            member.filename,
            member.file_size,
            constants.MAX_ARCHIVE_FILE_SIZE,
        )
        raise ExtractionError("Package contained an oversized file")
    if member.compress_size == 0 and member.file_size > 0:
        raise ExtractionError("Package contained a suspiciously compressed file")
    if (
        member.compress_size > 0
        and member.file_size > member.compress_size * constants.MAX_COMPRESSION_RATIO
    ):
        raise ExtractionError("Package exceeded safe compression ratio")


def _extract_symlink(archive: zipfile.ZipFile, member: zipfile.ZipInfo, destination: Path) -> bool:
    link_target = archive.read(member).decode("utf-8", errors="surrogateescape")
    if not link_target:
        return False
    if destination.is_symlink() or destination.exists():
        destination.unlink()
    try:
        os.symlink(link_target, destination)
    except OSError as exc:
        _LOGGER.warning("Failed to create symlink %s: %s", destination, exc)
        return True
    _LOGGER.debug("Created symlink %s -> %s", destination.name, link_target)
    return True


def _apply_entry_mode(member: zipfile.ZipInfo, destination: Path) -> None:
    mode = (member.external_attr >> 16) & 0o777
    if member.create_system != 3 or not mode & 0o111:
        return
    try:
        destination.chmod(mode)
    except OSError:
        _LOGGER.debug("Unable to apply archived mode to %s", destination, exc_info=True)


def restore_executable_permissions(layout: InstallLayout) -> None:
    """Mark the main executable and helpers executable after extraction."""

    if not layout.is_macos:
        return
    try:
        layout.executable.chmod(_EXECUTABLE_MODE)
    except OSError as exc:
        _LOGGER.warning("Could not set executable permissions on %s: %s", layout.executable, exc)
    for helper in layout.helper_executables:
        try:
            helper.chmod(_EXECUTABLE_MODE)
        except OSError:
            continue


def remove_self_update_helper(layout: InstallLayout) -> None:
    helper = layout.self_update_helper
    if helper is None:
        return
    try:
        helper.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        _LOGGER.warning("Could not remove self-update helper %s: %s", helper, exc)
        return
    _LOGGER.info("Removed %s to prevent self-updates", helper.name)


def read_version_marker(layout: InstallLayout) -> str | None:
    try:
        text = layout.version_marker.read_text(encoding="utf-8")
    except OSError:
        return None
    return text.strip() or None


def write_version_marker(layout: InstallLayout, version: str) -> None:
    layout.version_marker.write_text(version, encoding="utf-8")


def clear_version_marker(layout: InstallLayout) -> None:
    layout.version_marker.unlink(missing_ok=True)


def is_patched(layout: InstallLayout) -> bool:
    return layout.patched_marker.is_file()


def write_patched_marker(layout: InstallLayout) -> None:
    layout.patched_marker.write_text(read_version_marker(layout) or "", encoding="utf-8")


def clear_patched_marker(layout: InstallLayout) -> None:
    layout.patched_marker.unlink(missing_ok=True)


__all__ = [
    "clear_patched_marker",
    "clear_version_marker",
    "download_release",
    "extract_release",
    "extract_zip_safely",
    "install_release",
    "is_directory_entry",
    "is_patched",
    "read_version_marker",
    "remove_self_update_helper",
    "restore_executable_permissions",
    "write_patched_marker",
    "write_version_marker",
]
