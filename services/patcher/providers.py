"""Release source implementations and the supported-version resolver."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol
from urllib.error import URLError
from urllib.request import urlopen

from services.patcher.constants import (
    MACOS_MANIFEST_URL,
    WINDOWS_PACKAGE_TEMPLATE,
    WINDOWS_RELEASES_URL,
)
from services.patcher.models import NetworkError, NoSupportedVersionAvailable, ReleaseDescriptor
from services.patcher.versioning import sort_versions_descending


_LOGGER = logging.getLogger(__name__)


class AvailableReleases(Protocol):
    """Snapshot of what a release source currently distributes."""

    def url_for(self, version: str) -> str | None:
        """Return the download URL of ``version`` or ``None`` when unavailable."""


class ReleaseSource(Protocol):
    """Protocol describing remote release listings."""

    def fetch(self) -> AvailableReleases:
        """Download the listing; raise :class:`NetworkError` when unreachable."""


@dataclass(frozen=True)
class ReleaseIndexListing:
    """Plain-text index naming every distributed package file."""

    text: str
    index_url: str
    filename_template: str = WINDOWS_PACKAGE_TEMPLATE

    def url_for(self, version: str) -> str | None:
        filename = self.filename_template.format(version=version)
        if filename not in self.text:
            return None
        base, _, _ = self.index_url.rpartition("/")
        return f"{base}/{filename}"


@dataclass(frozen=True)
class ReleaseManifestListing:
    """JSON manifest mapping versions to their download URLs."""

    urls: Mapping[str, str] = field(default_factory=dict)
    current_release: str | None = None

    def url_for(self, version: str) -> str | None:
        return self.urls.get(version)


class ReleaseIndexSource:
    """Fetch the Windows ``RELEASES`` index."""

    def __init__(
        self,
        index_url: str = WINDOWS_RELEASES_URL,
        *,
        filename_template: str = WINDOWS_PACKAGE_TEMPLATE,
    ) -> None:
        self._index_url = index_url
        self._filename_template = filename_template

    def fetch(self) -> ReleaseIndexListing:
        _LOGGER.debug("Fetching release index %s", self._index_url)
        try:
            with urlopen(self._index_url) as response:  # nosec - vendor index over HTTPS
                raw = response.read()
        except (OSError, URLError) as exc:
            raise NetworkError(f"Failed to fetch release index: {exc}") from exc
        text = raw.decode("utf-8", errors="replace")
        return ReleaseIndexListing(text, self._index_url, self._filename_template)


class ReleaseManifestSource:
    """Fetch the macOS update manifest."""

    def __init__(self, manifest_url: str = MACOS_MANIFEST_URL) -> None:
        self._manifest_url = manifest_url

    def fetch(self) -> ReleaseManifestListing:
        _LOGGER.debug("Fetching release manifest %s", self._manifest_url)
        try:
            with urlopen(self._manifest_url) as response:  # nosec - vendor manifest over HTTPS
                payload = json.load(response)
        except (OSError, URLError) as exc:
            raise NetworkError(f"Failed to fetch release manifest: {exc}") from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise NetworkError(f"Failed to parse release manifest: {exc}") from exc
        if not isinstance(payload, dict):
            raise NetworkError("Release manifest was not a JSON object")
        return ReleaseManifestListing(
            _collect_release_urls(payload.get("releases")),
            _clean_text(payload.get("currentRelease")),
        )


def resolve_latest_supported(
    supported_versions: Iterable[str], source: ReleaseSource
) -> ReleaseDescriptor:
    """Return the newest supported version that ``source`` currently offers."""

    ordered = sort_versions_descending(supported_versions)
    if not ordered:
        raise NoSupportedVersionAvailable("No supported versions are configured")

    available = source.fetch()
    for version in ordered:
        url = available.url_for(version)
        if url:
            _LOGGER.info("Newest supported version: %s", version)
            _LOGGER.debug("Release %s download URL: %s", version, url)
            return ReleaseDescriptor(version=version, download_url=url)
        _LOGGER.debug("Supported version %s is not currently distributed", version)

    raise NoSupportedVersionAvailable(
        "None of the supported versions is available: " + ", ".join(ordered)
    )


def _collect_release_urls(releases: object) -> dict[str, str]:
    urls: dict[str, str] = {}
    if not isinstance(releases, list):
        return urls
    for entry in releases:
        if not isinstance(entry, dict):
            continue
        version = _clean_text(entry.get("version"))
        update_to = entry.get("updateTo")
        url = _clean_text(update_to.get("url")) if isinstance(update_to, dict) else None
        if version and url:
            urls[version] = url
    return urls


def _clean_text(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip()
    return cleaned or None


__all__ = [
    "AvailableReleases",
    "ReleaseIndexListing",
    "ReleaseIndexSource",
    "ReleaseManifestListing",
    "ReleaseManifestSource",
    "ReleaseSource",
    "resolve_latest_supported",
]
