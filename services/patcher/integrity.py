"""Resynchronise the container hash the host application checks at startup.

Two discovery strategies exist. On Windows the executable is launched while
its embedded hash is stale and the ``(<expected> vs <actual>)`` pair is read
from the integrity error it prints. On macOS the ``ElectronAsarIntegrity``
entry of ``Info.plist`` supplies the expected value and the new value is
computed locally, over the container header by default, and encoded like the
expected one so a literal search-and-replace finds it.
"""

from __future__ import annotations

import base64
import logging
import os
import re
from pathlib import Path
from typing import Callable, Protocol

from services.patcher import constants
from services.patcher.models import ExternalToolFailure, HashNotFound, IntegrityPair
from services.patcher.platforms import InstallLayout
from services.patcher.tools import AsarHeaderHasher, ExternalTool, file_digest


_LOGGER = logging.getLogger(__name__)

SCOPE_HEADER = "header"
SCOPE_FILE = "file"

_MANIFEST_WINDOW_BEFORE = 200
_MANIFEST_WINDOW_AFTER = 1200
_HEX_DIGEST = re.compile(r"^[A-Fa-f0-9]{64,128}$")
_HASH_TEXT = re.compile(r"^[A-Za-z0-9+/=]+$")

_ALGORITHM_JSON = re.compile(r'(?i)"algorithm"\s*:\s*"([^"]+)"')
_HASH_JSON = re.compile(r'(?i)"hash"\s*:\s*"([A-Za-z0-9+/=]+)"')
_ALGORITHM_XML = re.compile(r"(?i)<key>\s*algorithm\s*</key>\s*<string>\s*([^<]+?)\s*</string>")
_HASH_XML = re.compile(r"(?i)<key>\s*hash\s*</key>\s*<string>\s*([^<]+?)\s*</string>")

DEFAULT_ALGORITHM = "SHA256"


class IntegrityProbe(Protocol):
    """Strategy for discovering the stale and the fresh container hash."""

    def discover(self) -> IntegrityPair:
        """Return the hash pair or raise :class:`HashNotFound`."""


def parse_integrity_failure(output: str) -> IntegrityPair:
    """Extract ``(expected vs actual)`` from an integrity error message."""

    marker = output.find(constants.INTEGRITY_FAILURE_MARKER)
    if marker == -1:
        raise HashNotFound("Could not parse hash mismatch: no integrity failure reported")
    start = output.find("(", marker)
    end = output.find(")", start + 1) if start != -1 else -1
    if start == -1 or end == -1:
        raise HashNotFound("Could not parse hash mismatch: no hash pair in output")
    parts = output[start + 1 : end].split(" vs ")
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise HashNotFound("Could not parse hash mismatch: malformed hash pair")
    expected, actual = (part.strip() for part in parts)
    return IntegrityPair(expected=expected, actual=actual)


class RuntimeIntegrityProbe:
    """Launch the executable and read the hash pair from its error output."""

    def __init__(self, executable: ExternalTool) -> None:
        self._executable = executable

    def discover(self) -> IntegrityPair:
        _LOGGER.info("Capturing hash mismatch from %s", self._executable.command[0])
        try:
            result = self._executable.run(check=False)
        except ExternalToolFailure as exc:
            output = exc.output
            if not output:
                raise HashNotFound(f"Could not capture hash mismatch: {exc}") from exc
        else:
            output = result.output
        return parse_integrity_failure(output)


def parse_integrity_manifest(text: str) -> tuple[str, str]:
    """Return ``(algorithm, hash)`` from the text around the integrity key.

    Accepts a JSON-like ``"hash": "..."`` fragment or an XML property list
    ``<key>hash</key><string>...</string>`` pair. Only a bounded window of
    text around the key is searched.
    """

    lowered = text.lower()
    index = lowered.find("asarintegrity")
    if index == -1:
        raise HashNotFound("Asar integrity entry not found in manifest")
    window = text[
        max(0, index - _MANIFEST_WINDOW_BEFORE) : index + _MANIFEST_WINDOW_AFTER
    ]

    algorithm: str | None = None
    expected: str | None = None
    match = _ALGORITHM_JSON.search(window)
    if match:
        algorithm = match.group(1)
    match = _HASH_JSON.search(window)
    if match:
        expected = match.group(1)

    if expected is None:
        match = _ALGORITHM_XML.search(window)
        if match:
            algorithm = match.group(1).strip()
        match = _HASH_XML.search(window)
        if match:
            expected = match.group(1).strip()

    if not expected:
        raise HashNotFound("Could not locate expected asar hash in manifest")
    if not _HASH_TEXT.match(expected):
        raise HashNotFound("Expected asar hash in manifest is not hex or base64 text")
    return algorithm or DEFAULT_ALGORITHM, expected


def encode_to_match(exemplar: str, digest: bytes) -> str:
    """Encode ``digest`` as hex or base64, whichever ``exemplar`` uses."""

    if _HEX_DIGEST.match(exemplar):
        return digest.hex()
    return base64.b64encode(digest).decode("ascii")


class ManifestIntegrityProbe:
    """Read the expected hash from ``Info.plist`` and compute the fresh one."""

    def __init__(
        self,
        manifest: Path,
        container: Path,
        *,
        scope: str = SCOPE_HEADER,
        header_hasher: AsarHeaderHasher | None = None,
        digest_file: Callable[[Path, str], bytes] = file_digest,
    ) -> None:
        if scope == SCOPE_HEADER and header_hasher is None:
            raise ValueError("Header-scoped integrity requires a header hasher")
        self._manifest = manifest
        self._container = container
        self._scope = scope
        self._header_hasher = header_hasher
        self._digest_file = digest_file

    def discover(self) -> IntegrityPair:
        try:
            text = self._manifest.read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            raise HashNotFound(f"Could not read {self._manifest.name}: {exc}") from exc
        algorithm, expected = parse_integrity_manifest(text)
        digest = self.compute(algorithm)
        return IntegrityPair(expected=expected, actual=encode_to_match(expected, digest))

    def compute(self, algorithm: str) -> bytes:
        if self._scope == SCOPE_FILE:
            return self._digest_file(self._container, algorithm)
        assert self._header_hasher is not None
        return self._header_hasher.digest(self._container, algorithm)


def replace_hash_in_executable(executable: Path, pair: IntegrityPair) -> int:
    """Replace exactly one occurrence of the stale hash inside ``executable``."""

    data = executable.read_bytes()
    old = pair.expected.encode("ascii")
    new = pair.actual.encode("ascii")
    replaced = data.replace(old, new, 1)
    if replaced == data:
        raise HashNotFound(f"Hash not found in {executable.name}")
    mode = executable.stat().st_mode
    executable.write_bytes(replaced)
    os.chmod(executable, mode)
    _LOGGER.info("Updated integrity hash in %s", executable.name)
    return 1


def replace_hash_in_manifests(contents_root: Path, pair: IntegrityPair) -> int:
    """Rewrite the hash in every ``Info.plist`` that guards the app container."""

    old = pair.expected.encode("ascii")
    new = pair.actual.encode("ascii")
    key = constants.INTEGRITY_MANIFEST_KEY.encode("ascii")
    reference = constants.INTEGRITY_CONTAINER_REFERENCE.encode("ascii")
    updated = 0
    for path in sorted(contents_root.rglob("Info.plist")):
        if path.is_symlink() or not path.is_file():
            continue
        try:
            data = path.read_bytes()
        except OSError:
            continue
        if key not in data or reference not in data or old not in data:
            continue
        try:
            path.write_bytes(data.replace(old, new))
        except OSError as exc:
            _LOGGER.warning("Failed updating %s: %s", path, exc)
            continue
        _LOGGER.info("Updated asar integrity hash in %s", path)
        updated += 1
    if updated == 0:
        raise HashNotFound("Hash not found in any Info.plist files")
    return updated


class IntegrityReconciler:
    """Discover the hash pair and write the fresh hash where the host reads it."""

    def __init__(self, layout: InstallLayout, probe: IntegrityProbe) -> None:
        self._layout = layout
        self._probe = probe

    def reconcile(self) -> IntegrityPair:
        pair = self._probe.discover()
        _LOGGER.info("Expected hash: %s", pair.expected)
        _LOGGER.info("Actual hash: %s", pair.actual)
        if pair.in_sync:
            _LOGGER.info("Integrity hash already matches the container")
            return pair
        if self._layout.is_macos:
            assert self._layout.bundle is not None
            replace_hash_in_manifests(self._layout.bundle / "Contents", pair)
        else:
            replace_hash_in_executable(self._layout.executable, pair)
        return pair


__all__ = [
    "IntegrityProbe",
    "IntegrityReconciler",
    "ManifestIntegrityProbe",
    "RuntimeIntegrityProbe",
    "SCOPE_FILE",
    "SCOPE_HEADER",
    "encode_to_match",
    "parse_integrity_failure",
    "parse_integrity_manifest",
    "replace_hash_in_executable",
    "replace_hash_in_manifests",
]
