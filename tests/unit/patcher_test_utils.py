from __future__ import annotations

import io
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZipFile

from services.patcher.models import ReleaseDescriptor
from services.patcher.providers import ReleaseManifestListing

OLD_HASH = "a" * 64
NEW_HASH = "b" * 64

WINDOW_JS = (
    'const ue = require("electron");\n'
    'gX = ["devtools:", "file:"];\n'
    "function createWindow() {\n"
    "  const e = new ue.BrowserWindow({}), r = e.webContents;\n"
    '  return a(), i(), e.on("resize", () => {}), e;\n'
    "}\n"
)

INTEGRITY_OUTPUT = (
    "[1234:ERROR] Integrity check failed for asar archive "
    f"({OLD_HASH} vs {NEW_HASH})\n"
)


class FakeResponse(io.BytesIO):
    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def write_zip(path: Path, entries: dict[str, bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with ZipFile(path, "w", compression=ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return path


def read_zip(path: Path) -> dict[str, bytes]:
    with ZipFile(path) as archive:
        return {name: archive.read(name) for name in archive.namelist() if not name.endswith("/")}


def build_windows_package(
    tmp_path: Path,
    *,
    container_files: dict[str, bytes] | None = None,
    executable: bytes | None = None,
) -> bytes:
    """Return the bytes of a ``.nupkg`` whose app container is a zip file."""

    container = write_zip(
        tmp_path / "build" / "app.asar",
        container_files or {".vite/build/index-BZRfNpEg.js": WINDOW_JS.encode("utf-8")},
    )
    buffer = io.BytesIO()
    with ZipFile(buffer, "w", compression=ZIP_DEFLATED) as archive:
        archive.writestr("[Content_Types].xml", b"<Types/>")
        archive.writestr("lib/net45/", b"")
        archive.writestr("lib/net45/resources/", b"")
        archive.writestr(
            "lib/net45/claude.exe",
            executable or b"MZ" + b"\x00" * 128 + OLD_HASH.encode("ascii") + b"\x00" * 64,
        )
        archive.writestr("lib/net45/resources/app.asar", container.read_bytes())
    return buffer.getvalue()


@dataclass
class StaticReleaseSource:
    urls: dict[str, str]
    fetches: int = 0

    def fetch(self) -> ReleaseManifestListing:
        self.fetches += 1
        return ReleaseManifestListing(dict(self.urls))


@dataclass
class FailingReleaseSource:
    error: Exception

    def fetch(self) -> ReleaseManifestListing:
        raise self.error


def release(version: str = "0.12.55") -> ReleaseDescriptor:
    return ReleaseDescriptor(version, f"https://example.invalid/{version}.nupkg")


@dataclass
class FakeToolRunner:
    """Stand-in for :func:`subprocess.run` emulating the external helpers.

    The container tool treats ``app.asar`` as a zip file, the reformatter
    appends a newline, and any other command echoes ``outputs[argv[0]]``.
    """

    outputs: dict[str, str] = field(default_factory=dict)
    failing: set[str] = field(default_factory=set)
    missing: set[str] = field(default_factory=set)
    calls: list[list[str]] = field(default_factory=list)

    def __call__(self, argv, **kwargs) -> subprocess.CompletedProcess:
        argv = list(argv)
        self.calls.append(argv)
        program = argv[0]
        if program in self.missing:
            raise FileNotFoundError(program)
        if program == "asar":
            return self._asar(argv)
        if program == "js-beautify":
            return self._beautify(argv)
        returncode = 1 if program in self.failing else 0
        return subprocess.CompletedProcess(argv, returncode, stdout=self.outputs.get(program, ""))

    def commands(self, program: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == program]

    def _asar(self, argv: list[str]) -> subprocess.CompletedProcess:
        action = argv[1]
        if action == "extract":
            container, directory = Path(argv[2]), Path(argv[3])
            with ZipFile(container) as archive:
                archive.extractall(directory)
            return subprocess.CompletedProcess(argv, 0, stdout="")
        if action == "pack":
            directory, container = Path(argv[2]), Path(argv[3])
            if "asar pack" in self.failing:
                container.write_bytes(b"partial")
                return subprocess.CompletedProcess(argv, 1, stdout="pack failed")
            with ZipFile(container, "w", compression=ZIP_DEFLATED) as archive:
                for path in sorted(directory.rglob("*")):
                    if path.is_file():
                        archive.write(path, path.relative_to(directory).as_posix())
            return subprocess.CompletedProcess(argv, 0, stdout="")
        return subprocess.CompletedProcess(argv, 2, stdout=f"unknown action {action}")

    def _beautify(self, argv: list[str]) -> subprocess.CompletedProcess:
        if "js-beautify" in self.failing:
            return subprocess.CompletedProcess(argv, 1, stdout="beautify failed")
        source, target = Path(argv[1]), Path(argv[3])
        target.write_bytes(source.read_bytes() + b"\n")
        return subprocess.CompletedProcess(argv, 0, stdout="")


__all__ = [
    "FailingReleaseSource",
    "FakeResponse",
    "FakeToolRunner",
    "INTEGRITY_OUTPUT",
    "NEW_HASH",
    "OLD_HASH",
    "StaticReleaseSource",
    "WINDOW_JS",
    "build_windows_package",
    "read_zip",
    "release",
    "write_zip",
]
