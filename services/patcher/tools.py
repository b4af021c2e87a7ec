"""Wrappers around the external packer, reformatter and hashing helpers."""

from __future__ import annotations

import hashlib
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from services.patcher.models import ExternalToolFailure


_LOGGER = logging.getLogger(__name__)

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ExternalTool:
    """Run a configured command and capture its combined output."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        runner: CommandRunner = subprocess.run,
        timeout: float | None = None,
    ) -> None:
        if not command:
            raise ValueError("External tool command must not be empty")
        self._command = tuple(command)
        self._runner = runner
        self._timeout = timeout

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    def argv(self, *arguments: str) -> list[str]:
        executable, *rest = self._command
        if executable.lower().endswith(".ps1"):
            # npm installs PowerShell shims on Windows.
            return [
                "powershell",
                "-ExecutionPolicy",
                "Bypass",
                "-File",
                executable,
                *rest,
                *arguments,
            ]
        return [executable, *rest, *arguments]

    def run(self, *arguments: str, check: bool = True) -> ToolResult:
        argv = self.argv(*arguments)
        _LOGGER.debug("Running command: %s", argv)
        try:
            completed = self._runner(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise ExternalToolFailure(
                f"Command not found: {argv[0]}", command=argv
            ) from exc
        except subprocess.TimeoutExpired as exc:
            output = _decode_output(exc.output)
            raise ExternalToolFailure(
                f"Command timed out after {exc.timeout}s: {argv[0]}",
                command=argv,
                output=output,
            ) from exc
        except OSError as exc:
            raise ExternalToolFailure(f"Could not run {argv[0]}: {exc}", command=argv) from exc

        result = ToolResult(completed.returncode, _decode_output(completed.stdout))
        if check and not result.ok:
            raise ExternalToolFailure(
                f"Command {argv[0]} exited with status {result.returncode}",
                command=argv,
                returncode=result.returncode,
                output=result.output,
            )
        return result


class AsarPacker:
    """Unpack and repack the application container."""

    def __init__(self, tool: ExternalTool) -> None:
        self._tool = tool

    def extract(self, container: Path, directory: Path) -> None:
        _LOGGER.info("Unpacking %s", container.name)
        self._tool.run("extract", str(container), str(directory))

    def pack(self, directory: Path, container: Path) -> None:
        _LOGGER.info("Repacking %s", container.name)
        self._tool.run("pack", str(directory), str(container))


class Reformatter:
    """Format a JavaScript file in place; failures are reported, not raised."""

    def __init__(self, tool: ExternalTool) -> None:
        self._tool = tool

    def format_in_place(self, path: Path) -> bool:
        try:
            self._tool.run(str(path), "-o", str(path))
        except ExternalToolFailure as exc:
            _LOGGER.warning("Could not beautify %s: %s", path.name, exc)
            return False
        return True


_HEADER_HASH_SCRIPT = """\
const crypto = require('node:crypto');
const { createRequire } = require('node:module');
const [archive, modules, algorithm] = process.argv.slice(1);
const req = createRequire(modules.endsWith('/') ? modules : modules + '/');
let asar;
try { asar = req('@electron/asar'); } catch (_) { asar = req('asar'); }
try {
  const result = asar.getRawHeader(archive);
  const raw = (result && result.headerString) ? result.headerString : result;
  const data = typeof raw === 'string' ? Buffer.from(raw) : raw;
  process.stdout.write(crypto.createHash(algorithm).update(data).digest('hex'));
} catch (e) {
  console.error('ERR:' + e.message);
  process.exit(1);
}
"""


class AsarHeaderHasher:
    """Hash the container header with the same asar library that wrote it."""

    def __init__(self, node: ExternalTool, modules_dir: Path) -> None:
        self._node = node
        self._modules_dir = modules_dir

    def digest(self, container: Path, algorithm: str = "sha256") -> bytes:
        if not self._modules_dir.is_dir():
            raise ExternalToolFailure(
                f"node_modules not found at {self._modules_dir}; ensure tools are installed"
            )
        result = self._node.run(
            "-e",
            _HEADER_HASH_SCRIPT,
            str(container),
            str(self._modules_dir),
            normalise_algorithm(algorithm),
        )
        text = result.output.strip()
        try:
            return bytes.fromhex(text)
        except ValueError as exc:
            raise ExternalToolFailure(
                "Header hash helper returned an invalid digest", output=text
            ) from exc


def normalise_algorithm(algorithm: str) -> str:
    """Map manifest names such as ``SHA256`` onto :mod:`hashlib` names."""

    lowered = algorithm.strip().lower().replace("-", "")
    if "256" in lowered:
        return "sha256"
    return "sha512"


def file_digest(path: Path, algorithm: str = "sha256") -> bytes:
    digest = hashlib.new(normalise_algorithm(algorithm))
    with path.open("rb") as source:
        for chunk in iter(lambda: source.read(65536), b""):
            digest.update(chunk)
    return digest.digest()


def _decode_output(raw: object) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)


__all__ = [
    "AsarHeaderHasher",
    "AsarPacker",
    "CommandRunner",
    "ExternalTool",
    "Reformatter",
    "ToolResult",
    "file_digest",
    "normalise_algorithm",
]
