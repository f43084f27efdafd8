"""Bundler backends. The default backend drives the rollup CLI."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..errors import BundleError
from .cache import CacheEntry
from .targets import BundleFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PluginSpec:
    name: str
    options: Optional[object] = None

    def to_cli(self) -> str:
        if self.options is None:
            return self.name
        return f"{self.name}={json.dumps(self.options)}"


@dataclass(frozen=True)
class BundleOptions:
    """Everything the bundler needs to produce one artifact."""

    filename: str
    format: BundleFormat
    entries: Tuple[Path, ...]
    cwd: Path
    name: str = "createjs"
    plugins: Tuple[PluginSpec, ...] = ()
    external: Tuple[str, ...] = ()
    globals: Mapping[str, str] = field(default_factory=dict)
    banner: str = ""
    outro: str = ""
    sourcemap: bool = False
    exports: str = "named"
    extend: bool = True

    @property
    def source_dirs(self) -> List[Path]:
        return sorted({entry.parent for entry in self.entries})

    def digest(self) -> str:
        payload = {
            "filename": self.filename,
            "format": self.format.value,
            "entries": [str(entry) for entry in self.entries],
            "name": self.name,
            "plugins": [plugin.to_cli() for plugin in self.plugins],
            "external": list(self.external),
            "globals": dict(self.globals),
            "banner": self.banner,
            "outro": self.outro,
            "sourcemap": self.sourcemap,
            "exports": self.exports,
            "extend": self.extend,
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class BundleOutput:
    code: str
    map: Optional[str]
    cache: CacheEntry
    reused: bool = False


class Bundler(Protocol):
    name: str

    async def bundle(self, options: BundleOptions, cache: Optional[CacheEntry]) -> BundleOutput:  # pragma: no cover - interface
        ...


def fingerprint_sources(directories: Iterable[Path]) -> Dict[str, Tuple[int, int]]:
    """Map every ``.js`` file below ``directories`` to ``(mtime_ns, size)``."""

    fingerprint: Dict[str, Tuple[int, int]] = {}
    for directory in directories:
        if not directory.is_dir():
            continue
        for path in sorted(directory.rglob("*.js")):
            stat = path.stat()
            fingerprint[str(path)] = (stat.st_mtime_ns, stat.st_size)
    return fingerprint


class RollupBundler:
    """Runs ``rollup`` as a subprocess.

    The cache entry from the previous build is used as a hint: when neither
    the sources nor the options changed the previous output is returned
    without spawning rollup.
    """

    name = "rollup"

    def __init__(self, command: Sequence[str] = ("npx", "rollup")) -> None:
        self.command = list(command)

    def build_command(self, options: BundleOptions, output_path: Path) -> List[str]:
        command = list(self.command)
        for entry in options.entries:
            command.extend(["--input", str(entry)])
        for plugin in options.plugins:
            command.extend(["--plugin", plugin.to_cli()])
        command.extend(
            [
                "--format",
                options.format.rollup_format,
                "--name",
                options.name,
                "--exports",
                options.exports,
                "--file",
                str(output_path),
            ]
        )
        if options.extend:
            command.append("--extend")
        if options.external:
            command.extend(["--external", ",".join(options.external)])
        if options.globals:
            command.extend(["--globals", ",".join(f"{key}:{value}" for key, value in options.globals.items())])
        if options.banner:
            command.extend(["--banner", options.banner])
        if options.outro:
            command.extend(["--outro", options.outro])
        if options.sourcemap:
            command.append("--sourcemap")
        command.append("--silent")
        return command

    async def bundle(self, options: BundleOptions, cache: Optional[CacheEntry]) -> BundleOutput:
        fingerprint = fingerprint_sources(options.source_dirs)
        digest = options.digest()
        if cache is not None and cache.options_digest == digest and dict(cache.fingerprint) == fingerprint:
            logger.debug("Sources unchanged for %s; reusing previous bundle.", options.filename)
            return BundleOutput(code=cache.code, map=cache.map, cache=cache, reused=True)

        with tempfile.TemporaryDirectory(prefix="createjs-build-") as tmp_dir:
            output_path = Path(tmp_dir) / options.filename
            command = self.build_command(options, output_path)
            logger.debug("Running %s", " ".join(command))
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=str(options.cwd),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
            except OSError as exc:
                raise BundleError(options.filename, f"could not start {command[0]}: {exc}") from exc
            stdout, _ = await process.communicate()
            output = stdout.decode("utf-8", errors="replace").strip()
            if process.returncode != 0:
                raise BundleError(options.filename, f"rollup failed ({process.returncode}): {output or 'no output'}")
            if not output_path.exists():
                raise BundleError(options.filename, "rollup reported success but wrote no output")

            code = output_path.read_text(encoding="utf-8")
            map_path = output_path.with_name(f"{output_path.name}.map")
            source_map = map_path.read_text(encoding="utf-8") if map_path.exists() else None

        entry = CacheEntry(fingerprint=fingerprint, options_digest=digest, code=code, map=source_map)
        return BundleOutput(code=code, map=source_map, cache=entry)
