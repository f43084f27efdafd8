"""Bundle orchestration: options, bundler call, post-processing and output."""

from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import EffectiveConfig
from ..errors import BundleError
from ..naming import build_filename, to_display_name
from ..schemas.settings import BeautifySettings, PackageManifest, RollupSettings, SourceMapSettings
from .banner import render_banner, strip_dedupe_suffixes, substitute_version, version_export
from .cache import BundleCache
from .comments import CommentScanError
from .entries import EntrySelection, LibrarySet, select_combined_entries, select_single_entry
from .minify import minify, reformat
from .rollup import BundleOptions, Bundler, PluginSpec
from .sourcemap import SourceMapError, remap_source_map
from .targets import BuildTarget, BundleFormat, Channel

logger = logging.getLogger(__name__)

COMBINED_LIBRARY_NAME = "createjs"
NEXT_VERSION = "NEXT"

_SOURCEMAP_URL_RE = re.compile(r"^//# sourceMappingURL=.*$\n?", re.MULTILINE)


@dataclass(slots=True)
class BundleResult:
    target: BuildTarget
    path: Path
    map_path: Optional[Path] = None
    included: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    reused_cache: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "target": self.target.slug,
            "path": str(self.path),
            "map_path": str(self.map_path) if self.map_path else None,
            "included": list(self.included),
            "missing": list(self.missing),
            "reused_cache": self.reused_cache,
        }


def resolve_version(package: PackageManifest, channel: Channel) -> str:
    return NEXT_VERSION if channel is Channel.NEXT else package.version


def select_plugins(fmt: BundleFormat, rollup: RollupSettings, *, combined: bool) -> tuple[PluginSpec, ...]:
    """Module bundles skip the babel transform; its consumers run modern syntax."""

    plugins = [PluginSpec(rollup.multi_entry_plugin)]
    if combined and rollup.force_binding:
        # force-binding must precede node-resolve to stop duplicate bindings
        plugins.append(PluginSpec(rollup.force_binding_plugin, list(rollup.force_binding)))
    plugins.append(PluginSpec(rollup.resolve_plugin))
    if fmt.transpiled:
        plugins.append(PluginSpec(rollup.transpile_plugin))
    return tuple(plugins)


async def produce_bundle(
    target: BuildTarget,
    libraries: LibrarySet,
    config: EffectiveConfig,
    *,
    package: PackageManifest,
    workspace_root: Path,
    output_dir: Path,
    cache: BundleCache,
    bundler: Bundler,
    combined: bool = False,
) -> BundleResult:
    """Build one target and write it to ``output_dir``.

    The cache entry for the target's filename is handed to the bundler and
    only replaced once the bundler returns. Any bundler or post-processing
    failure raises :class:`BundleError` for this target alone.
    """

    version = resolve_version(package, target.channel)
    library_name = COMBINED_LIBRARY_NAME if combined else package.library_id
    filename = target.filename(library_name)
    rollup = config.section("rollup", RollupSettings)

    selection = _select_entries(libraries, workspace_root, package.library_id, version, combined=combined)
    if not selection.entries:
        raise BundleError(filename, "no entry points to bundle")
    if not combined and not selection.entries[0].is_file():
        raise BundleError(filename, f"entry file '{selection.entries[0]}' not found")

    options = BundleOptions(
        filename=filename,
        format=target.format,
        entries=tuple(selection.entries),
        cwd=workspace_root,
        name=rollup.name,
        plugins=select_plugins(target.format, rollup, combined=combined),
        # cross-library imports stay external for individual bundles
        external=() if combined else tuple(rollup.globals),
        globals={} if combined else dict(rollup.globals),
        banner=render_banner(minified=target.minified, name=to_display_name(library_name), version=version),
        outro=version_export(selection.versions, rollup.name),
        sourcemap=not target.minified,
    )

    logger.info("Bundling %s (%s)", filename, ", ".join(to_display_name(lib) for lib in selection.included))
    output = await bundler.bundle(options, cache.get(filename))
    cache.put(filename, output.cache)

    code = _post_process(output.code, target, config, filename=filename, version=version)
    map_path = None
    if options.sourcemap and output.map:
        try:
            source_map = remap_source_map(output.map, output.code, code)
        except SourceMapError as exc:
            raise BundleError(filename, f"could not remap source map: {exc}") from exc
        code, map_path = _attach_sourcemap(code, source_map, output_dir, filename, config.section("sourcemaps", SourceMapSettings))

    output_dir.mkdir(parents=True, exist_ok=True)
    artifact = output_dir / filename
    artifact.write_text(code, encoding="utf-8")
    logger.info("Wrote %s", artifact)
    return BundleResult(
        target=target,
        path=artifact,
        map_path=map_path,
        included=list(selection.included),
        missing=list(selection.missing),
        reused_cache=output.reused,
    )


def _select_entries(
    libraries: LibrarySet,
    workspace_root: Path,
    library_id: str,
    version: str,
    *,
    combined: bool,
) -> EntrySelection:
    if combined:
        return select_combined_entries(libraries)
    return select_single_entry(workspace_root, library_id, version)


def _post_process(code: str, target: BuildTarget, config: EffectiveConfig, *, filename: str, version: str) -> str:
    code = _SOURCEMAP_URL_RE.sub("", code)
    try:
        # module bundles are never minified or reformatted
        if target.minified:
            code = minify(code)
        elif target.format.transpiled:
            code = reformat(code, config.section("beautify", BeautifySettings))
    except CommentScanError as exc:
        raise BundleError(filename, f"could not scan bundled output: {exc}") from exc
    code = substitute_version(code, version)
    return strip_dedupe_suffixes(code)


def _attach_sourcemap(
    code: str,
    source_map: str,
    output_dir: Path,
    filename: str,
    settings: SourceMapSettings,
) -> tuple[str, Optional[Path]]:
    if not code.endswith("\n"):
        code += "\n"
    if settings.inline:
        encoded = base64.b64encode(source_map.encode("utf-8")).decode("ascii")
        return f"{code}//# sourceMappingURL=data:application/json;charset=utf-8;base64,{encoded}\n", None

    map_path = output_dir / settings.directory / f"{filename}.map"
    map_path.parent.mkdir(parents=True, exist_ok=True)
    map_path.write_text(source_map, encoding="utf-8")
    relative = Path(settings.directory) / map_path.name
    return f"{code}//# sourceMappingURL={relative.as_posix()}\n", map_path


async def compile_plugins(
    *,
    workspace_root: Path,
    output_dir: Path,
    formats: Sequence[BundleFormat],
    channel: Channel,
    version: str,
    config: EffectiveConfig,
    cache: BundleCache,
    bundler: Bundler,
    only: Optional[Sequence[str]] = None,
) -> List[Path]:
    """Compile ``src/plugins/*.js`` for every transpiled format.

    There is no ES module plugin build; the source file already is one.
    """

    plugins_dir = workspace_root / "src" / "plugins"
    if not plugins_dir.is_dir():
        logger.warning("No plugins found in %s.", plugins_dir)
        return []

    plugin_files = sorted(plugins_dir.glob("*.js"))
    if only:
        plugin_files = [path for path in plugin_files if path.stem in set(only)]
    rollup = config.section("rollup", RollupSettings)
    destination = output_dir / "plugins"
    written: List[Path] = []
    for fmt in formats:
        if not fmt.transpiled:
            continue
        for plugin in plugin_files:
            filename = build_filename(plugin.stem, channel.value, fmt.suffix, False)
            options = BundleOptions(
                filename=filename,
                format=fmt,
                entries=(plugin,),
                cwd=workspace_root,
                name=rollup.name,
                plugins=(PluginSpec(rollup.transpile_plugin),),
                banner=render_banner(minified=False, name=filename, version=version),
            )
            cache_key = f"plugins/{filename}"
            output = await bundler.bundle(options, cache.get(cache_key))
            cache.put(cache_key, output.cache)
            destination.mkdir(parents=True, exist_ok=True)
            path = destination / filename
            path.write_text(output.code, encoding="utf-8")
            written.append(path)
            logger.info("Wrote plugin %s", path)
    return written
