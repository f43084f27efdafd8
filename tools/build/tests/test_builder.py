from __future__ import annotations

import asyncio
import base64
import json
import logging
from pathlib import Path

import pytest

from createjs_build.bundle.builder import compile_plugins, produce_bundle, resolve_version, select_plugins
from createjs_build.bundle.cache import BundleCache
from createjs_build.bundle.entries import LibrarySet, read_package_version
from createjs_build.bundle.sourcemap import decode_mappings, original_position
from createjs_build.bundle.targets import BuildTarget, BundleFormat, Channel
from createjs_build.config import DEFAULT_BASE_CONFIG, EffectiveConfig, resolve_config
from createjs_build.errors import BundleError, ConfigError
from createjs_build.schemas.settings import LibrarySettings, PackageManifest, RollupSettings

from conftest import ENTRY_SOURCE, FakeBundler, write_library

EASEL = PackageManifest(name="@createjs/easeljs", version="1.2.0")


@pytest.fixture()
def config() -> EffectiveConfig:
    return resolve_config(DEFAULT_BASE_CONFIG, None)


def _build(target: BuildTarget, workspace: Path, config: EffectiveConfig, bundler, cache=None, **kwargs):
    package = kwargs.pop("package", EASEL)
    return asyncio.run(
        produce_bundle(
            target,
            LibrarySet.from_settings(LibrarySettings(), workspace),
            config,
            package=package,
            workspace_root=workspace,
            output_dir=workspace / "dist",
            cache=cache if cache is not None else BundleCache(),
            bundler=bundler,
            **kwargs,
        )
    )


def test_module_bundle_is_left_readable(workspace: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    result = _build(BuildTarget(BundleFormat.MODULE), workspace, config, fake_bundler)

    assert result.path == workspace / "dist" / "easeljs.module.js"
    code = result.path.read_text(encoding="utf-8")
    assert "Documentation block for Stage." in code
    assert 'var VERSION = "1.2.0";' in code
    assert "var Stage = Stage;" in code
    assert "Stage$1" not in code
    assert 'cjs.EaselJS.version = "1.2.0";' in code
    options, _ = fake_bundler.calls[0]
    assert options.external == tuple(RollupSettings.model_validate(config["rollup"]).globals)
    assert [plugin.name for plugin in options.plugins] == ["multi-entry", "node-resolve"]


def test_minified_global_keeps_only_license(workspace: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    result = _build(BuildTarget(BundleFormat.GLOBAL, minified=True), workspace, config, fake_bundler)

    assert result.path.name == "easeljs.min.js"
    assert result.map_path is None
    code = result.path.read_text(encoding="utf-8")
    assert code.startswith("/*!")
    assert "@license EaselJS" in code
    assert "Documentation block" not in code
    assert "third-party" not in code
    assert "sourceMappingURL" not in code
    assert '"1.2.0"' in code


def test_non_minified_global_writes_source_map(workspace: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    result = _build(BuildTarget(BundleFormat.GLOBAL), workspace, config, fake_bundler)

    assert result.map_path == workspace / "dist" / "maps" / "easeljs.js.map"
    assert json.loads(result.map_path.read_text(encoding="utf-8"))["file"] == "easeljs.js"
    code = result.path.read_text(encoding="utf-8")
    assert code.endswith("//# sourceMappingURL=maps/easeljs.js.map\n")
    assert "@license third-party MIT" in code
    assert "Copyright 2017 somebody" in code
    assert "Documentation block" not in code
    assert "plain note" not in code


def test_source_map_follows_reformatted_code(workspace: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    result = _build(BuildTarget(BundleFormat.GLOBAL), workspace, config, fake_bundler)

    written = json.loads(result.map_path.read_text(encoding="utf-8"))
    lines = decode_mappings(written["mappings"])
    code_lines = result.path.read_text(encoding="utf-8").splitlines()
    source_lines = ENTRY_SOURCE.splitlines()

    for statement, source_line in (("var helper = 1;", 4), ("var other = 2;", 6), ("var Stage = Stage;", 8)):
        generated = next(index for index, text in enumerate(code_lines) if statement in text)
        segment = original_position(lines, generated, code_lines[generated].index(statement))
        assert segment is not None
        assert segment[2] == source_line
        assert source_lines[segment[2]].startswith(statement.split(" =")[0])


def test_inline_source_map(workspace: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    inline = EffectiveConfig({**config, "sourcemaps": {"inline": True}})

    result = _build(BuildTarget(BundleFormat.COMMON, channel=Channel.NEXT), workspace, inline, fake_bundler)

    assert result.path.name == "easeljs-NEXT.common.js"
    assert result.map_path is None
    assert not (workspace / "dist" / "maps").exists()
    code = result.path.read_text(encoding="utf-8")
    prefix = "//# sourceMappingURL=data:application/json;charset=utf-8;base64,"
    encoded = code.rstrip("\n").rsplit(prefix, 1)[1]
    assert json.loads(base64.b64decode(encoded))["file"] == "easeljs-NEXT.common.js"
    assert 'var VERSION = "NEXT";' in code


def test_failed_build_keeps_previous_cache_entry(workspace: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    cache = BundleCache()
    target = BuildTarget(BundleFormat.GLOBAL)
    _build(target, workspace, config, fake_bundler, cache=cache)
    previous = cache.get("easeljs.js")
    assert previous is not None

    failing = FakeBundler(fail=True)
    with pytest.raises(BundleError) as excinfo:
        _build(target, workspace, config, failing, cache=cache)

    assert excinfo.value.filename == "easeljs.js"
    assert cache.get("easeljs.js") is previous
    assert failing.calls[0][1] is previous


def test_missing_entry_is_a_bundle_error(tmp_path: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    root = tmp_path / "easeljs"
    root.mkdir()
    with pytest.raises(BundleError):
        _build(BuildTarget(BundleFormat.MODULE), root, config, fake_bundler)
    assert fake_bundler.calls == []


def test_combined_bundle_skips_missing_siblings(
    tmp_path: Path,
    config: EffectiveConfig,
    fake_bundler: FakeBundler,
    caplog: pytest.LogCaptureFixture,
) -> None:
    cdn = write_library(tmp_path / "cdn", "cdn", "1.0.0")
    write_library(tmp_path / "core", "core", "1.0.0", source="var Event = {};\n")
    write_library(tmp_path / "tweenjs", "tweenjs", "1.0.1", source="var Tween = {};\n")
    write_library(tmp_path / "soundjs", "soundjs", "1.0.2", source="var Sound = {};\n")
    write_library(tmp_path / "preloadjs", "preloadjs", "1.0.3", source="var LoadQueue = {};\n")

    with caplog.at_level(logging.WARNING):
        result = _build(
            BuildTarget(BundleFormat.GLOBAL),
            cdn,
            config,
            fake_bundler,
            package=PackageManifest(name="@createjs/cdn", version="1.0.0"),
            combined=True,
        )

    assert result.path.name == "createjs.js"
    assert result.included == ["core", "tween", "sound", "preload"]
    assert result.missing == ["easel"]
    assert "EaselJS" in caplog.text
    options, _ = fake_bundler.calls[0]
    assert options.external == ()
    assert [entry.parent.parent.name for entry in options.entries] == ["core", "tweenjs", "soundjs", "preloadjs"]
    assert [plugin.name for plugin in options.plugins] == ["multi-entry", "force-binding", "node-resolve", "babel"]
    code = result.path.read_text(encoding="utf-8")
    assert 'cjs.TweenJS.version = "1.0.1";' in code
    assert "EaselJS.version" not in code


def test_resolve_version_and_plugin_order() -> None:
    assert resolve_version(EASEL, Channel.STABLE) == "1.2.0"
    assert resolve_version(EASEL, Channel.NEXT) == "NEXT"
    rollup = RollupSettings(forceBinding=["@createjs/core"])
    assert [plugin.name for plugin in select_plugins(BundleFormat.COMMON, rollup, combined=False)] == [
        "multi-entry",
        "node-resolve",
        "babel",
    ]


def test_compile_plugins_skips_module_format(workspace: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    cache = BundleCache()
    written = asyncio.run(
        compile_plugins(
            workspace_root=workspace,
            output_dir=workspace / "dist",
            formats=list(BundleFormat),
            channel=Channel.STABLE,
            version="1.2.0",
            config=config,
            cache=cache,
            bundler=fake_bundler,
        )
    )

    assert [path.name for path in written] == ["webglinspectorjs.common.js", "webglinspectorjs.js"]
    assert all(path.parent == workspace / "dist" / "plugins" for path in written)
    assert sorted(cache) == ["plugins/webglinspectorjs.common.js", "plugins/webglinspectorjs.js"]
    assert [options.plugins[0].name for options, _ in fake_bundler.calls] == ["babel", "babel"]


def test_compile_plugins_without_plugin_dir(tmp_path: Path, config: EffectiveConfig, fake_bundler: FakeBundler) -> None:
    written = asyncio.run(
        compile_plugins(
            workspace_root=tmp_path,
            output_dir=tmp_path / "dist",
            formats=[BundleFormat.GLOBAL],
            channel=Channel.NEXT,
            version="NEXT",
            config=config,
            cache=BundleCache(),
            bundler=fake_bundler,
        )
    )
    assert written == []
    assert fake_bundler.calls == []


def test_read_package_version(tmp_path: Path) -> None:
    assert read_package_version(tmp_path) is None

    (tmp_path / "package.json").write_text('{"version": "1.0.3"}', encoding="utf-8")
    assert read_package_version(tmp_path) == "1.0.3"

    (tmp_path / "package.json").write_bytes(b'{"version": "\xff"}')
    with pytest.raises(ConfigError):
        read_package_version(tmp_path)
