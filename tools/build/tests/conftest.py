from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from createjs_build.bundle.cache import CacheEntry
from createjs_build.bundle.rollup import BundleOptions, BundleOutput
from createjs_build.bundle.sourcemap import encode_mappings
from createjs_build.errors import BundleError

ENTRY_SOURCE = """\
/** Documentation block for Stage. */
var Stage = function () {};
var VERSION = "<%= version %>";
/* @license third-party MIT */
var helper = 1;
// Copyright 2017 somebody
var other = 2;
// plain note
var Stage$1 = Stage;
"""


class FakeBundler:
    """Concatenates entry files the way a bundler would join independent roots."""

    name = "fake"

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[Tuple[BundleOptions, Optional[CacheEntry]]] = []

    async def bundle(self, options: BundleOptions, cache: Optional[CacheEntry]) -> BundleOutput:
        self.calls.append((options, cache))
        if self.fail:
            raise BundleError(options.filename, "simulated bundler failure")
        # (source index, source line, text); banner and outro lines have no source
        lines: List[Tuple[Optional[int], int, str]] = []
        if options.banner:
            lines.extend((None, 0, text) for text in options.banner.split("\n"))
        for index, entry in enumerate(options.entries):
            for number, text in enumerate(entry.read_text(encoding="utf-8").splitlines()):
                lines.append((index, number, text))
        if options.outro:
            lines.extend((None, 0, text) for text in options.outro.split("\n"))
        code = "\n".join(text for _, _, text in lines) + "\n"
        source_map = None
        if options.sourcemap:
            source_map = json.dumps(
                {
                    "version": 3,
                    "file": options.filename,
                    "sources": [str(entry) for entry in options.entries],
                    "names": [],
                    "mappings": encode_mappings(
                        [[(0, index, number, 0)] if index is not None else [] for index, number, _ in lines]
                    ),
                }
            )
        entry = CacheEntry(fingerprint={}, options_digest=options.digest(), code=code, map=source_map)
        return BundleOutput(code=code, map=source_map, cache=entry)


def write_library(root: Path, name: str, version: str, source: str = ENTRY_SOURCE) -> Path:
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "src" / "main.js").write_text(source, encoding="utf-8")
    (root / "package.json").write_text(
        json.dumps({"name": f"@createjs/{name}", "version": version}),
        encoding="utf-8",
    )
    return root


@pytest.fixture()
def fake_bundler() -> FakeBundler:
    return FakeBundler()


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    """An EaselJS checkout with one plugin."""

    root = write_library(tmp_path / "easeljs", "easel", "1.2.0")
    plugins = root / "src" / "plugins"
    plugins.mkdir()
    (plugins / "WebGLInspector.js").write_text("var Inspector = {};\n", encoding="utf-8")
    return root
