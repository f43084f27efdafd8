"""Banner templates and text substitutions applied around the bundler."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Mapping

from ..naming import to_display_name

ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"
LICENSE_PATH = ASSETS_DIR / "LICENSE"
BANNER_PATH = ASSETS_DIR / "BANNER"

_TEMPLATE_RE = re.compile(r"<%=\s*(\w+)\s*%>")
_VERSION_RE = re.compile(r"<%=\s*version\s*%>")
# rollup renames colliding bindings to Name$1; the public class names must survive
_DEDUPE_SUFFIX_RE = re.compile(r"(\w+)\$[0-9]")


def render_template(template: str, values: Mapping[str, object]) -> str:
    """Fill ``<%= key %>`` placeholders; unknown keys are left untouched."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        return str(values[key])

    return _TEMPLATE_RE.sub(_replace, template)


def render_banner(*, minified: bool, name: str, version: str, file: str = "") -> str:
    """Minified builds carry the full license, everything else the short banner."""

    source = LICENSE_PATH if minified else BANNER_PATH
    template = source.read_text(encoding="utf-8")
    return render_template(template, {"name": name, "file": file, "version": version}).rstrip("\n")


def substitute_version(code: str, version: str) -> str:
    return _VERSION_RE.sub(version, code)


def strip_dedupe_suffixes(code: str) -> str:
    return _DEDUPE_SUFFIX_RE.sub(r"\1", code)


def version_export(versions: Mapping[str, str], namespace: str = "createjs") -> str:
    """Render the outro that registers each library version on the namespace."""

    lines = [f"var cjs = window.{namespace} = window.{namespace} || {{}};"]
    for library_id, version in versions.items():
        lines.append(f"cjs.{to_display_name(library_id)}.version = {json.dumps(version)};")
    return "\n".join(lines)
