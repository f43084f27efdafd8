"""Library naming and output filename helpers."""

from __future__ import annotations

import re

_JS_SUFFIX_RE = re.compile(r"js$", re.IGNORECASE)

# ids that do not follow the <Name>JS convention
_SPECIAL_DISPLAY_NAMES = {
    "cdn": "CreateJS",
    "createjs": "CreateJS",
    "core": "Core",
}


def to_display_name(library_id: str) -> str:
    """Make ``"easel"`` or ``"easeljs"`` look like ``"EaselJS"``."""

    lowered = library_id.lower()
    if lowered in _SPECIAL_DISPLAY_NAMES:
        return _SPECIAL_DISPLAY_NAMES[lowered]
    stem = _JS_SUFFIX_RE.sub("", library_id)
    if not stem:
        return library_id
    return f"{stem[0].upper()}{stem[1:]}JS"


def to_short_id(display_name: str) -> str:
    """Reverse of :func:`to_display_name` for ``<Name>JS`` names.

    Names without the ``JS`` suffix are returned unchanged, so ``"tween"``
    stays ``"tween"`` rather than being rejected.
    """

    if not _JS_SUFFIX_RE.search(display_name) or len(display_name) <= 2:
        return display_name
    return display_name[:-2].lower()


def build_filename(library_name: str, channel: str, format_suffix: str, minified: bool) -> str:
    """Return ``<library>[-NEXT][.<suffix>][.min].js``.

    ``library_name`` may be an id or a display name; it is normalised to the
    lower-cased display name (``EaselJS`` -> ``easeljs``).
    """

    name = to_display_name(library_name).lower()
    parts = [name]
    if channel == "next":
        parts.append("-NEXT")
    if format_suffix:
        parts.append(f".{format_suffix}")
    if minified:
        parts.append(".min")
    parts.append(".js")
    return "".join(parts)
