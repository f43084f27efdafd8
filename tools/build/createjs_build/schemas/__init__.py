"""Schema exports."""

from .settings import (
    BeautifySettings,
    LibrarySettings,
    PackageManifest,
    RollupSettings,
    ServeSettings,
    SourceMapSettings,
    ToolSettings,
    WatchSettings,
)

__all__ = [
    "BeautifySettings",
    "LibrarySettings",
    "PackageManifest",
    "RollupSettings",
    "ServeSettings",
    "SourceMapSettings",
    "ToolSettings",
    "WatchSettings",
]
