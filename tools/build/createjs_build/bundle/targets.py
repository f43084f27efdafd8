"""Build target descriptors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..naming import build_filename


class BundleFormat(str, Enum):
    MODULE = "module"
    COMMON = "common"
    GLOBAL = "global"

    @property
    def rollup_format(self) -> str:
        return _ROLLUP_FORMATS[self]

    @property
    def suffix(self) -> str:
        # global bundles carry no suffix: easeljs.js, easeljs.min.js
        return "" if self is BundleFormat.GLOBAL else self.value

    @property
    def transpiled(self) -> bool:
        return self is not BundleFormat.MODULE


_ROLLUP_FORMATS = {
    BundleFormat.MODULE: "es",
    BundleFormat.COMMON: "cjs",
    BundleFormat.GLOBAL: "iife",
}


class Channel(str, Enum):
    STABLE = "stable"
    NEXT = "next"


@dataclass(frozen=True)
class BuildTarget:
    """One desired artifact: ``(format, minified, channel)``."""

    format: BundleFormat
    minified: bool = False
    channel: Channel = Channel.STABLE

    def __post_init__(self) -> None:
        if self.minified and self.format is BundleFormat.MODULE:
            raise ValueError("ES module bundles are never minified.")

    def filename(self, library_name: str) -> str:
        return build_filename(library_name, self.channel.value, self.format.suffix, self.minified)

    @property
    def slug(self) -> str:
        parts = [self.format.value]
        if self.minified:
            parts.append("min")
        if self.channel is Channel.NEXT:
            parts.append("next")
        return "-".join(parts)


def plan_targets(formats: tuple[str, ...], *, production: bool, channel: str) -> list[BuildTarget]:
    """Expand requested formats into concrete targets.

    Every format gets a non-minified build; production runs add a minified
    build for the transpiled formats.
    """

    resolved_channel = Channel(channel)
    targets: list[BuildTarget] = []
    for name in formats:
        fmt = BundleFormat(name)
        targets.append(BuildTarget(fmt, False, resolved_channel))
        if production and fmt.transpiled:
            targets.append(BuildTarget(fmt, True, resolved_channel))
    return targets
