"""Bundle pipeline exports."""

from .builder import BundleResult, compile_plugins, produce_bundle
from .cache import BundleCache, CacheEntry
from .entries import LibrarySet
from .rollup import BundleOptions, BundleOutput, Bundler, RollupBundler
from .targets import BuildTarget, BundleFormat, Channel, plan_targets

__all__ = [
    "BuildTarget",
    "BundleCache",
    "BundleFormat",
    "BundleOptions",
    "BundleOutput",
    "BundleResult",
    "Bundler",
    "CacheEntry",
    "Channel",
    "LibrarySet",
    "RollupBundler",
    "compile_plugins",
    "plan_targets",
    "produce_bundle",
]
