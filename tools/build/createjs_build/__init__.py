"""Build orchestration for the CreateJS library family."""

__version__ = "2.0.0"
from .bundle import (
    BuildTarget,
    BundleCache,
    BundleFormat,
    BundleResult,
    CacheEntry,
    Channel,
    LibrarySet,
    RollupBundler,
    produce_bundle,
)
from .bundle.comments import SourceComment, keep_minified_comment, keep_non_minified_comment
from .config import BuildEnvironment, EffectiveConfig, load_environment, resolve_config
from .errors import BuildError, BundleError, ConfigError, TaskGraphError, ToolError
from .naming import build_filename, to_display_name, to_short_id
from .tasks import BuildSession, GraphRun, TaskGraph, TaskSpec

__all__ = [
    "__version__",
    "BuildEnvironment",
    "BuildError",
    "BuildSession",
    "BuildTarget",
    "BundleCache",
    "BundleError",
    "BundleFormat",
    "BundleResult",
    "CacheEntry",
    "Channel",
    "ConfigError",
    "EffectiveConfig",
    "GraphRun",
    "LibrarySet",
    "RollupBundler",
    "SourceComment",
    "TaskGraph",
    "TaskGraphError",
    "TaskSpec",
    "ToolError",
    "build_filename",
    "keep_minified_comment",
    "keep_non_minified_comment",
    "load_environment",
    "produce_bundle",
    "resolve_config",
    "to_display_name",
    "to_short_id",
]
