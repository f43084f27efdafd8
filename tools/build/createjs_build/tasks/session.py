"""Build session: shared state for one process and the task declarations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Mapping, Optional

from ..bundle.builder import BundleResult, compile_plugins, produce_bundle, resolve_version
from ..bundle.cache import BundleCache
from ..bundle.entries import LibrarySet
from ..bundle.rollup import Bundler, RollupBundler
from ..bundle.targets import BuildTarget, BundleFormat, Channel, plan_targets
from ..config import (
    DEFAULT_BASE_CONFIG,
    DEFAULT_LOCAL_CONFIG_NAME,
    FORMATS,
    BuildEnvironment,
    EffectiveConfig,
    load_environment,
    load_package_manifest,
    resolve_config,
)
from ..naming import to_display_name
from ..schemas.settings import (
    LibrarySettings,
    PackageManifest,
    RollupSettings,
    ServeSettings,
    ToolSettings,
    WatchSettings,
)
from .graph import GraphRun, TaskGraph, TaskSpec
from .server import DevServer
from .tools import ToolRun, generate_docs, link_libraries, run_lint, run_tests, select_link_targets
from .watch import PollingWatcher, WatchRule

logger = logging.getLogger(__name__)

WATCH_RULES = (
    # only the global bundle is rebuilt during dev; the examples load it
    WatchRule("sources", ("src/**/*.js",), ("bundle:global", "reload")),
    WatchRule("plugins", ("src/plugins/*.js",), ("plugins", "reload")),
    WatchRule("assets", ("examples/**/*", "extras/**/*", "tutorials/**/*"), ("reload",)),
)


@dataclass
class BuildSession:
    """Everything one build process shares between tasks.

    The session owns the bundle cache for as long as it lives, so watch
    triggered rebuilds reuse the bundler state of earlier builds.
    """

    workspace_root: Path
    config: EffectiveConfig
    environment: BuildEnvironment
    package: PackageManifest
    bundler: Bundler
    cache: BundleCache = field(default_factory=BundleCache)
    server: Optional[DevServer] = None
    _graph: Optional[TaskGraph] = field(default=None, init=False, repr=False)

    @classmethod
    def create(
        cls,
        workspace_root: Path,
        *,
        flags: Optional[Mapping[str, object]] = None,
        base_config: Optional[Path] = None,
        local_config: Optional[Path] = None,
        bundler: Optional[Bundler] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BuildSession":
        root = workspace_root.resolve()
        config = resolve_config(
            base_config or DEFAULT_BASE_CONFIG,
            local_config or root / DEFAULT_LOCAL_CONFIG_NAME,
        )
        environment = load_environment(root, flags=flags, environ=environ)
        package = load_package_manifest(root)
        if bundler is None:
            bundler = RollupBundler(config.section("rollup", RollupSettings).command)
        return cls(
            workspace_root=root,
            config=config,
            environment=environment,
            package=package,
            bundler=bundler,
        )

    @property
    def output_dir(self) -> Path:
        return self.workspace_root / "dist"

    @property
    def docs_dir(self) -> Path:
        return self.workspace_root / "docs"

    @property
    def libraries(self) -> LibrarySet:
        return LibrarySet.from_settings(self.config.section("libraries", LibrarySettings), self.workspace_root)

    @property
    def channel(self) -> Channel:
        return Channel(self.environment.channel)

    @property
    def label(self) -> str:
        return "CreateJS" if self.environment.combined else to_display_name(self.package.library_id)

    @property
    def graph(self) -> TaskGraph:
        if self._graph is None:
            self._graph = self.build_graph()
        return self._graph

    def targets_for(self, fmt: BundleFormat) -> List[BuildTarget]:
        return plan_targets((fmt.value,), production=self.environment.production, channel=self.channel.value)

    async def bundle_format(self, fmt: BundleFormat) -> List[BundleResult]:
        """Build every target of one format; one failing target does not stop the others."""

        targets = self.targets_for(fmt)
        outcomes = await asyncio.gather(
            *(self._bundle_target(target) for target in targets),
            return_exceptions=True,
        )
        results: List[BundleResult] = []
        errors: List[BaseException] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                errors.append(outcome)
            else:
                results.append(outcome)
        if errors:
            for error in errors[1:]:
                logger.error("%s", error)
            raise errors[0]
        return results

    async def _bundle_target(self, target: BuildTarget) -> BundleResult:
        return await produce_bundle(
            target,
            self.libraries,
            self.config,
            package=self.package,
            workspace_root=self.workspace_root,
            output_dir=self.output_dir,
            cache=self.cache,
            bundler=self.bundler,
            combined=self.environment.combined,
        )

    async def clean(self) -> List[str]:
        """Remove next-channel artifacts only; released builds stay untouched."""

        removed: List[str] = []
        if not self.output_dir.exists():
            return removed
        for path in sorted(self.output_dir.rglob("*-NEXT*")):
            if path.is_file():
                path.unlink()
                removed.append(str(path.relative_to(self.workspace_root)))
        if removed:
            logger.info("Removed %d next-channel artifact(s)", len(removed))
        return removed

    async def plugins(self) -> List[str]:
        only = self.environment.flag("files")
        written = await compile_plugins(
            workspace_root=self.workspace_root,
            output_dir=self.output_dir,
            formats=[BundleFormat(name) for name in self.environment.formats],
            channel=self.channel,
            version=resolve_version(self.package, self.channel),
            config=self.config,
            cache=self.cache,
            bundler=self.bundler,
            only=str(only).split(",") if only else None,
        )
        return [str(path) for path in written]

    async def docs(self) -> ToolRun:
        return await generate_docs(self.workspace_root, self.docs_dir, self.config.section("tools", ToolSettings))

    async def test(self) -> ToolRun:
        browser = self.environment.flag("browser")
        return await run_tests(
            self.workspace_root,
            self.config.section("tools", ToolSettings),
            browser=str(browser) if browser else None,
        )

    async def lint(self) -> ToolRun:
        return await run_lint(self.workspace_root, self.config.section("tools", ToolSettings))

    async def link(self) -> List[ToolRun]:
        libraries = self.libraries
        lib_flag = self.environment.flag("lib")
        selected = select_link_targets(
            libraries,
            library=str(lib_flag) if lib_flag else None,
            link_all=bool(self.environment.flag("all")),
        )
        return await link_libraries(self.workspace_root, libraries, selected, self.config.section("tools", ToolSettings))

    def ensure_server(self) -> DevServer:
        if self.server is None:
            self.server = DevServer(self.workspace_root, self.config.section("serve", ServeSettings), label=self.label)
        return self.server

    async def serve(self) -> None:
        await self.ensure_server().serve_forever()

    async def reload(self) -> Optional[int]:
        if self.server is None:
            logger.debug("No dev server running; reload ignored.")
            return None
        return self.server.reload()

    async def rebuild(self, task_ids: tuple[str, ...]) -> GraphRun:
        """Run ``task_ids`` one after another without their prerequisites."""

        combined = GraphRun()
        for task_id in task_ids:
            run = await self.graph.run([task_id], include_prerequisites=False)
            combined.outcomes.update(run.outcomes)
            if not run.ok:
                logger.warning("Rebuild stopped at '%s'.", task_id)
                break
        return combined

    def make_watcher(self) -> PollingWatcher:
        async def _on_change(rule: WatchRule, changed: List[str]) -> None:
            logger.info("%s changed: %s", rule.name, ", ".join(Path(path).name for path in changed[:5]))
            await self.rebuild(rule.tasks)

        return PollingWatcher(
            self.workspace_root,
            WATCH_RULES,
            _on_change,
            self.config.section("watch", WatchSettings),
        )

    async def watch(self) -> None:
        await self.make_watcher().run()

    def build_graph(self) -> TaskGraph:
        graph = TaskGraph()
        graph.register(TaskSpec("clean", self.clean, description="Remove next-channel artifacts from dist/"))
        for name in FORMATS:
            fmt = BundleFormat(name)
            graph.register(
                TaskSpec(
                    f"bundle:{name}",
                    _bind(self.bundle_format, fmt),
                    ("clean",),
                    f"Bundle the {name} format",
                )
            )
        graph.register(TaskSpec("plugins", self.plugins, ("clean",), "Compile src/plugins for common and global formats"))

        build_prereqs = [f"bundle:{name}" for name in self.environment.formats]
        if not self.environment.combined:
            build_prereqs.append("plugins")
        graph.register(TaskSpec("build", None, tuple(build_prereqs), "Bundle every requested format"))
        graph.register(TaskSpec("docs", self.docs, description="Regenerate documentation"))
        graph.register(TaskSpec("serve", self.serve, ("build",), "Serve the library root"))
        graph.register(TaskSpec("reload", self.reload, description="Tell dev pages to reload"))
        graph.register(TaskSpec("watch", self.watch, ("build",), "Rebuild on source changes"))
        graph.register(TaskSpec("dev", None, ("serve", "watch"), "Build, serve and watch"))
        graph.register(TaskSpec("test", self.test, ("build",), "Run karma against the fresh build"))
        graph.register(TaskSpec("lint", self.lint, description="Run eslint over src/"))
        graph.register(TaskSpec("link", self.link, description="npm link the combined package into sibling repos"))
        graph.validate()
        return graph

    async def run(self, task_ids: List[str]) -> GraphRun:
        return await self.graph.run(task_ids)


def _bind(method: Callable[[BundleFormat], Awaitable[List[BundleResult]]], fmt: BundleFormat) -> Callable[[], Awaitable[List[BundleResult]]]:
    async def _action() -> List[BundleResult]:
        return await method(fmt)

    return _action


__all__ = ["BuildSession", "WATCH_RULES"]
