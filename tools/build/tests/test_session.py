from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from createjs_build.tasks.graph import TaskStatus
from createjs_build.tasks.server import DevServer
from createjs_build.tasks.session import WATCH_RULES, BuildSession

from conftest import FakeBundler


def _session(workspace: Path, bundler: FakeBundler, **flags: object) -> BuildSession:
    return BuildSession.create(workspace, flags=flags, bundler=bundler, environ={})


def test_default_build_writes_every_format(workspace: Path, fake_bundler: FakeBundler) -> None:
    session = _session(workspace, fake_bundler)

    run = asyncio.run(session.run(["build"]))

    assert run.ok, run.to_dict()
    dist = workspace / "dist"
    for name in ("easeljs.module.js", "easeljs.common.js", "easeljs.js"):
        assert (dist / name).is_file()
    assert (dist / "plugins" / "webglinspectorjs.common.js").is_file()
    assert (dist / "plugins" / "webglinspectorjs.js").is_file()
    assert list(run.outcomes)[0] == "clean"
    assert session.label == "EaselJS"


def test_next_production_build(workspace: Path, fake_bundler: FakeBundler) -> None:
    session = _session(workspace, fake_bundler, next=True, production=True, format="global")

    run = asyncio.run(session.run(["build"]))

    assert run.ok
    dist = workspace / "dist"
    assert sorted(path.name for path in dist.glob("*.js")) == ["easeljs-NEXT.js", "easeljs-NEXT.min.js"]
    assert (dist / "plugins" / "webglinspectorjs-NEXT.js").is_file()
    assert 'var VERSION = "NEXT";' in (dist / "easeljs-NEXT.js").read_text(encoding="utf-8")
    assert {result["target"] for result in run.outcomes["bundle:global"].to_dict()["result"]} == {
        "global-next",
        "global-min-next",
    }


def test_combined_build_skips_plugins(workspace: Path, fake_bundler: FakeBundler) -> None:
    session = _session(workspace, fake_bundler, combined=True)
    assert "plugins" not in session.graph.get("build").prerequisites
    assert session.label == "CreateJS"


def test_clean_only_removes_next_artifacts(workspace: Path, fake_bundler: FakeBundler) -> None:
    dist = workspace / "dist"
    (dist / "plugins").mkdir(parents=True)
    (dist / "maps").mkdir()
    for relative in ("easeljs.js", "easeljs-NEXT.js", "plugins/webglinspectorjs-NEXT.common.js", "maps/easeljs-NEXT.js.map"):
        (dist / relative).write_text("//", encoding="utf-8")

    removed = asyncio.run(_session(workspace, fake_bundler).clean())

    assert sorted(removed) == [
        str(Path("dist") / "easeljs-NEXT.js"),
        str(Path("dist") / "maps" / "easeljs-NEXT.js.map"),
        str(Path("dist") / "plugins" / "webglinspectorjs-NEXT.common.js"),
    ]
    assert (dist / "easeljs.js").exists()


def test_failed_bundle_skips_build(workspace: Path) -> None:
    session = _session(workspace, FakeBundler(fail=True), format="global")

    run = asyncio.run(session.run(["build"]))

    assert not run.ok
    assert run.outcomes["bundle:global"].status is TaskStatus.FAILED
    assert run.outcomes["build"].status is TaskStatus.SKIPPED
    assert "simulated bundler failure" in run.outcomes["bundle:global"].error


def test_rebuild_runs_watch_tasks_in_order(workspace: Path, fake_bundler: FakeBundler) -> None:
    session = _session(workspace, fake_bundler)
    session.server = DevServer(workspace)

    run = asyncio.run(session.rebuild(("bundle:global", "reload")))

    assert list(run.outcomes) == ["bundle:global", "reload"]
    assert run.outcomes["reload"].result == 1
    assert (workspace / "dist" / "easeljs.js").is_file()
    assert not (workspace / "dist" / "easeljs.module.js").exists()


def test_rebuild_reuses_cache(workspace: Path, fake_bundler: FakeBundler) -> None:
    session = _session(workspace, fake_bundler, format="global")
    asyncio.run(session.run(["bundle:global"]))
    first = session.cache.get("easeljs.js")

    asyncio.run(session.rebuild(("bundle:global",)))

    assert fake_bundler.calls[-1][1] is first


def test_reload_without_server_is_a_no_op(workspace: Path, fake_bundler: FakeBundler) -> None:
    assert asyncio.run(_session(workspace, fake_bundler).reload()) is None


def test_unknown_task_raises(workspace: Path, fake_bundler: FakeBundler) -> None:
    from createjs_build.errors import TaskGraphError

    with pytest.raises(TaskGraphError):
        asyncio.run(_session(workspace, fake_bundler).run(["deploy"]))


def test_declared_tasks_and_watch_rules(workspace: Path, fake_bundler: FakeBundler) -> None:
    session = _session(workspace, fake_bundler)
    ids = {spec.id for spec in session.graph.specs()}
    assert ids == {
        "clean",
        "bundle:module",
        "bundle:common",
        "bundle:global",
        "plugins",
        "build",
        "docs",
        "serve",
        "reload",
        "watch",
        "dev",
        "test",
        "lint",
        "link",
    }
    assert [rule.tasks for rule in WATCH_RULES][:2] == [("bundle:global", "reload"), ("plugins", "reload")]
    watcher = session.make_watcher()
    assert watcher.settings.overlap == "allow"
