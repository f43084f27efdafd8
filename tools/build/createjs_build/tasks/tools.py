"""Wrappers around external tools: jsdoc, karma, eslint and npm link."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..bundle.entries import LibrarySet
from ..errors import BuildError, ToolError
from ..naming import to_display_name, to_short_id
from ..schemas.settings import ToolSettings

logger = logging.getLogger(__name__)

LINK_PACKAGE = "createjs"


@dataclass(slots=True)
class ToolRun:
    command: List[str]
    cwd: str
    returncode: int
    output: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "command": self.command,
            "cwd": self.cwd,
            "returncode": self.returncode,
        }


async def run_tool(
    command: Sequence[str],
    *,
    cwd: Path,
    env: Optional[Dict[str, str]] = None,
    check: bool = True,
    capture: bool = True,
) -> ToolRun:
    """Run ``command`` without blocking the event loop.

    With ``capture=False`` the tool writes straight to the terminal, which
    interactive runners need.
    """

    argv = [str(part) for part in command]
    logger.info("Running %s (in %s)", shlex.join(argv), cwd)
    merged_env = os.environ.copy()
    if env:
        merged_env.update(env)
    pipe = asyncio.subprocess.PIPE if capture else None
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            env=merged_env,
            stdout=pipe,
            stderr=asyncio.subprocess.STDOUT if capture else None,
        )
    except OSError as exc:
        raise ToolError(argv, 127, str(exc)) from exc
    stdout, _ = await process.communicate()
    output = stdout.decode("utf-8", errors="replace") if stdout else ""
    for line in output.splitlines():
        logger.debug("[%s] %s", Path(argv[0]).name, line)
    returncode = process.returncode if process.returncode is not None else -1
    if check and returncode != 0:
        raise ToolError(argv, returncode, output)
    return ToolRun(command=argv, cwd=str(cwd), returncode=returncode, output=output)


async def generate_docs(workspace_root: Path, docs_dir: Path, settings: ToolSettings) -> ToolRun:
    """Regenerate the documentation directory from scratch."""

    if docs_dir.exists():
        logger.info("Removing previous docs at %s", docs_dir)
        shutil.rmtree(docs_dir)
    return await run_tool(settings.docs, cwd=workspace_root)


def karma_command(settings: ToolSettings, browser: Optional[str] = None) -> List[str]:
    """Headless single run by default; a named browser keeps karma open with the HTML reporter."""

    command = list(settings.karma)
    if browser:
        command.extend(["--browsers", browser, "--no-single-run", "--reporters", "kjhtml"])
    else:
        command.extend(["--browsers", "ChromeHeadless", "--single-run", "--reporters", "dots"])
    return command


async def run_tests(workspace_root: Path, settings: ToolSettings, *, browser: Optional[str] = None) -> ToolRun:
    return await run_tool(karma_command(settings, browser), cwd=workspace_root, capture=browser is None)


async def run_lint(workspace_root: Path, settings: ToolSettings) -> ToolRun:
    return await run_tool(settings.eslint, cwd=workspace_root)


def normalize_library_id(name: str) -> str:
    """``"EaselJS"``, ``"easeljs"`` and ``"easel"`` all select ``"easel"``."""

    return to_short_id(name).lower()


def select_link_targets(libraries: LibrarySet, *, library: Optional[str], link_all: bool) -> List[str]:
    if link_all:
        return list(libraries.order)
    if not library:
        raise BuildError("link needs --lib <name> or --all")
    library_id = normalize_library_id(library)
    if library_id not in libraries.roots:
        raise BuildError(f"Unknown library '{library}'. Expected one of: {', '.join(libraries.order)}.")
    return [library_id]


async def link_libraries(
    workspace_root: Path,
    libraries: LibrarySet,
    selected: Sequence[str],
    settings: ToolSettings,
    *,
    package: str = LINK_PACKAGE,
) -> List[ToolRun]:
    """Symlink the combined package into sibling checkouts via ``npm link``."""

    runs: List[ToolRun] = []
    root_run = await run_tool([*settings.npm, "root", "-g"], cwd=workspace_root)
    lines = root_run.output.strip().splitlines()
    global_root = Path(lines[-1].strip()) if lines else None
    if global_root is None or not (global_root / package).exists():
        logger.warning("'%s' is not linked globally; running 'npm link .' first.", package)
        runs.append(await run_tool([*settings.npm, "link", "."], cwd=workspace_root))

    for library_id in selected:
        library_root = libraries.root_for(library_id)
        if not library_root.is_dir():
            logger.warning("Cannot link %s: directory '%s' not found.", to_display_name(library_id), library_root)
            continue
        runs.append(await run_tool([*settings.npm, "link", package], cwd=library_root))
    return runs
