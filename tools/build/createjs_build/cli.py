from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler

from .errors import BuildError, ConfigError
from .tasks.session import BuildSession

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    root = logging.getLogger("createjs_build")
    if not root.handlers:
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
        root.propagate = False
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="createjs-build", description="Build, serve and test CreateJS libraries.")
    parser.add_argument("tasks", nargs="*", default=["build"], help="Task names to run (default: build).")
    parser.add_argument("--workspace-root", default=".")
    parser.add_argument("--config", help="Base config JSON (defaults to the packaged config).")
    parser.add_argument("--local-config", help="Local override JSON (defaults to config.local.json).")
    parser.add_argument("--next", action="store_true", help="Build the -NEXT channel.")
    parser.add_argument("--production", action="store_true", help="Production mode: minified builds.")
    parser.add_argument("--combined", action="store_true", help="Bundle every sibling library together.")
    parser.add_argument("--format", help="Comma separated subset of module,common,global.")
    parser.add_argument("--files", help="Comma separated plugin names for the plugins task.")
    parser.add_argument("--lib", help="Library to link, e.g. EaselJS.")
    parser.add_argument("--all", action="store_true", help="Link every sibling library.")
    parser.add_argument(
        "--browser",
        nargs="?",
        const="Chrome",
        help="Run tests in an interactive browser instead of headless.",
    )
    parser.add_argument("--list", action="store_true", help="List declared tasks and exit.")
    parser.add_argument("--show-config", action="store_true", help="Print the effective config and exit.")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def _flags_from_args(args: argparse.Namespace) -> Dict[str, object]:
    names = ("next", "production", "combined", "format", "files", "lib", "all", "browser")
    return {name: getattr(args, name) for name in names if getattr(args, name)}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        session = BuildSession.create(
            Path(args.workspace_root),
            flags=_flags_from_args(args),
            base_config=Path(args.config) if args.config else None,
            local_config=Path(args.local_config) if args.local_config else None,
        )
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    if args.list:
        print(json.dumps([spec.to_dict() for spec in session.graph.specs()], indent=2))
        return 0
    if args.show_config:
        print(json.dumps(dict(session.config), indent=2))
        return 0

    try:
        run = asyncio.run(session.run(list(args.tasks)))
    except BuildError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130

    print(json.dumps(run.to_dict(), indent=2))
    return 0 if run.ok else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
