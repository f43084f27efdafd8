"""Exception types raised by the build tooling."""

from __future__ import annotations


class BuildError(RuntimeError):
    """Base class for failures raised by createjs-build."""


class ConfigError(BuildError):
    """Raised when a configuration file exists but cannot be parsed."""


class BundleError(BuildError):
    """Raised when the bundler rejects or fails one build target."""

    def __init__(self, filename: str, message: str) -> None:
        super().__init__(f"{filename}: {message}")
        self.filename = filename


class ToolError(BuildError):
    """Raised when an external tool (jsdoc, karma, eslint, npm) exits non-zero."""

    def __init__(self, command: list[str], returncode: int, output: str = "") -> None:
        summary = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(f"{command[0]} exited with {returncode}: {summary}")
        self.command = command
        self.returncode = returncode
        self.output = output


class TaskGraphError(BuildError):
    """Raised when task declarations reference unknown tasks or form a cycle."""
