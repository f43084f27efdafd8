"""Task graph, watcher, dev server and the build session that declares the tasks."""

from .graph import GraphRun, TaskGraph, TaskOutcome, TaskSpec, TaskStatus
from .session import BuildSession

__all__ = [
    "BuildSession",
    "GraphRun",
    "TaskGraph",
    "TaskOutcome",
    "TaskSpec",
    "TaskStatus",
]
