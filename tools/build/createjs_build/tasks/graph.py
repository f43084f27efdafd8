"""Named tasks with prerequisite edges and an asyncio scheduler."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from graphlib import CycleError, TopologicalSorter
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..errors import TaskGraphError

logger = logging.getLogger(__name__)

TaskAction = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class TaskSpec:
    """A task id, its prerequisites and the coroutine to run.

    Tasks without an action only group their prerequisites (``build``).
    """

    id: str
    action: Optional[TaskAction] = None
    prerequisites: Tuple[str, ...] = ()
    description: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "description": self.description,
            "prerequisites": list(self.prerequisites),
        }


class TaskStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TaskOutcome:
    id: str
    status: TaskStatus
    error: Optional[str] = None
    result: object = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, object]:
        result = self.result
        if isinstance(result, list):
            result = [item.to_dict() if hasattr(item, "to_dict") else item for item in result]
        elif hasattr(result, "to_dict"):
            result = result.to_dict()
        payload: dict[str, object] = {"id": self.id, "status": self.status.value}
        if self.error:
            payload["error"] = self.error
        if result is not None:
            payload["result"] = result
        if self.started_at and self.finished_at:
            payload["duration_s"] = round((self.finished_at - self.started_at).total_seconds(), 3)
        return payload


@dataclass
class GraphRun:
    outcomes: Dict[str, TaskOutcome] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(outcome.status is TaskStatus.SUCCEEDED for outcome in self.outcomes.values())

    @property
    def failed(self) -> List[str]:
        return [task_id for task_id, outcome in self.outcomes.items() if outcome.status is TaskStatus.FAILED]

    def to_dict(self) -> dict[str, object]:
        return {
            "status": "ok" if self.ok else "failed",
            "tasks": [outcome.to_dict() for outcome in self.outcomes.values()],
        }


class TaskGraph:
    """Registry of :class:`TaskSpec` objects plus the scheduler that runs them.

    A task starts once every prerequisite succeeded. Tasks without an edge
    between them run concurrently on the event loop. Failed tasks are never
    retried and their dependents are reported as skipped.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, TaskSpec] = {}

    def register(self, spec: TaskSpec) -> None:
        if spec.id in self._tasks:
            raise TaskGraphError(f"Task '{spec.id}' already registered.")
        self._tasks[spec.id] = spec

    def get(self, task_id: str) -> TaskSpec:
        try:
            return self._tasks[task_id]
        except KeyError as exc:
            available = ", ".join(sorted(self._tasks))
            raise TaskGraphError(f"Unknown task '{task_id}'. Available tasks: {available}.") from exc

    def specs(self) -> List[TaskSpec]:
        return list(self._tasks.values())

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def validate(self) -> None:
        for spec in self._tasks.values():
            for prerequisite in spec.prerequisites:
                if prerequisite not in self._tasks:
                    raise TaskGraphError(f"Task '{spec.id}' depends on unknown task '{prerequisite}'.")
        self._sorter(self._tasks.keys())

    def closure(self, targets: Iterable[str]) -> Set[str]:
        """Return ``targets`` plus every transitive prerequisite."""

        selected: Set[str] = set()
        stack = list(targets)
        while stack:
            task_id = stack.pop()
            if task_id in selected:
                continue
            spec = self.get(task_id)
            selected.add(task_id)
            stack.extend(spec.prerequisites)
        return selected

    def _sorter(self, task_ids: Iterable[str]) -> TopologicalSorter:
        ids = set(task_ids)
        sorter: TopologicalSorter = TopologicalSorter()
        for task_id in ids:
            spec = self.get(task_id)
            sorter.add(task_id, *(prereq for prereq in spec.prerequisites if prereq in ids))
        try:
            sorter.prepare()
        except CycleError as exc:
            raise TaskGraphError(f"Task dependency cycle: {' -> '.join(exc.args[1])}") from exc
        return sorter

    async def run(self, targets: Iterable[str], *, include_prerequisites: bool = True) -> GraphRun:
        targets = list(targets)
        task_ids = self.closure(targets) if include_prerequisites else {self.get(task_id).id for task_id in targets}
        sorter = self._sorter(task_ids)
        run = GraphRun()
        pending: Dict[asyncio.Future, str] = {}

        try:
            while sorter.is_active():
                self._schedule_ready(sorter, task_ids, run, pending)
                if not pending:
                    continue
                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for future in done:
                    task_id = pending.pop(future)
                    run.outcomes[task_id] = future.result()
                    sorter.done(task_id)
        finally:
            for future in pending:
                future.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        return run

    def _schedule_ready(
        self,
        sorter: TopologicalSorter,
        task_ids: Set[str],
        run: GraphRun,
        pending: Dict[asyncio.Future, str],
    ) -> None:
        for task_id in sorter.get_ready():
            spec = self._tasks[task_id]
            blocked = [
                prereq
                for prereq in spec.prerequisites
                if prereq in task_ids and run.outcomes[prereq].status is not TaskStatus.SUCCEEDED
            ]
            if blocked:
                logger.warning("Skipping '%s': prerequisite %s did not succeed.", task_id, ", ".join(blocked))
                run.outcomes[task_id] = TaskOutcome(
                    id=task_id,
                    status=TaskStatus.SKIPPED,
                    error=f"prerequisite failed: {', '.join(blocked)}",
                )
                sorter.done(task_id)
                continue
            pending[asyncio.ensure_future(self._execute(spec))] = task_id

    async def _execute(self, spec: TaskSpec) -> TaskOutcome:
        started = datetime.now(timezone.utc)
        logger.info("Starting '%s'", spec.id)
        try:
            result = await spec.action() if spec.action is not None else None
        except Exception as exc:  # noqa: BLE001 - recorded as the task's failure
            logger.error("Task '%s' failed: %s", spec.id, exc)
            logger.debug("Task '%s' traceback", spec.id, exc_info=True)
            return TaskOutcome(
                id=spec.id,
                status=TaskStatus.FAILED,
                error=str(exc),
                started_at=started,
                finished_at=datetime.now(timezone.utc),
            )
        finished = datetime.now(timezone.utc)
        logger.info("Finished '%s' after %.2fs", spec.id, (finished - started).total_seconds())
        return TaskOutcome(
            id=spec.id,
            status=TaskStatus.SUCCEEDED,
            result=result,
            started_at=started,
            finished_at=finished,
        )
