"""Polling file watcher that re-runs tasks when sources change."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..schemas.settings import WatchSettings

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Tuple[int, int]]


@dataclass(frozen=True)
class WatchRule:
    """Glob patterns (relative to the watch root) and the tasks they trigger in order."""

    name: str
    patterns: Tuple[str, ...]
    tasks: Tuple[str, ...]


ChangeHandler = Callable[[WatchRule, List[str]], Awaitable[object]]


def take_snapshot(root: Path, patterns: Sequence[str]) -> Snapshot:
    snapshot: Snapshot = {}
    for pattern in patterns:
        for path in root.glob(pattern):
            if path.is_file():
                stat = path.stat()
                snapshot[str(path)] = (stat.st_mtime_ns, stat.st_size)
    return snapshot


def diff_snapshots(before: Snapshot, after: Snapshot) -> List[str]:
    changed = {path for path, state in after.items() if before.get(path) != state}
    changed.update(path for path in before if path not in after)
    return sorted(changed)


class PollingWatcher:
    """Polls glob sets and hands changed paths to ``handler``.

    ``WatchSettings.overlap`` decides what happens when a change lands while
    a previous rebuild is still running: ``allow`` starts another rebuild
    right away, ``queue`` runs rebuilds one after another. A non-zero
    ``debounce`` waits for changes to settle before triggering.
    """

    def __init__(
        self,
        root: Path,
        rules: Sequence[WatchRule],
        handler: ChangeHandler,
        settings: Optional[WatchSettings] = None,
    ) -> None:
        self.root = root
        self.rules = list(rules)
        self.handler = handler
        self.settings = settings or WatchSettings()
        self._snapshots: Dict[str, Snapshot] = {}
        self._inflight: Set[asyncio.Future] = set()
        self._debounced: Dict[str, asyncio.Future] = {}
        self._pending_changes: Dict[str, Set[str]] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Future] = None

    def prime(self) -> None:
        for rule in self.rules:
            self._snapshots[rule.name] = take_snapshot(self.root, rule.patterns)

    async def poll_once(self) -> List[Tuple[WatchRule, List[str]]]:
        detected: List[Tuple[WatchRule, List[str]]] = []
        for rule in self.rules:
            try:
                current = take_snapshot(self.root, rule.patterns)
            except OSError as exc:
                # keep watching; a file vanished mid-scan
                logger.warning("Swallowed watch error for '%s': %s", rule.name, exc)
                continue
            changed = diff_snapshots(self._snapshots.get(rule.name, {}), current)
            self._snapshots[rule.name] = current
            if changed:
                logger.info("Detected %d change(s) for '%s'", len(changed), rule.name)
                detected.append((rule, changed))
                self._dispatch(rule, changed)
        return detected

    async def run(self) -> None:
        self.prime()
        logger.info("Watching %s", ", ".join(rule.name for rule in self.rules))
        try:
            while True:
                await asyncio.sleep(self.settings.poll_interval)
                await self.poll_once()
        finally:
            await self.close()

    async def drain(self) -> None:
        """Wait for debounced, queued and running rebuilds to finish."""

        while True:
            waiting = list(self._debounced.values()) + list(self._inflight)
            if waiting:
                await asyncio.gather(*waiting, return_exceptions=True)
                continue
            if self._queue is not None:
                await self._queue.join()
            if not self._debounced and not self._inflight:
                return

    async def close(self) -> None:
        for future in list(self._debounced.values()) + list(self._inflight):
            future.cancel()
        if self._worker is not None:
            self._worker.cancel()
            self._worker = None

    def _dispatch(self, rule: WatchRule, changed: List[str]) -> None:
        if self.settings.debounce <= 0:
            self._submit(rule, changed)
            return
        self._pending_changes.setdefault(rule.name, set()).update(changed)
        previous = self._debounced.pop(rule.name, None)
        if previous is not None:
            previous.cancel()
        timer = asyncio.ensure_future(self._fire_after_debounce(rule))
        self._debounced[rule.name] = timer

    async def _fire_after_debounce(self, rule: WatchRule) -> None:
        await asyncio.sleep(self.settings.debounce)
        self._debounced.pop(rule.name, None)
        changed = sorted(self._pending_changes.pop(rule.name, set()))
        self._submit(rule, changed)

    def _submit(self, rule: WatchRule, changed: List[str]) -> None:
        if self.settings.overlap == "queue":
            if self._queue is None:
                self._queue = asyncio.Queue()
                self._worker = asyncio.ensure_future(self._consume())
            self._queue.put_nowait((rule, changed))
            return
        future = asyncio.ensure_future(self._trigger(rule, changed))
        self._inflight.add(future)
        future.add_done_callback(self._inflight.discard)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            rule, changed = await self._queue.get()
            try:
                await self._trigger(rule, changed)
            finally:
                self._queue.task_done()

    async def _trigger(self, rule: WatchRule, changed: List[str]) -> None:
        try:
            await self.handler(rule, changed)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Swallowed error while handling '%s': %s", rule.name, exc)
