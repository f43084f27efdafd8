"""In-memory cache of bundler state keyed by output filename."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Optional


@dataclass(frozen=True)
class CacheEntry:
    """Bundler state from the last successful build of one artifact.

    ``fingerprint`` maps every input file to ``(mtime_ns, size)`` and
    ``options_digest`` identifies the bundler options used. When both match a
    later request the bundler can hand back ``code`` and ``map`` unchanged.
    """

    fingerprint: Mapping[str, tuple[int, int]]
    options_digest: str
    code: str
    map: Optional[str] = None
    meta: Mapping[str, object] = field(default_factory=dict)


class BundleCache:
    """Last-write-wins store owned by the long-lived build session.

    Entries are never evicted. Only the event loop thread touches it; add a
    lock before sharing it with worker threads.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, filename: str) -> Optional[CacheEntry]:
        return self._entries.get(filename)

    def put(self, filename: str, entry: CacheEntry) -> None:
        self._entries[filename] = entry

    def __contains__(self, filename: object) -> bool:
        return filename in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
