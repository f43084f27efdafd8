"""Entry point selection for single-library and combined bundles."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from ..errors import ConfigError
from ..naming import to_display_name
from ..schemas.settings import LibrarySettings

logger = logging.getLogger(__name__)

ENTRY_RELPATH = Path("src") / "main.js"


@dataclass(frozen=True)
class LibrarySet:
    """Sibling libraries in combined-bundle order with their checkout roots."""

    order: Sequence[str]
    roots: Mapping[str, Path]

    @classmethod
    def from_settings(cls, settings: LibrarySettings, workspace_root: Path) -> "LibrarySet":
        # sibling checkouts live next to the current repo: ../easeljs, ../core
        parent = workspace_root.resolve().parent
        roots: Dict[str, Path] = {}
        for library_id in settings.order:
            configured = settings.paths.get(library_id)
            if configured:
                path = Path(configured)
                roots[library_id] = path if path.is_absolute() else (workspace_root / path).resolve()
            else:
                roots[library_id] = parent / to_display_name(library_id).lower()
        return cls(order=tuple(settings.order), roots=roots)

    def root_for(self, library_id: str) -> Path:
        return self.roots[library_id]

    def entry_for(self, library_id: str) -> Path:
        return self.root_for(library_id) / ENTRY_RELPATH

    def __iter__(self) -> Iterator[str]:
        return iter(self.order)


@dataclass
class EntrySelection:
    entries: List[Path] = field(default_factory=list)
    included: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    versions: Dict[str, str] = field(default_factory=dict)

    @property
    def source_dirs(self) -> List[Path]:
        return [entry.parent for entry in self.entries]


def read_package_version(root: Path) -> Optional[str]:
    """Return ``version`` from ``root/package.json`` or ``None`` when unavailable."""

    path = root / "package.json"
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError:
        logger.warning("File '%s' was not found; version left out of the export.", path)
        return None
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Malformed JSON in {path}: {exc}") from exc
    version = payload.get("version") if isinstance(payload, dict) else None
    return str(version) if version else None


def select_single_entry(workspace_root: Path, library_id: str, version: str) -> EntrySelection:
    return EntrySelection(
        entries=[workspace_root / ENTRY_RELPATH],
        included=[library_id],
        versions={library_id: version},
    )


def select_combined_entries(libraries: LibrarySet, *, version_override: Optional[str] = None) -> EntrySelection:
    """Collect every sibling's entry file; absent siblings are skipped with a warning."""

    selection = EntrySelection()
    for library_id in libraries:
        entry = libraries.entry_for(library_id)
        if not entry.is_file():
            logger.warning(
                "Skipping %s in combined bundle: entry file '%s' not found.",
                to_display_name(library_id),
                entry,
            )
            selection.missing.append(library_id)
            continue
        selection.entries.append(entry)
        selection.included.append(library_id)
        version = version_override or read_package_version(libraries.root_for(library_id))
        if version:
            selection.versions[library_id] = version
    return selection
