"""Configuration loading: JSON config overlay, package manifest and run environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Type, TypeVar

from dotenv import dotenv_values
from pydantic import BaseModel, ValidationError

from .errors import ConfigError
from .schemas.settings import SECTION_MODELS, PackageManifest

logger = logging.getLogger(__name__)

DEFAULT_BASE_CONFIG = Path(__file__).resolve().parent / "assets" / "config.json"
DEFAULT_LOCAL_CONFIG_NAME = "config.local.json"

FORMATS = ("module", "common", "global")

MODE_ENV = "CREATEJS_BUILD_MODE"
COMBINED_ENV = "CREATEJS_BUILD_COMBINED"
CHANNEL_ENV = "CREATEJS_BUILD_CHANNEL"

SectionT = TypeVar("SectionT", bound=BaseModel)


class EffectiveConfig(Mapping[str, Any]):
    """Read-only view over the merged configuration."""

    def __init__(self, values: Mapping[str, Any]) -> None:
        self._values = MappingProxyType(dict(values))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"EffectiveConfig({dict(self._values)!r})"

    def section(self, key: str, model: Optional[Type[SectionT]] = None) -> SectionT:
        """Validate one top-level section against its pydantic model."""

        section_model = model or SECTION_MODELS[key]
        raw = self._values.get(key) or {}
        try:
            return section_model.model_validate(raw)  # type: ignore[return-value]
        except ValidationError as exc:
            raise ConfigError(f"Invalid '{key}' configuration: {exc}") from exc


def _read_json_mapping(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Config file '%s' could not be read (%s); using empty config.", path, exc.strerror or exc)
        return {}
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid UTF-8: {exc}") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Malformed JSON in {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object, got {type(payload).__name__}.")
    return payload


def resolve_config(base_path: Optional[Path], local_path: Optional[Path]) -> EffectiveConfig:
    """Overlay ``local_path`` onto ``base_path`` key by key.

    Missing files count as empty mappings and only log a warning. A file that
    exists but does not parse raises :class:`ConfigError`.
    """

    merged = _read_json_mapping(base_path)
    merged.update(_read_json_mapping(local_path))
    return EffectiveConfig(merged)


def load_package_manifest(workspace_root: Path) -> PackageManifest:
    path = workspace_root / "package.json"
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"No package.json found in {workspace_root}") from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Malformed JSON in {path}: {exc}") from exc
    try:
        return PackageManifest.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid package manifest {path}: {exc}") from exc


def _to_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(frozen=True)
class BuildEnvironment:
    """Run mode switches shared by every task."""

    production: bool = False
    combined: bool = False
    channel: str = "stable"
    formats: tuple[str, ...] = FORMATS
    flags: Mapping[str, object] = field(default_factory=dict)

    @property
    def is_next(self) -> bool:
        return self.channel == "next"

    def flag(self, name: str, default: object = None) -> object:
        return self.flags.get(name, default)


def load_environment(
    workspace_root: Path,
    *,
    flags: Optional[Mapping[str, object]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BuildEnvironment:
    """Combine CLI flags, process environment and a workspace ``.env`` file.

    Flags win over variables; process variables win over ``.env`` entries.
    """

    flags = dict(flags or {})
    env: Dict[str, str] = {}
    env_file = workspace_root / ".env"
    if env_file.exists():
        try:
            values = dotenv_values(env_file)
        except UnicodeDecodeError as exc:
            raise ConfigError(f"{env_file} is not valid UTF-8: {exc}") from exc
        env.update({key: value for key, value in values.items() if value is not None})
    env.update(os.environ if environ is None else environ)

    production = _to_bool(flags.get("production")) or env.get(MODE_ENV, "").strip().lower() == "production"
    combined = _to_bool(flags.get("combined")) or _to_bool(env.get(COMBINED_ENV))
    is_next = _to_bool(flags.get("next")) or env.get(CHANNEL_ENV, "").strip().lower() == "next"
    formats = _parse_formats(flags.get("format"))
    return BuildEnvironment(
        production=production,
        combined=combined,
        channel="next" if is_next else "stable",
        formats=formats,
        flags=MappingProxyType(flags),
    )


def _parse_formats(value: object) -> tuple[str, ...]:
    if not value:
        return FORMATS
    if isinstance(value, str):
        requested: Sequence[str] = [item.strip() for item in value.split(",") if item.strip()]
    else:
        requested = [str(item) for item in value]  # type: ignore[union-attr]
    unknown = [item for item in requested if item not in FORMATS]
    if unknown:
        raise ConfigError(f"Unknown format(s) {', '.join(unknown)}; expected {', '.join(FORMATS)}.")
    return tuple(requested)
