"""Pydantic models describing the typed sections of the build configuration."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PackageManifest(BaseModel):
    """The subset of a library's ``package.json`` used by the build."""

    name: str
    version: str = "0.0.0"
    browser: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @property
    def library_id(self) -> str:
        # read as @createjs/(lib)
        return self.name.split("/")[-1]


class RollupSettings(BaseModel):
    command: List[str] = Field(default_factory=lambda: ["npx", "rollup"])
    name: str = Field(default="createjs", description="Global namespace for iife bundles.")
    globals: Dict[str, str] = Field(default_factory=dict)
    force_binding: List[str] = Field(default_factory=list, alias="forceBinding")
    resolve_plugin: str = Field(default="node-resolve", alias="resolvePlugin")
    transpile_plugin: str = Field(default="babel", alias="transpilePlugin")
    multi_entry_plugin: str = Field(default="multi-entry", alias="multiEntryPlugin")
    force_binding_plugin: str = Field(default="force-binding", alias="forceBindingPlugin")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SourceMapSettings(BaseModel):
    inline: bool = False
    directory: str = Field(default="maps", description="Map folder, relative to the artifact.")

    model_config = ConfigDict(extra="forbid")


class BeautifySettings(BaseModel):
    """Options forwarded to ``jsbeautifier``; unknown keys pass straight through."""

    indent_size: int = 4
    indent_with_tabs: bool = True
    preserve_newlines: bool = True
    max_preserve_newlines: int = 2
    end_with_newline: bool = True

    model_config = ConfigDict(extra="allow")


class WatchSettings(BaseModel):
    poll_interval: float = Field(default=0.5, gt=0)
    debounce: float = Field(default=0.0, ge=0, description="Seconds to wait for changes to settle.")
    overlap: Literal["allow", "queue"] = "allow"

    model_config = ConfigDict(extra="forbid")


class ServeSettings(BaseModel):
    host: str = "localhost"
    port: int = 3000
    directory_listing: bool = True

    model_config = ConfigDict(extra="forbid")


class ToolSettings(BaseModel):
    docs: List[str] = Field(default_factory=lambda: ["npx", "jsdoc", "-c", "jsdoc.json", "-d", "docs", "src"])
    karma: List[str] = Field(default_factory=lambda: ["npx", "karma", "start", "tests/karma.conf.js"])
    eslint: List[str] = Field(default_factory=lambda: ["npx", "eslint", "--format", "codeframe", "src/**/*.js"])
    npm: List[str] = Field(default_factory=lambda: ["npm"])

    model_config = ConfigDict(extra="forbid")


class LibrarySettings(BaseModel):
    """Ordered sibling libraries and their checkout locations."""

    order: List[str] = Field(default_factory=lambda: ["core", "tween", "easel", "sound", "preload"])
    paths: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


SECTION_MODELS: Dict[str, type[BaseModel]] = {
    "rollup": RollupSettings,
    "sourcemaps": SourceMapSettings,
    "beautify": BeautifySettings,
    "watch": WatchSettings,
    "serve": ServeSettings,
    "tools": ToolSettings,
    "libraries": LibrarySettings,
}
