"""Configuration management for vizier.

This module provides configuration loading and management for vizier.
Configuration is loaded from ~/.config/vizier/config.toml (honoring
$XDG_CONFIG_HOME) with sensible defaults.

Example config file:
    [sources.claude]
    enabled = true
    path = "~/.claude"
    project = "-Users-foo-code-myapp"

    [sources.opencode]
    enabled = true
    path = "~/.local/share/opencode/storage"

    [watch]
    debounce_ms = 150

    [tool_icons]
    path = "~/.config/vizier/tool-icons.json"
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from vizier.watch import DEFAULT_DEBOUNCE_MS

logger = logging.getLogger(__name__)

OPENCODE_STORAGE_ENV = "OPENCODE_STORAGE"


class SourceConfig(BaseModel):
    """Configuration for a session source."""

    enabled: bool = True
    path: str = ""
    project: str | None = None


class WatchConfig(BaseModel):
    """Configuration for live rebuilds."""

    debounce_ms: int = Field(default=DEFAULT_DEBOUNCE_MS, ge=0)


class ToolIconsConfig(BaseModel):
    """Configuration for the tool-icon rule file."""

    path: str | None = None


class Config(BaseModel):
    """Top-level vizier settings: sources, watching and tool icons."""

    sources: dict[str, SourceConfig] = Field(default_factory=dict)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    tool_icons: ToolIconsConfig = Field(default_factory=ToolIconsConfig)

    def get_source_path(self, source_name: str) -> Path | None:
        """Resolve where a source keeps its sessions.

        Args:
            source_name: Source key under ``[sources]``, e.g. ``claude``.

        Returns:
            The path with ``~`` expanded, or None when the source is unknown
            or has no path.
        """
        source = self.sources.get(source_name)
        if source is None or not source.path:
            return None
        return Path(source.path).expanduser()

    def is_source_enabled(self, source_name: str) -> bool:
        """Whether ``source_name`` is configured and switched on."""
        source = self.sources.get(source_name)
        return source is not None and source.enabled

    def get_tool_icons_path(self) -> Path | None:
        """Expanded override path for the tool-icon rule file, if set."""
        if not self.tool_icons.path:
            return None
        return Path(self.tool_icons.path).expanduser()


def get_config_dir() -> Path:
    """Directory holding vizier's user configuration."""
    base = os.environ.get("XDG_CONFIG_HOME")
    return (Path(base) if base else Path.home() / ".config") / "vizier"


def get_default_config() -> Config:
    """Build the configuration used when no file overrides it.

    Both built-in sources are enabled at their usual storage locations.
    """
    return Config(
        sources={
            "claude": SourceConfig(path="~/.claude"),
            "opencode": SourceConfig(
                path=os.environ.get(OPENCODE_STORAGE_ENV) or "~/.local/share/opencode/storage",
            ),
        },
        watch=WatchConfig(),
        tool_icons=ToolIconsConfig(),
    )


def load_config(config_path: Path | None = None) -> Config:
    """Read settings from a TOML file layered over the defaults.

    A missing, unreadable or invalid file yields the defaults unchanged.

    Args:
        config_path: File to read. Defaults to ``config.toml`` in
            :func:`get_config_dir`.

    Returns:
        The effective configuration.
    """
    path = config_path or get_config_dir() / "config.toml"
    defaults = get_default_config()

    if not path.exists():
        return defaults

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring config file %s: %s", path, e)
        return defaults

    try:
        return _merge_config(defaults, data)
    except ValidationError as e:
        logger.warning("Invalid values in %s, using defaults: %s", path, e)
        return defaults


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def _merge_config(default: Config, data: dict[str, Any]) -> Config:
    """Layer parsed TOML tables over ``default``.

    Known sources keep their defaults for keys the file leaves out; unknown
    sources are added as given. Non-table sections are ignored.

    Raises:
        ValidationError: If a value has the wrong type.
    """
    sources = dict(default.sources)
    for name, overrides in _section(data, "sources").items():
        if not isinstance(overrides, dict):
            continue
        base = sources.get(name)
        if base is None:
            sources[name] = SourceConfig(**overrides)
        else:
            sources[name] = SourceConfig(**{**base.model_dump(), **overrides})

    watch = WatchConfig(**{**default.watch.model_dump(), **_section(data, "watch")})
    tool_icons = ToolIconsConfig(
        **{**default.tool_icons.model_dump(), **_section(data, "tool_icons")}
    )

    return Config(sources=sources, watch=watch, tool_icons=tool_icons)


_config_cache: Config | None = None


def get_config() -> Config:
    """Process-wide configuration, loaded from the default file on first use."""
    global _config_cache
    if _config_cache is None:
        _config_cache = load_config()
    return _config_cache


def _clear_config_cache() -> None:
    """Forget the cached configuration (tests only)."""
    global _config_cache
    _config_cache = None
