"""Session sources for different agent log dialects."""

from __future__ import annotations

from typing import TYPE_CHECKING

from vizier.adapters.base import LiveSessionSource, SessionSource
from vizier.adapters.claude import ClaudeCodeAdapter
from vizier.adapters.multi import MultiSource, decode_session_id, encode_session_id
from vizier.adapters.opencode import OpenCodeAdapter
from vizier.adapters.registry import AdapterRegistry

if TYPE_CHECKING:
    from vizier.config import Config


def build_registry(config: Config) -> AdapterRegistry:
    """Create a registry holding the adapters enabled in ``config``.

    Args:
        config: Loaded configuration.

    Returns:
        A new registry.
    """
    configured = AdapterRegistry()
    debounce_ms = config.watch.debounce_ms

    if config.is_source_enabled("claude"):
        configured.register(
            ClaudeCodeAdapter(
                base_path=config.get_source_path("claude"),
                project=config.sources["claude"].project,
                debounce_ms=debounce_ms,
            )
        )
    if config.is_source_enabled("opencode"):
        configured.register(
            OpenCodeAdapter(
                base_path=config.get_source_path("opencode"),
                debounce_ms=debounce_ms,
            )
        )
    return configured


__all__ = [
    "AdapterRegistry",
    "ClaudeCodeAdapter",
    "LiveSessionSource",
    "MultiSource",
    "OpenCodeAdapter",
    "SessionSource",
    "build_registry",
    "decode_session_id",
    "encode_session_id",
]
