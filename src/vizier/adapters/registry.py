"""Registry of session sources, keyed by source name."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vizier.adapters.base import SessionSource


class AdapterRegistry:
    """Holds the session sources the CLI can compose."""

    def __init__(self) -> None:
        self._sources: dict[str, SessionSource] = {}

    def register(self, adapter: SessionSource) -> None:
        """Add a source; a later source with the same name replaces it."""
        self._sources[adapter.name] = adapter

    def get_adapter(self, name: str) -> SessionSource:
        """Look up a source by name.

        Raises:
            KeyError: If ``name`` is not registered. The message lists the
                registered names.
        """
        try:
            return self._sources[name]
        except KeyError:
            known = ", ".join(self._sources) or "none"
            raise KeyError(f"Adapter '{name}' not found. Available adapters: {known}") from None

    def list_adapters(self) -> list[SessionSource]:
        """Every registered source, in registration order."""
        return list(self._sources.values())

    def get_available_adapters(self) -> list[SessionSource]:
        """Registered sources whose storage exists on this machine."""
        return [source for source in self._sources.values() if source.is_available()]
