"""Base adapter interface for session sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from vizier.models import Graph, SessionInfo

GraphCallback = Callable[["Graph"], None]
Unsubscribe = Callable[[], None]


class SessionSource(ABC):
    """Base class for all session sources.

    A source lists sessions, rebuilds a session's graph from scratch on every
    read, and watches a session for changes.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Source identifier (e.g., 'opencode', 'claude')."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name."""
        ...

    @abstractmethod
    def get_default_path(self) -> Path:
        """Get default storage path for this platform."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the source's storage exists on this system."""
        ...

    @abstractmethod
    def list_sessions(self) -> list[SessionInfo]:
        """List sessions, newest first."""
        ...

    @abstractmethod
    def read_graph(self, session_id: str) -> Graph:
        """Read a session and build its graph."""
        ...

    @abstractmethod
    def watch(self, session_id: str, on_update: GraphCallback) -> Unsubscribe:
        """Rebuild the graph whenever the session changes.

        Args:
            session_id: Session to watch.
            on_update: Called with each rebuilt graph.

        Returns:
            A callable that releases the watch.
        """
        ...


@runtime_checkable
class LiveSessionSource(Protocol):
    """Optional capability of sources connected to a running agent.

    These calls change external state only; the effect shows up later
    through the regular watch/rebuild path.
    """

    def send_message(self, session_id: str, text: str) -> None: ...

    def abort_session(self, session_id: str) -> None: ...
