"""Multi-source composition.

Merges several sources into one addressable session list. Session ids are
namespaced as ``"<source>:<native id>"`` and every graph, watch or live call
is routed to the source that owns the id.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from vizier.adapters.base import GraphCallback, LiveSessionSource, SessionSource, Unsubscribe
from vizier.graph import assemble_graph
from vizier.models import Graph, SessionInfo, SourceKind

logger = logging.getLogger(__name__)


def encode_session_id(kind: str, session_id: str) -> str:
    """Namespace a native session id with its source kind."""
    return f"{kind}:{session_id}"


def decode_session_id(session_id: str) -> tuple[str, str] | None:
    """Split a namespaced id into ``(kind, native id)``.

    Returns:
        None when the id has no source prefix.
    """
    kind, sep, native_id = session_id.partition(":")
    if not sep or not kind:
        return None
    return kind, native_id


class MultiSource(SessionSource):
    """A source that fans out over several owned sources."""

    def __init__(self, sources: Iterable[SessionSource]) -> None:
        self.sources = list(sources)
        self._by_kind = {source.name: source for source in self.sources}

    @property
    def name(self) -> str:
        return "multi"

    @property
    def display_name(self) -> str:
        return "All sources"

    def get_default_path(self) -> Path:
        return Path.home()

    def is_available(self) -> bool:
        return any(source.is_available() for source in self.sources)

    def _route(self, session_id: str) -> tuple[SessionSource, str] | None:
        decoded = decode_session_id(session_id)
        if decoded is None:
            logger.debug("Session id %r has no source prefix", session_id)
            return None
        kind, native_id = decoded
        source = self._by_kind.get(kind)
        if source is None:
            logger.debug("No source registered for %r", kind)
            return None
        return source, native_id

    def list_sessions(self) -> list[SessionInfo]:
        """Sessions of every owned source, newest first."""
        sessions: list[SessionInfo] = []
        for source in self.sources:
            for info in source.list_sessions():
                sessions.append(
                    info.model_copy(
                        update={
                            "id": encode_session_id(source.name, info.id),
                            "source": info.source or _source_kind(source.name),
                        }
                    )
                )
        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        return sessions

    def read_graph(self, session_id: str) -> Graph:
        route = self._route(session_id)
        if route is None:
            return assemble_graph([])
        source, native_id = route
        return source.read_graph(native_id)

    def watch(self, session_id: str, on_update: GraphCallback) -> Unsubscribe:
        route = self._route(session_id)
        if route is None:
            return lambda: None
        source, native_id = route
        return source.watch(native_id, on_update)

    def send_message(self, session_id: str, text: str) -> None:
        route = self._route(session_id)
        if route is None:
            return
        source, native_id = route
        if isinstance(source, LiveSessionSource):
            source.send_message(native_id, text)

    def abort_session(self, session_id: str) -> None:
        route = self._route(session_id)
        if route is None:
            return
        source, native_id = route
        if isinstance(source, LiveSessionSource):
            source.abort_session(native_id)


def _source_kind(name: str) -> SourceKind | None:
    try:
        return SourceKind(name)
    except ValueError:
        return None
