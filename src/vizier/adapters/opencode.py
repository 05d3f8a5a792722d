"""OpenCode session adapter.

This module provides an adapter for reading session data from OpenCode,
an AI-powered coding assistant.

OpenCode storage structure (~/.local/share/opencode/storage/):
    project/<hash>.json                 - Project metadata
    session/<project-hash>/ses_*.json   - Session files
    message/<session-id>/msg_*.json     - Messages
    part/<message-id>/prt_*.json        - Parts

Part ids are time-ordered by construction, so parts are replayed in
lexicographic id order rather than file discovery order.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from vizier.adapters.base import GraphCallback, SessionSource, Unsubscribe
from vizier.graph import TokenInput, assemble_graph, compute_stats
from vizier.models import (
    AssistantContent,
    ChangeSummary,
    Graph,
    Node,
    PatchContent,
    ReasoningContent,
    SessionInfo,
    SessionStats,
    SourceKind,
    TokenUsage,
    ToolCallContent,
    UserContent,
)
from vizier.watch import DEFAULT_DEBOUNCE_MS, SessionWatcher

logger = logging.getLogger(__name__)

STORAGE_ENV_VAR = "OPENCODE_STORAGE"

# Step boundaries and bookkeeping parts carry nothing to display
SKIPPED_PART_TYPES = frozenset({"step-start", "step-finish", "snapshot", "compaction"})


def _load_json(path: Path) -> dict[str, Any] | None:
    """Load a JSON object from a file, returning None on error."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def _read_json_dir(directory: Path) -> list[dict[str, Any]]:
    """Load every JSON object in a directory, in file name order."""
    if not directory.is_dir():
        return []
    results: list[dict[str, Any]] = []
    for path in sorted(directory.glob("*.json")):
        data = _load_json(path)
        if data is not None:
            results.append(data)
    return results


def _parse_summary(data: Any) -> ChangeSummary | None:
    if not isinstance(data, dict):
        return None
    try:
        return ChangeSummary.model_validate(data)
    except ValidationError:
        return None


def _created(message: dict[str, Any]) -> int:
    time_data = message.get("time")
    if isinstance(time_data, dict) and isinstance(time_data.get("created"), (int, float)):
        return int(time_data["created"])
    return 0


def _start_time(data: Any) -> int | None:
    if isinstance(data, dict) and isinstance(data.get("start"), (int, float)):
        return int(data["start"])
    return None


def get_model_id(message: dict[str, Any]) -> str | None:
    """Model id from ``modelID`` or the nested ``model.modelID``."""
    model_id = message.get("modelID")
    if model_id:
        return model_id
    model = message.get("model")
    if isinstance(model, dict):
        return model.get("modelID")
    return None


def map_tokens(message: dict[str, Any]) -> TokenUsage | None:
    tokens = message.get("tokens")
    if not isinstance(tokens, dict):
        return None
    return TokenUsage.from_opencode(tokens)


def sort_parts(parts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order parts by id; ids sort in creation order."""
    return sorted((p for p in parts if isinstance(p.get("id"), str)), key=lambda p: p["id"])


@dataclass
class MessageTurn:
    """A user message and the assistant messages responding to it.

    ``user`` is None for assistant messages whose anchor is missing; such
    messages form a turn of their own.
    """

    turn_id: str
    started_at: int
    user: dict[str, Any] | None = None
    assistants: list[dict[str, Any]] = field(default_factory=list)


def build_turns(messages: list[dict[str, Any]]) -> list[MessageTurn]:
    """Group messages into turns anchored at user messages.

    Args:
        messages: Message records, in discovery order.

    Returns:
        Turns ordered by start time; ties keep discovery order.
    """
    ordered = sorted(
        (m for m in messages if isinstance(m.get("id"), str)),
        key=_created,
    )

    turns: list[MessageTurn] = []
    by_anchor: dict[str, MessageTurn] = {}
    for message in ordered:
        if message.get("role") == "user":
            turn = MessageTurn(turn_id=message["id"], started_at=_created(message), user=message)
            by_anchor[message["id"]] = turn
            turns.append(turn)

    for message in ordered:
        if message.get("role") != "assistant":
            continue
        turn = by_anchor.get(message.get("parentID") or "")
        if turn is not None:
            turn.assistants.append(message)
        else:
            logger.debug("Assistant message %s has no turn anchor", message["id"])
            turns.append(
                MessageTurn(
                    turn_id=message["id"],
                    started_at=_created(message),
                    assistants=[message],
                )
            )

    turns.sort(key=lambda t: t.started_at)
    return turns


def _part_to_node(
    part: dict[str, Any],
    message: dict[str, Any],
    parent_id: str | None,
    turn_id: str,
) -> Node | None:
    """Convert one assistant part into a node, or None for skipped parts."""
    part_type = part.get("type")
    if part_type in SKIPPED_PART_TYPES:
        return None

    created = _created(message)
    base = {
        "id": part["id"],
        "parent_id": parent_id,
        "branch_level": 0,
        "model": get_model_id(message),
        "source": SourceKind.OPENCODE,
        "turn_id": turn_id,
    }

    if part_type == "text" and part.get("text"):
        return Node(
            node_type=AssistantContent(text=part["text"]),
            timestamp=_start_time(part.get("time")) or created,
            usage=map_tokens(message),
            cost=message.get("cost"),
            **base,
        )

    if part_type == "reasoning" and part.get("text"):
        return Node(
            node_type=ReasoningContent(text=part["text"]),
            timestamp=_start_time(part.get("time")) or created,
            **base,
        )

    state = part.get("state")
    if part_type == "tool" and part.get("tool") and isinstance(state, dict):
        tool_input = state.get("input")
        is_error = state.get("status") == "error"
        if is_error:
            output = state.get("error") or "Unknown error"
        else:
            output = state.get("output")
            if output is not None and not isinstance(output, str):
                output = json.dumps(output)
        return Node(
            node_type=ToolCallContent(
                name=part["tool"],
                input=json.dumps(tool_input, indent=2) if tool_input else "{}",
                output=output,
                is_error=is_error,
            ),
            timestamp=_start_time(state.get("time")) or created,
            usage=map_tokens(message),
            cost=message.get("cost"),
            **base,
        )

    if part_type == "patch" and part.get("files") and part.get("hash"):
        return Node(
            node_type=PatchContent(files=list(part["files"]), hash=part["hash"]),
            timestamp=created,
            **base,
        )

    return None


def build_nodes(
    messages: list[dict[str, Any]],
    parts_by_message: Mapping[str, list[dict[str, Any]]],
) -> list[Node]:
    """Normalize a session's messages and parts into a linear chain of nodes.

    Each turn contributes one ``user`` node (its text parts joined) followed
    by the nodes of its assistant messages. Every node is parented to the
    node emitted just before it, across turns. A node never carries an
    earlier timestamp than its predecessor.

    Args:
        messages: Message records of the session.
        parts_by_message: Part records keyed by message id.

    Returns:
        Nodes in presentation order.
    """
    nodes: list[Node] = []
    prev_id: str | None = None
    prev_ts: int | None = None

    def emit(node: Node) -> None:
        nonlocal prev_id, prev_ts
        # Timestamps never go backwards along the chain, so the assembler's
        # stable sort keeps part order.
        if prev_ts is not None and node.timestamp < prev_ts:
            node = node.model_copy(update={"timestamp": prev_ts})
        nodes.append(node)
        prev_id = node.id
        prev_ts = node.timestamp

    for turn in build_turns(messages):
        if turn.user is not None:
            user_parts = sort_parts(parts_by_message.get(turn.user["id"], []))
            text = "\n".join(
                p.get("text") or "" for p in user_parts if p.get("type") == "text"
            ).strip()
            if text:
                emit(
                    Node(
                        id=turn.user["id"],
                        parent_id=prev_id,
                        node_type=UserContent(text=text),
                        timestamp=_created(turn.user),
                        branch_level=0,
                        model=get_model_id(turn.user),
                        source=SourceKind.OPENCODE,
                        turn_id=turn.turn_id,
                    )
                )

        for message in sorted(turn.assistants, key=_created):
            for part in sort_parts(parts_by_message.get(message["id"], [])):
                node = _part_to_node(part, message, prev_id, turn.turn_id)
                if node is not None:
                    emit(node)

    return nodes


def compute_opencode_stats(messages: list[dict[str, Any]]) -> SessionStats:
    """Aggregate per-message token and cost summaries of assistant messages."""
    return compute_stats(
        TokenInput(usage=map_tokens(m), model=get_model_id(m), cost=m.get("cost"))
        for m in sorted(messages, key=_created)
        if m.get("role") == "assistant"
    )


def build_opencode_graph(
    messages: list[dict[str, Any]],
    parts_by_message: Mapping[str, list[dict[str, Any]]],
) -> Graph:
    """Build the execution graph for an OpenCode session."""
    if not messages:
        return assemble_graph([])
    return assemble_graph(
        build_nodes(messages, parts_by_message),
        compute_opencode_stats(messages),
    )


class OpenCodeAdapter(SessionSource):
    """Adapter for OpenCode session data."""

    def __init__(
        self,
        base_path: Path | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        """Initialize the OpenCode adapter.

        Args:
            base_path: Optional custom path to OpenCode storage.
                      Defaults to $OPENCODE_STORAGE or
                      ~/.local/share/opencode/storage.
            debounce_ms: Quiescence window for watch rebuilds.
        """
        self._base_path = base_path or self.get_default_path()
        self.debounce_ms = debounce_ms

    @property
    def name(self) -> str:
        """Adapter identifier."""
        return "opencode"

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return "OpenCode"

    @property
    def base_path(self) -> Path:
        return self._base_path

    def get_default_path(self) -> Path:
        """Get default path for OpenCode storage."""
        override = os.environ.get(STORAGE_ENV_VAR)
        if override:
            return Path(override).expanduser()
        return Path.home() / ".local" / "share" / "opencode" / "storage"

    def is_available(self) -> bool:
        """Check if OpenCode storage exists on this system."""
        return self._base_path.is_dir()

    def message_dir(self, session_id: str) -> Path:
        return self._base_path / "message" / session_id

    def part_dir(self, message_id: str) -> Path:
        return self._base_path / "part" / message_id

    def list_sessions(self) -> list[SessionInfo]:
        """List OpenCode sessions, most recently updated first."""
        sessions: list[SessionInfo] = []
        session_base = self._base_path / "session"

        if not session_base.is_dir():
            return sessions

        for project_dir in sorted(session_base.iterdir()):
            if not project_dir.is_dir():
                continue

            for session_data in _read_json_dir(project_dir):
                session_id = session_data.get("id")
                time_data = session_data.get("time") or {}
                updated_ms = time_data.get("updated", time_data.get("created"))
                if not session_id or updated_ms is None:
                    logger.warning("Session in %s missing id or time data", project_dir)
                    continue

                summary = _parse_summary(session_data.get("summary"))
                sessions.append(
                    SessionInfo(
                        id=session_id,
                        timestamp=int(updated_ms),
                        node_count=self._count_messages(session_id),
                        source=SourceKind.OPENCODE,
                        title=session_data.get("title"),
                        slug=session_data.get("slug"),
                        directory=session_data.get("directory"),
                        summary=summary,
                    )
                )

        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        return sessions

    def _count_messages(self, session_id: str) -> int:
        message_dir = self.message_dir(session_id)
        if not message_dir.is_dir():
            return 0
        return sum(1 for _ in message_dir.glob("*.json"))

    def load_messages(self, session_id: str) -> list[dict[str, Any]]:
        """Load all message records for a session."""
        return _read_json_dir(self.message_dir(session_id))

    def load_parts(self, message_id: str) -> list[dict[str, Any]]:
        """Load all part records for a message."""
        return _read_json_dir(self.part_dir(message_id))

    def read_graph(self, session_id: str) -> Graph:
        """Build the graph for a session; unknown sessions yield an empty graph."""
        messages = self.load_messages(session_id)
        parts_by_message = {
            m["id"]: self.load_parts(m["id"]) for m in messages if isinstance(m.get("id"), str)
        }
        return build_opencode_graph(messages, parts_by_message)

    def watch(self, session_id: str, on_update: GraphCallback) -> Unsubscribe:
        """Rebuild on changes to the session's messages or their parts.

        New part directories are picked up after each rebuild, once their
        message is known.
        """
        message_root = (self._base_path / "message").resolve()
        part_root = (self._base_path / "part").resolve()
        message_ids: set[str] = {
            m["id"] for m in self.load_messages(session_id) if isinstance(m.get("id"), str)
        }

        def accept(path: Path) -> bool:
            path = path.resolve()
            if path.is_relative_to(message_root / session_id):
                return True
            if path.is_relative_to(part_root):
                relative = path.relative_to(part_root)
                return bool(relative.parts) and relative.parts[0] in message_ids
            return False

        def rebuild() -> None:
            graph = self.read_graph(session_id)
            message_ids.update(
                m["id"] for m in self.load_messages(session_id) if isinstance(m.get("id"), str)
            )
            on_update(graph)

        watcher = SessionWatcher(
            [self._base_path / "message", self._base_path / "part"],
            rebuild,
            accept=accept,
            debounce_ms=self.debounce_ms,
        )
        return watcher.start()
