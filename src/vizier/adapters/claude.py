"""Claude Code session adapter.

Reads sessions from Claude Code's append-only JSONL logs stored in
~/.claude/projects/<encoded-project>/<session>.jsonl, together with the
sub-agent logs kept in <session>/subagents/*.jsonl.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from vizier.adapters.base import GraphCallback, SessionSource, Unsubscribe
from vizier.graph import (
    TokenInput,
    apply_lanes,
    assemble_graph,
    compute_agent_spans,
    compute_stats,
    merge_tool_calls,
    pack_lanes,
    sort_nodes,
)
from vizier.models import (
    AssistantContent,
    Graph,
    Node,
    SessionInfo,
    SourceKind,
    TokenUsage,
    ToolResultContent,
    ToolUseContent,
    UserContent,
)
from vizier.watch import DEFAULT_DEBOUNCE_MS, SessionWatcher

logger = logging.getLogger(__name__)

TITLE_LENGTH = 100


def decode_project_path(encoded: str) -> str:
    """Decode a Claude Code encoded project path.

    Claude Code encodes paths by replacing '/' with '-'.
    Example: '-Users-foo-code-myapp' -> '/Users/foo/code/myapp'

    Args:
        encoded: The encoded path string (e.g., '-Users-foo-code-myapp')

    Returns:
        The decoded filesystem path (e.g., '/Users/foo/code/myapp')
    """
    if not encoded:
        return ""

    if encoded.startswith("-"):
        return "/" + encoded[1:].replace("-", "/")

    return encoded.replace("-", "/")


def get_project_slug(cwd: str) -> str:
    """Encode a working directory the way Claude Code names project folders."""
    return cwd.replace("/", "-")


def parse_timestamp(value: Any) -> int | None:
    """Parse an ISO 8601 timestamp (or epoch milliseconds) to epoch ms.

    Returns:
        Epoch milliseconds, or None if the value cannot be parsed.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str) or not value:
        return None

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def extract_text_content(content: Any) -> str:
    """Join the text blocks of a message's content."""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    return " ".join(
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") == "text"
        and isinstance(block.get("text"), str)
    )


def extract_tool_uses(content: Any) -> list[tuple[str | None, str, str]]:
    """Extract ``(tool_id, name, pretty_input)`` for each tool_use block."""
    if not isinstance(content, list):
        return []

    tools = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_use":
            continue
        tools.append(
            (
                block.get("id"),
                block.get("name") or "unknown",
                json.dumps(block.get("input"), indent=2),
            )
        )
    return tools


def _result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            item.get("text", "")
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        ]
        return "\n".join(texts)
    return ""


def extract_tool_results(content: Any) -> list[tuple[str | None, str, bool]]:
    """Extract ``(tool_use_id, output, is_error)`` for each tool_result block."""
    if not isinstance(content, list):
        return []

    results = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_result":
            continue
        results.append(
            (
                block.get("tool_use_id"),
                _result_text(block.get("content")),
                block.get("is_error") is True,
            )
        )
    return results


def parse_event_to_nodes(event: dict[str, Any], index: int = 0) -> list[Node]:
    """Normalize one log record into zero or more nodes.

    User records yield one ``tool_result`` node per result block, or a single
    ``user`` node when there are none (skipped for sub-agent records).
    Assistant records yield an ``assistant`` node when they carry text,
    followed by one ``tool_use`` node per invocation. Progress records and
    records without a message or a parsable timestamp yield nothing.

    Args:
        event: Parsed JSONL record.
        index: Position of the record in discovery order, used to synthesize
            ids for records that lack one.

    Returns:
        List of nodes for this record.
    """
    message = event.get("message")
    if not isinstance(message, dict):
        return []

    timestamp = parse_timestamp(event.get("timestamp"))
    if timestamp is None:
        logger.debug("Skipping record %d without a valid timestamp", index)
        return []

    uuid = event.get("uuid") or f"generated-{index}"
    parent_uuid = event.get("parentUuid")
    agent_id = event.get("agentId")
    role = message.get("role")
    content = message.get("content")

    base = {
        "timestamp": timestamp,
        "branch_level": 0,
        "agent_id": agent_id,
        "source": SourceKind.CLAUDE,
    }
    nodes: list[Node] = []

    if role == "user":
        tool_results = extract_tool_results(content)
        if tool_results:
            for i, (tool_use_id, output, is_error) in enumerate(tool_results):
                nodes.append(
                    Node(
                        id=f"{uuid}:{i}",
                        parent_id=tool_use_id,
                        node_type=ToolResultContent(output=output, is_error=is_error),
                        **base,
                    )
                )
        elif not agent_id:
            # Sub-agent prompts repeat the spawning tool's input
            text = extract_text_content(content)
            if text.strip():
                nodes.append(
                    Node(
                        id=uuid,
                        parent_id=parent_uuid,
                        node_type=UserContent(text=text),
                        **base,
                    )
                )

    elif role == "assistant":
        model = message.get("model")
        usage_data = message.get("usage")
        usage = TokenUsage.from_claude(usage_data) if isinstance(usage_data, dict) else None

        text = extract_text_content(content)
        has_text = bool(text.strip())
        if has_text:
            nodes.append(
                Node(
                    id=uuid,
                    parent_id=parent_uuid,
                    node_type=AssistantContent(text=text),
                    model=model,
                    usage=usage,
                    **base,
                )
            )

        tool_parent = uuid if has_text else parent_uuid
        for i, (tool_id, name, tool_input) in enumerate(extract_tool_uses(content)):
            nodes.append(
                Node(
                    id=tool_id or f"{uuid}:tool:{i}",
                    parent_id=tool_parent,
                    node_type=ToolUseContent(name=name, input=tool_input),
                    model=model,
                    usage=usage,
                    **base,
                )
            )

    return nodes


def find_agent_spawns(events: Iterable[dict[str, Any]]) -> dict[str, str]:
    """Map each sub-agent id to the tool invocation that spawned it.

    The mapping comes from ``agent_progress`` records, which carry the agent
    id and the spawning ``parentToolUseID``.
    """
    spawned_by: dict[str, str] = {}
    for event in events:
        if event.get("type") != "progress":
            continue
        data = event.get("data")
        if not isinstance(data, dict) or data.get("type") != "agent_progress":
            continue
        agent_id = data.get("agentId")
        parent_tool_id = event.get("parentToolUseID")
        if agent_id and parent_tool_id:
            spawned_by[agent_id] = parent_tool_id
    return spawned_by


def _dedupe_nodes(nodes: list[Node]) -> list[Node]:
    """Keep the first node for each id (resumed sessions repeat records)."""
    seen: set[str] = set()
    unique: list[Node] = []
    for node in nodes:
        if node.id in seen:
            logger.debug("Dropping duplicate node %s", node.id)
            continue
        seen.add(node.id)
        unique.append(node)
    return unique


def _agent_timestamps(events: Iterable[dict[str, Any]]) -> Iterable[tuple[str, int]]:
    for event in events:
        agent_id = event.get("agentId")
        timestamp = parse_timestamp(event.get("timestamp"))
        if agent_id and timestamp is not None:
            yield agent_id, timestamp


def _token_inputs(events: Iterable[dict[str, Any]]) -> Iterable[TokenInput]:
    for event in events:
        message = event.get("message")
        if not isinstance(message, dict) or message.get("role") != "assistant":
            continue
        usage_data = message.get("usage")
        yield TokenInput(
            usage=TokenUsage.from_claude(usage_data) if isinstance(usage_data, dict) else None,
            model=message.get("model"),
        )


def build_graph(events: list[dict[str, Any]]) -> Graph:
    """Build the execution graph for a Claude Code session.

    Args:
        events: Records of the main log and its sub-agent logs, in
            chronological discovery order.

    Returns:
        The assembled Graph.
    """
    spawned_by = find_agent_spawns(events)

    lanes = pack_lanes(compute_agent_spans(_agent_timestamps(events)))

    nodes = _dedupe_nodes(
        [node for index, event in enumerate(events) for node in parse_event_to_nodes(event, index)]
    )
    merged = merge_tool_calls(sort_nodes(nodes))
    laned = apply_lanes(merged, lanes, spawned_by)

    return assemble_graph(laned, compute_stats(_token_inputs(events)))


def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Read and parse a JSONL file, skipping malformed lines.

    Args:
        path: Path to the JSONL file.

    Returns:
        List of parsed JSON objects; empty if the file does not exist.
    """
    entries: list[dict[str, Any]] = []
    if not path.exists():
        return entries

    try:
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(entry, dict):
                    entries.append(entry)
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)

    return entries


def read_all_events(session_file: Path, agent_files: list[Path]) -> list[dict[str, Any]]:
    """Read the main log and sub-agent logs, stably sorted by timestamp."""
    events = read_jsonl(session_file)
    for agent_file in agent_files:
        events.extend(read_jsonl(agent_file))
    return sorted(events, key=lambda e: parse_timestamp(e.get("timestamp")) or 0)


class ClaudeCodeAdapter(SessionSource):
    """Adapter for Claude Code session logs."""

    def __init__(
        self,
        base_path: Path | None = None,
        project: str | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        """Initialize the Claude Code adapter.

        Args:
            base_path: Optional custom Claude directory. Defaults to ~/.claude.
            project: Optional project limiting the adapter to one project,
                either a project slug or the project's working directory.
            debounce_ms: Quiescence window for watch rebuilds.
        """
        self._base_path = base_path or self.get_default_path()
        if project and project.startswith("/"):
            project = get_project_slug(project)
        self.project = project
        self.debounce_ms = debounce_ms

    @property
    def name(self) -> str:
        """Adapter identifier."""
        return "claude"

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return "Claude Code"

    @property
    def projects_path(self) -> Path:
        return self._base_path / "projects"

    def get_default_path(self) -> Path:
        """Get default path for the Claude directory."""
        return Path.home() / ".claude"

    def is_available(self) -> bool:
        """Check if Claude Code projects directory exists."""
        return self.projects_path.is_dir()

    def _project_dirs(self) -> list[Path]:
        if self.project:
            project_dir = self.projects_path / self.project
            return [project_dir] if project_dir.is_dir() else []
        if not self.projects_path.is_dir():
            return []
        return sorted(p for p in self.projects_path.iterdir() if p.is_dir())

    def list_sessions(self) -> list[SessionInfo]:
        """List Claude Code sessions, most recently modified first."""
        sessions: list[SessionInfo] = []

        for project_dir in self._project_dirs():
            for jsonl_file in sorted(project_dir.glob("*.jsonl")):
                # Legacy sub-agent logs live beside sessions
                if jsonl_file.name.startswith("agent-"):
                    continue
                try:
                    stat = jsonl_file.stat()
                except OSError as e:
                    logger.warning("Failed to stat %s: %s", jsonl_file, e)
                    continue

                entries = read_jsonl(jsonl_file)
                sessions.append(
                    SessionInfo(
                        id=jsonl_file.stem,
                        timestamp=int(stat.st_mtime * 1000),
                        node_count=self._count_lines(jsonl_file),
                        waiting_for_user=bool(entries) and entries[-1].get("type") == "assistant",
                        source=SourceKind.CLAUDE,
                        title=self._extract_title(entries),
                        directory=decode_project_path(project_dir.name),
                    )
                )

        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        return sessions

    def _count_lines(self, path: Path) -> int:
        try:
            with path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0

    def _extract_title(self, entries: list[dict[str, Any]]) -> str | None:
        """First line of the first user prompt, truncated."""
        for entry in entries:
            message = entry.get("message")
            if not isinstance(message, dict) or message.get("role") != "user":
                continue
            if extract_tool_results(message.get("content")):
                continue
            text = extract_text_content(message.get("content")).strip()
            if text:
                title = text[:TITLE_LENGTH]
                if len(text) > TITLE_LENGTH:
                    title += "..."
                return title
        return None

    def find_session_file(self, session_id: str) -> Path | None:
        """Locate a session's main log across the configured projects."""
        for project_dir in self._project_dirs():
            candidate = project_dir / f"{session_id}.jsonl"
            if candidate.exists():
                return candidate
        return None

    def discover_agent_files(self, session_file: Path) -> list[Path]:
        """Sub-agent logs for a session, sorted by name."""
        agent_dir = session_file.parent / session_file.stem / "subagents"
        if not agent_dir.is_dir():
            return []
        return sorted(agent_dir.glob("*.jsonl"))

    def read_events(self, session_id: str) -> list[dict[str, Any]]:
        """Read every record belonging to a session."""
        session_file = self.find_session_file(session_id)
        if session_file is None:
            return []
        return read_all_events(session_file, self.discover_agent_files(session_file))

    def read_graph(self, session_id: str) -> Graph:
        """Build the graph for a session; unknown sessions yield an empty graph."""
        return build_graph(self.read_events(session_id))

    def watch(self, session_id: str, on_update: GraphCallback) -> Unsubscribe:
        """Rebuild on changes to the session log or its sub-agent logs."""
        session_file = self.find_session_file(session_id)
        if session_file is None:
            logger.warning("Cannot watch unknown Claude session %s", session_id)
            return lambda: None

        session_file = session_file.resolve()
        agent_dir = session_file.parent / session_file.stem / "subagents"

        def accept(path: Path) -> bool:
            path = path.resolve()
            if path == session_file:
                return True
            return path.suffix == ".jsonl" and path.parent == agent_dir

        watcher = SessionWatcher(
            [session_file.parent],
            lambda: on_update(self.read_graph(session_id)),
            accept=accept,
            debounce_ms=self.debounce_ms,
        )
        return watcher.start()
