"""Tests for the Claude Code adapter."""

import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from vizier.adapters.claude import (
    ClaudeCodeAdapter,
    build_graph,
    decode_project_path,
    extract_text_content,
    find_agent_spawns,
    get_project_slug,
    parse_event_to_nodes,
    parse_timestamp,
    read_jsonl,
)
from vizier.models import SourceKind, ToolCallContent, ToolResultContent

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)
EPOCH_MS = int(EPOCH.timestamp() * 1000)


def ts(seconds: float) -> str:
    return datetime.fromtimestamp(EPOCH.timestamp() + seconds, tz=timezone.utc).isoformat()


def user(uuid, seconds, content, parent=None, agent_id=None):
    record = {
        "type": "user",
        "uuid": uuid,
        "parentUuid": parent,
        "timestamp": ts(seconds),
        "message": {"role": "user", "content": content},
    }
    if agent_id:
        record["agentId"] = agent_id
    return record


def assistant(uuid, seconds, content, parent=None, agent_id=None, usage=None, model="claude-test"):
    message = {"role": "assistant", "content": content, "model": model}
    if usage is not None:
        message["usage"] = usage
    record = {
        "type": "assistant",
        "uuid": uuid,
        "parentUuid": parent,
        "timestamp": ts(seconds),
        "message": message,
    }
    if agent_id:
        record["agentId"] = agent_id
    return record


def tool_use(tool_id, name, tool_input=None):
    return {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input or {}}


def tool_result(tool_use_id, content, is_error=False):
    return {"type": "tool_result", "tool_use_id": tool_use_id, "content": content, "is_error": is_error}


def agent_progress(seconds, agent_id, tool_id):
    return {
        "type": "progress",
        "timestamp": ts(seconds),
        "parentToolUseID": tool_id,
        "data": {"type": "agent_progress", "agentId": agent_id},
    }


def write_jsonl(path: Path, records: list) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(json.dumps(r) for r in records) + "\n", encoding="utf-8")


class TestHelpers:
    """Tests for path, timestamp and content helpers."""

    def test_decode_project_path(self):
        assert decode_project_path("-Users-foo-code-myapp") == "/Users/foo/code/myapp"
        assert decode_project_path("relative-path") == "relative/path"
        assert decode_project_path("") == ""

    def test_project_slug(self):
        assert get_project_slug("/Users/foo/code") == "-Users-foo-code"

    def test_parse_timestamp(self):
        assert parse_timestamp("2024-01-01T00:00:00Z") == EPOCH_MS
        assert parse_timestamp("2024-01-01T00:00:00") == EPOCH_MS
        assert parse_timestamp(1234) == 1234
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp(True) is None

    def test_extract_text_content(self):
        assert extract_text_content("plain") == "plain"
        blocks = [
            {"type": "text", "text": "one"},
            {"type": "tool_use", "id": "t"},
            {"type": "text", "text": "two"},
        ]
        assert extract_text_content(blocks) == "one two"
        assert extract_text_content(None) == ""

    def test_read_jsonl_skips_malformed_lines(self, temp_dir):
        path = temp_dir / "log.jsonl"
        path.write_text('{"a": 1}\nnot json\n\n[1, 2]\n{"b": 2}\n', encoding="utf-8")
        assert read_jsonl(path) == [{"a": 1}, {"b": 2}]

    def test_read_jsonl_missing_file(self, temp_dir):
        assert read_jsonl(temp_dir / "missing.jsonl") == []


class TestParseEventToNodes:
    """Tests for single-record normalization."""

    def test_user_text(self):
        nodes = parse_event_to_nodes(user("u1", 1, "hello there", parent="p0"))
        assert len(nodes) == 1
        assert nodes[0].id == "u1"
        assert nodes[0].kind == "user"
        assert nodes[0].parent_id == "p0"
        assert nodes[0].timestamp == EPOCH_MS + 1000
        assert nodes[0].source == SourceKind.CLAUDE

    def test_blank_user_text_yields_nothing(self):
        assert parse_event_to_nodes(user("u1", 1, "   ")) == []

    def test_agent_user_text_is_filtered(self):
        assert parse_event_to_nodes(user("u1", 1, "prompt", agent_id="ag")) == []

    def test_tool_results(self):
        nodes = parse_event_to_nodes(
            user("u2", 1, [tool_result("t1", "ok"), tool_result("t2", "bad", is_error=True)])
        )
        assert [n.id for n in nodes] == ["u2:0", "u2:1"]
        assert [n.parent_id for n in nodes] == ["t1", "t2"]
        assert isinstance(nodes[1].node_type, ToolResultContent)
        assert nodes[1].node_type.is_error is True

    def test_tool_result_list_content(self):
        content = [{"type": "text", "text": "line1"}, {"type": "text", "text": "line2"}]
        nodes = parse_event_to_nodes(user("u2", 1, [tool_result("t1", content)]))
        assert nodes[0].node_type.output == "line1\nline2"

    def test_agent_tool_results_are_kept(self):
        nodes = parse_event_to_nodes(user("u2", 1, [tool_result("t1", "ok")], agent_id="ag"))
        assert len(nodes) == 1
        assert nodes[0].agent_id == "ag"

    def test_assistant_text_and_tools(self):
        usage = {"input_tokens": 5, "output_tokens": 2}
        nodes = parse_event_to_nodes(
            assistant(
                "a1",
                2,
                [{"type": "text", "text": "Reading"}, tool_use("t1", "read", {"path": "x"})],
                parent="u1",
                usage=usage,
            )
        )
        assert [n.kind for n in nodes] == ["assistant", "tool_use"]
        assert nodes[0].parent_id == "u1"
        assert nodes[1].id == "t1"
        assert nodes[1].parent_id == "a1"
        assert json.loads(nodes[1].node_type.input) == {"path": "x"}
        assert nodes[1].model == "claude-test"
        assert nodes[0].usage.input_tokens == 5

    def test_assistant_tools_without_text_attach_to_parent(self):
        nodes = parse_event_to_nodes(
            assistant("a1", 2, [tool_use(None, None)], parent="u1")
        )
        assert len(nodes) == 1
        assert nodes[0].id == "a1:tool:0"
        assert nodes[0].parent_id == "u1"
        assert nodes[0].node_type.name == "unknown"

    def test_missing_uuid_is_synthesized(self):
        record = user(None, 1, "hi")
        assert parse_event_to_nodes(record, index=7)[0].id == "generated-7"

    def test_records_without_message_or_timestamp(self):
        assert parse_event_to_nodes({"type": "summary", "summary": "x"}) == []
        record = user("u1", 1, "hi")
        record["timestamp"] = "garbage"
        assert parse_event_to_nodes(record) == []


class TestBuildGraph:
    """Tests for whole-session graph construction."""

    def test_tool_call_merged(self):
        graph = build_graph(
            [
                assistant("a1", 1, [tool_use("t1", "read")]),
                user("u2", 2, [tool_result("t1", "ok")]),
            ]
        )
        assert len(graph.nodes) == 1
        call = graph.nodes[0]
        assert isinstance(call.node_type, ToolCallContent)
        assert call.node_type.name == "read"
        assert call.node_type.output == "ok"
        assert call.node_type.is_error is False

    def test_orphan_result_kept(self):
        graph = build_graph([user("u2", 1, [tool_result("missing", "late")])])
        assert len(graph.nodes) == 1
        assert graph.nodes[0].kind == "tool_result"

    def test_duplicate_records_collapse(self):
        record = user("u1", 1, "hello")
        graph = build_graph([record, dict(record)])
        assert [n.id for n in graph.nodes] == ["u1"]

    def test_stats_from_assistant_records(self):
        graph = build_graph(
            [
                user("u1", 1, "hi"),
                assistant("a1", 2, "one", usage={"input_tokens": 10, "output_tokens": 1}, model="m1"),
                assistant("a2", 3, "two", usage={"input_tokens": 5, "cache_read_input_tokens": 4}, model="m2"),
            ]
        )
        assert graph.stats.total_input_tokens == 15
        assert graph.stats.total_output_tokens == 1
        assert graph.stats.total_cache_read == 4
        assert graph.stats.model == "m2"
        assert graph.stats.total_cost is None

    @pytest.fixture
    def agent_events(self):
        """Two concurrent sub-agents spawned from one assistant turn."""
        return [
            user("u1", 1, "Run two agents"),
            assistant(
                "a1",
                2,
                [{"type": "text", "text": "Spawning"}, tool_use("t1", "Task"), tool_use("t2", "Task")],
                parent="u1",
            ),
            agent_progress(2.5, "ag1", "t1"),
            agent_progress(2.6, "ag2", "t2"),
            user("ag1-u", 3, "agent one prompt", agent_id="ag1"),
            assistant("x1", 4, "agent one working", agent_id="ag1", parent="ag1-u"),
            assistant("y1", 5, "agent two working", agent_id="ag2"),
            assistant("y2", 6, "agent two done", agent_id="ag2", parent="y1"),
            assistant("x2", 8, "agent one done", agent_id="ag1", parent="x1"),
            user("u2", 9, [tool_result("t1", "one"), tool_result("t2", "two")]),
        ]

    def test_find_agent_spawns(self, agent_events):
        assert find_agent_spawns(agent_events) == {"ag1": "t1", "ag2": "t2"}

    def test_sub_agents_on_lanes(self, agent_events):
        graph = build_graph(agent_events)
        by_id = {n.id: n for n in graph.nodes}

        assert "ag1-u" not in by_id
        assert by_id["x1"].branch_level == 1
        assert by_id["x2"].branch_level == 1
        assert by_id["y1"].branch_level == 2
        assert by_id["y2"].branch_level == 2
        assert by_id["u1"].branch_level == 0

    def test_agent_roots_link_to_spawning_tool(self, agent_events):
        graph = build_graph(agent_events)
        by_id = {n.id: n for n in graph.nodes}

        assert by_id["x1"].parent_id == "t1"
        assert by_id["y1"].parent_id == "t2"
        assert by_id["x2"].parent_id == "x1"
        branch_edges = {(e.from_id, e.to_id) for e in graph.edges if e.is_branch}
        assert ("t1", "x1") in branch_edges
        assert ("t2", "y1") in branch_edges

    def test_graph_is_chronological(self, agent_events):
        graph = build_graph(agent_events)
        timestamps = [n.timestamp for n in graph.nodes]
        assert timestamps == sorted(timestamps)
        assert [n.id for n in graph.nodes] == ["u1", "a1", "t1", "t2", "x1", "y1", "y2", "x2"]
        assert graph.get_node("t1").node_type.output == "one"

    def test_rebuild_is_deterministic(self, agent_events):
        assert build_graph(agent_events) == build_graph(agent_events)

    def test_sequential_agents_share_lane(self):
        graph = build_graph(
            [
                assistant("x1", 1, "first", agent_id="ag1"),
                assistant("x2", 2, "first end", agent_id="ag1"),
                assistant("y1", 3, "second", agent_id="ag2"),
                assistant("y2", 4, "second end", agent_id="ag2"),
            ]
        )
        assert {n.branch_level for n in graph.nodes} == {1}

    def test_empty(self):
        graph = build_graph([])
        assert graph.nodes == []
        assert graph.edges == []


@pytest.fixture
def claude_project(claude_dir):
    """A Claude directory with one project holding two sessions."""
    project_dir = claude_dir / "projects" / "-home-dev-app"
    write_jsonl(
        project_dir / "sess-1.jsonl",
        [
            user("u1", 1, "Fix the login bug"),
            assistant("a1", 2, [tool_use("t1", "Task")], parent="u1"),
            agent_progress(2.5, "ag1", "t1"),
        ],
    )
    write_jsonl(
        project_dir / "sess-1" / "subagents" / "agent-ag1.jsonl",
        [
            assistant("x1", 3, "sub-agent reply", agent_id="ag1"),
        ],
    )
    write_jsonl(
        project_dir / "sess-2.jsonl",
        [user("v1", 1, "x" * 150), assistant("b1", 2, "done")],
    )
    write_jsonl(project_dir / "agent-legacy.jsonl", [assistant("z1", 1, "legacy")])
    return project_dir


class TestClaudeCodeAdapter:
    """Tests for the ClaudeCodeAdapter class."""

    def test_adapter_properties(self, claude_dir):
        adapter = ClaudeCodeAdapter(base_path=claude_dir)
        assert adapter.name == "claude"
        assert adapter.display_name == "Claude Code"
        assert adapter.is_available() is True

    def test_unavailable_without_projects(self, temp_dir):
        assert ClaudeCodeAdapter(base_path=temp_dir / "nope").is_available() is False
        assert ClaudeCodeAdapter(base_path=temp_dir / "nope").list_sessions() == []

    def test_list_sessions(self, claude_dir, claude_project):
        sessions = ClaudeCodeAdapter(base_path=claude_dir).list_sessions()
        by_id = {s.id: s for s in sessions}

        assert set(by_id) == {"sess-1", "sess-2"}
        first = by_id["sess-1"]
        assert first.node_count == 3
        assert first.title == "Fix the login bug"
        assert first.directory == "/home/dev/app"
        assert first.source == SourceKind.CLAUDE
        assert first.waiting_for_user is False

    def test_waiting_for_user_and_title_truncation(self, claude_dir, claude_project):
        by_id = {s.id: s for s in ClaudeCodeAdapter(base_path=claude_dir).list_sessions()}
        second = by_id["sess-2"]
        assert second.waiting_for_user is True
        assert second.title == "x" * 100 + "..."

    def test_sessions_newest_first(self, claude_dir, claude_project):
        os.utime(claude_project / "sess-1.jsonl", (1_000, 1_000))
        os.utime(claude_project / "sess-2.jsonl", (2_000, 2_000))
        sessions = ClaudeCodeAdapter(base_path=claude_dir).list_sessions()
        assert [s.id for s in sessions] == ["sess-2", "sess-1"]
        assert sessions[0].timestamp == 2_000_000

    def test_project_filter(self, claude_dir, claude_project):
        write_jsonl(claude_dir / "projects" / "-other" / "o1.jsonl", [user("w1", 1, "hi")])
        adapter = ClaudeCodeAdapter(base_path=claude_dir, project="-other")
        assert [s.id for s in adapter.list_sessions()] == ["o1"]

    def test_project_given_as_directory(self, claude_dir, claude_project):
        write_jsonl(claude_dir / "projects" / "-other" / "o1.jsonl", [user("w1", 1, "hi")])
        adapter = ClaudeCodeAdapter(base_path=claude_dir, project="/home/dev/app")
        assert adapter.project == "-home-dev-app"
        assert {s.id for s in adapter.list_sessions()} == {"sess-1", "sess-2"}

    def test_read_graph_includes_subagents(self, claude_dir, claude_project):
        graph = ClaudeCodeAdapter(base_path=claude_dir).read_graph("sess-1")
        by_id = {n.id: n for n in graph.nodes}

        assert set(by_id) == {"u1", "t1", "x1"}
        assert by_id["x1"].branch_level == 1
        assert by_id["x1"].parent_id == "t1"
        assert by_id["t1"].node_type.output is None

    def test_read_graph_unknown_session(self, claude_dir, claude_project):
        graph = ClaudeCodeAdapter(base_path=claude_dir).read_graph("nope")
        assert graph.nodes == []

    def test_watch_unknown_session_is_noop(self, claude_dir):
        unsubscribe = ClaudeCodeAdapter(base_path=claude_dir).watch("nope", lambda g: None)
        assert unsubscribe() is None
