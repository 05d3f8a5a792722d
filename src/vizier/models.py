"""Execution graph models for vizier.

This module defines the canonical data models for the causally-ordered
execution graph reconstructed from agent session logs (Claude Code JSONL logs,
OpenCode message/part storage) in a unified format.
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class SourceKind(str, Enum):
    """Supported source dialects for session data."""

    CLAUDE = "claude"
    OPENCODE = "opencode"


class TokenUsage(BaseModel):
    """Token usage for a single assistant-authored record."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    reasoning_tokens: int = 0

    @classmethod
    def from_claude(cls, data: dict) -> "TokenUsage":
        """Build usage from a Claude ``message.usage`` block."""
        return cls(
            input_tokens=data.get("input_tokens") or 0,
            output_tokens=data.get("output_tokens") or 0,
            cache_read_tokens=data.get("cache_read_input_tokens") or 0,
            cache_creation_tokens=data.get("cache_creation_input_tokens") or 0,
            reasoning_tokens=data.get("reasoning_tokens") or 0,
        )

    @classmethod
    def from_opencode(cls, data: dict) -> "TokenUsage":
        """Build usage from an OpenCode message ``tokens`` block."""
        cache = data.get("cache") or {}
        return cls(
            input_tokens=data.get("input") or 0,
            output_tokens=data.get("output") or 0,
            cache_read_tokens=cache.get("read") or 0,
            cache_creation_tokens=cache.get("write") or 0,
            reasoning_tokens=data.get("reasoning") or 0,
        )


class UserContent(BaseModel):
    kind: Literal["user"] = "user"
    text: str


class AssistantContent(BaseModel):
    kind: Literal["assistant"] = "assistant"
    text: str


class ReasoningContent(BaseModel):
    kind: Literal["reasoning"] = "reasoning"
    text: str


class ToolUseContent(BaseModel):
    """A tool invocation whose result has not been merged yet."""

    kind: Literal["tool_use"] = "tool_use"
    name: str
    input: str = ""


class ToolResultContent(BaseModel):
    """A tool result, kept standalone only when no invocation claims it."""

    kind: Literal["tool_result"] = "tool_result"
    output: str = ""
    is_error: bool = False


class ToolCallContent(BaseModel):
    """A tool invocation merged with its result.

    ``output`` is ``None`` while the call is still pending.
    """

    kind: Literal["tool_call"] = "tool_call"
    name: str
    input: str = ""
    output: str | None = None
    is_error: bool = False


class PatchContent(BaseModel):
    kind: Literal["patch"] = "patch"
    files: list[str] = Field(default_factory=list)
    hash: str


class AgentStartContent(BaseModel):
    kind: Literal["agent_start"] = "agent_start"
    agent_id: str
    agent_type: str


class AgentEndContent(BaseModel):
    kind: Literal["agent_end"] = "agent_end"
    agent_id: str


class ProgressContent(BaseModel):
    kind: Literal["progress"] = "progress"
    text: str


NodeContent = Annotated[
    UserContent
    | AssistantContent
    | ReasoningContent
    | ToolUseContent
    | ToolResultContent
    | ToolCallContent
    | PatchContent
    | AgentStartContent
    | AgentEndContent
    | ProgressContent,
    Field(discriminator="kind"),
]


class Node(BaseModel):
    """A single normalized event in the execution graph.

    ``parent_id`` is a weak reference to the node this one causally follows;
    it may name a node that is not part of the graph.
    """

    id: str
    parent_id: str | None = None
    node_type: NodeContent
    timestamp: int  # epoch milliseconds
    branch_level: int = Field(default=0, ge=0)
    agent_id: str | None = None
    model: str | None = None
    usage: TokenUsage | None = None
    source: SourceKind | None = None
    cost: float | None = None
    turn_id: str | None = None

    @property
    def kind(self) -> str:
        """Shortcut for ``node_type.kind``."""
        return self.node_type.kind


class Edge(BaseModel):
    """A derived parent -> child relation."""

    from_id: str
    to_id: str
    is_branch: bool = False


class SessionStats(BaseModel):
    """Aggregated token and cost accounting for a session.

    ``total_cost`` and ``total_reasoning_tokens`` stay ``None`` unless their
    sum is nonzero.
    """

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cache_read: int = 0
    total_cache_creation: int = 0
    model: str | None = None
    total_cost: float | None = None
    total_reasoning_tokens: int | None = None


class Graph(BaseModel):
    """A fully-derived, disposable snapshot of a session's execution graph."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    stats: SessionStats = Field(default_factory=SessionStats)

    def get_node(self, node_id: str) -> Node | None:
        """Find a node by id.

        Args:
            node_id: The node identifier.

        Returns:
            The node, or None if no node has that id.
        """
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class ChangeSummary(BaseModel):
    """File change summary reported by some sources."""

    additions: int = 0
    deletions: int = 0
    files: int = 0


class SessionInfo(BaseModel):
    """Listing entry for a session, without loading its graph."""

    id: str
    timestamp: int  # last activity, epoch milliseconds
    node_count: int = 0
    waiting_for_user: bool = False
    source: SourceKind | None = None
    title: str | None = None
    slug: str | None = None
    directory: str | None = None
    summary: ChangeSummary | None = None
