"""Concurrency lane packing for sub-agent executions.

Sequential sub-agents share a lane; only agents whose time spans overlap are
spread over separate lanes. Lanes are 1-based, lane 0 is the main line.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from vizier.models import Node


@dataclass
class AgentSpan:
    """Time span covered by one sub-agent, in epoch milliseconds."""

    start: int
    end: int

    def overlaps(self, other: "AgentSpan") -> bool:
        return self.start < other.end and other.start < self.end


def compute_agent_spans(items: Iterable[tuple[str | None, int]]) -> dict[str, AgentSpan]:
    """Compute ``[min, max]`` timestamp spans per agent.

    Args:
        items: ``(agent_id, timestamp)`` pairs in discovery order. Pairs
            without an agent id belong to the main line and are ignored.

    Returns:
        Spans keyed by agent id, in order of first discovery.
    """
    spans: dict[str, AgentSpan] = {}
    for agent_id, timestamp in items:
        if not agent_id:
            continue
        span = spans.get(agent_id)
        if span is None:
            spans[agent_id] = AgentSpan(start=timestamp, end=timestamp)
        else:
            span.start = min(span.start, timestamp)
            span.end = max(span.end, timestamp)
    return spans


def pack_lanes(spans: Mapping[str, AgentSpan]) -> dict[str, int]:
    """Assign each agent the lowest lane that is free at its start time.

    Agents are visited by ascending start; equal starts keep discovery
    order. A lane is free once the last agent placed in it has ended at or
    before the new agent's start.

    Args:
        spans: Agent spans in discovery order.

    Returns:
        Mapping of agent id to 1-based lane.
    """
    ordered = sorted(spans.items(), key=lambda item: item[1].start)
    lane_ends: list[int] = []
    lanes: dict[str, int] = {}

    for agent_id, span in ordered:
        for index, end in enumerate(lane_ends):
            if end <= span.start:
                lane_ends[index] = span.end
                lanes[agent_id] = index + 1
                break
        else:
            lane_ends.append(span.end)
            lanes[agent_id] = len(lane_ends)

    return lanes


def apply_lanes(
    nodes: list[Node],
    lanes: Mapping[str, int],
    spawned_by: Mapping[str, str] | None = None,
) -> list[Node]:
    """Set ``branch_level`` on agent-owned nodes and link each agent's root.

    The first node of each agent (in the given order, which must be
    chronological) is re-parented to the tool invocation that spawned the
    agent, when that invocation is known. Later nodes of the same agent keep
    their parent.

    Args:
        nodes: Nodes sorted by timestamp.
        lanes: Agent id to lane, from :func:`pack_lanes`.
        spawned_by: Agent id to spawning tool invocation id.

    Returns:
        A new list of nodes.
    """
    spawned_by = spawned_by or {}
    linked: set[str] = set()
    result: list[Node] = []

    for node in nodes:
        if not node.agent_id:
            result.append(node)
            continue

        update: dict = {"branch_level": lanes.get(node.agent_id, 0)}
        if node.agent_id not in linked:
            linked.add(node.agent_id)
            parent_tool_id = spawned_by.get(node.agent_id)
            if parent_tool_id:
                update["parent_id"] = parent_tool_id

        result.append(node.model_copy(update=update))

    return result
