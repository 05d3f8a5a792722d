"""Dialect-independent graph construction."""

from vizier.graph.assemble import assemble_graph, derive_edges, sort_nodes
from vizier.graph.lanes import AgentSpan, apply_lanes, compute_agent_spans, pack_lanes
from vizier.graph.merge import merge_tool_calls
from vizier.graph.stats import TokenInput, compute_stats, empty_stats

__all__ = [
    "AgentSpan",
    "TokenInput",
    "apply_lanes",
    "assemble_graph",
    "compute_agent_spans",
    "compute_stats",
    "derive_edges",
    "empty_stats",
    "merge_tool_calls",
    "pack_lanes",
    "sort_nodes",
]
