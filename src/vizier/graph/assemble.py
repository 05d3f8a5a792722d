"""Graph assembly: global ordering and edge derivation."""

from __future__ import annotations

from vizier.graph.stats import empty_stats
from vizier.models import Edge, Graph, Node, SessionStats


def sort_nodes(nodes: list[Node]) -> list[Node]:
    """Stable sort by timestamp; ties keep discovery order."""
    return sorted(nodes, key=lambda node: node.timestamp)


def derive_edges(nodes: list[Node]) -> list[Edge]:
    """Pair every node that has a parent with that parent."""
    return [
        Edge(from_id=node.parent_id, to_id=node.id, is_branch=node.branch_level > 0)
        for node in nodes
        if node.parent_id
    ]


def assemble_graph(nodes: list[Node], stats: SessionStats | None = None) -> Graph:
    """Build the final graph snapshot.

    Args:
        nodes: Merged, lane-annotated nodes.
        stats: Aggregated stats for the session, zero-valued if omitted.

    Returns:
        Graph with nodes in non-decreasing timestamp order.
    """
    ordered = sort_nodes(nodes)
    return Graph(
        nodes=ordered,
        edges=derive_edges(ordered),
        stats=stats if stats is not None else empty_stats(),
    )
