"""Cursor relocation across graph rebuilds.

The viewer owns its cursor as ``(row, position)``: a visual row and the
position of the selected node among that row's nodes. After every rebuild the
cursor is re-located on the new snapshot with these helpers.
"""

from __future__ import annotations

from vizier.models import Graph, Node, ToolCallContent
from vizier.zoom import ZoomLevel, visual_branch


def row_nodes(graph: Graph, row: int, level: ZoomLevel) -> list[int]:
    """Indices of the nodes placed on ``row``, in graph order."""
    return [i for i, node in enumerate(graph.nodes) if visual_branch(node, level) == row]


def count_in_row(graph: Graph, row: int, level: ZoomLevel) -> int:
    return len(row_nodes(graph, row, level))


def nth_node_in_row(graph: Graph, row: int, level: ZoomLevel, nth: int) -> int | None:
    """Global index of the ``nth`` node on ``row``, or None."""
    indices = row_nodes(graph, row, level)
    if 0 <= nth < len(indices):
        return indices[nth]
    return None


def max_row(graph: Graph, level: ZoomLevel) -> int:
    """Highest occupied row, at least 1."""
    rows = [visual_branch(node, level) for node in graph.nodes]
    return max([1, *rows])


def find_nearest_in_row(graph: Graph, row: int, level: ZoomLevel, target_timestamp: int) -> int:
    """Position on ``row`` of the node closest in time to ``target_timestamp``.

    The earliest node wins ties. Returns 0 for an empty row.
    """
    best_position = 0
    best_diff: int | None = None
    for position, index in enumerate(row_nodes(graph, row, level)):
        diff = abs(graph.nodes[index].timestamp - target_timestamp)
        if best_diff is None or diff < best_diff:
            best_diff = diff
            best_position = position
    return best_position


def latest_node_position(graph: Graph, level: ZoomLevel) -> tuple[int, int]:
    """``(row, position)`` of the newest node, for follow mode."""
    if not graph.nodes:
        return 0, 0
    row = visual_branch(graph.nodes[-1], level)
    return row, max(0, count_in_row(graph, row, level) - 1)


def step_chronological(
    graph: Graph,
    level: ZoomLevel,
    current_index: int | None,
    direction: int,
) -> tuple[int, int] | None:
    """Move to the next (``direction=1``) or previous (``-1``) node in time.

    Returns:
        ``(row, position)`` of the target node, or None at either end.
    """
    if current_index is None:
        return None
    next_index = current_index + direction
    if next_index < 0 or next_index >= len(graph.nodes):
        return None

    row = visual_branch(graph.nodes[next_index], level)
    position = sum(
        1 for node in graph.nodes[:next_index] if visual_branch(node, level) == row
    )
    return row, position


def find_node_index(graph: Graph, node_id: str) -> int | None:
    """Index of the node with ``node_id``, or None if it is gone."""
    for index, node in enumerate(graph.nodes):
        if node.id == node_id:
            return index
    return None


def locate_node(graph: Graph, node: Node, level: ZoomLevel) -> tuple[int, int]:
    """``(row, position)`` of the same logical node in ``graph``.

    Falls back to the nearest-in-time node on the node's row when the id is
    no longer present.
    """
    row = visual_branch(node, level)
    index = find_node_index(graph, node.id)
    if index is not None:
        row = visual_branch(graph.nodes[index], level)
        return row, row_nodes(graph, row, level).index(index)
    return row, find_nearest_in_row(graph, row, level, node.timestamp)


def relocate_cursor(
    old_graph: Graph,
    new_graph: Graph,
    row: int,
    position: int,
    level: ZoomLevel,
    follow: bool = False,
) -> tuple[int, int]:
    """Re-locate the cursor after a rebuild.

    In follow mode the cursor jumps to the newest node. Otherwise it stays,
    unless it sat within the last two nodes of its row and the row grew, in
    which case it moves to the row's new end.

    Returns:
        The new ``(row, position)``.
    """
    if follow:
        return latest_node_position(new_graph, level)

    old_count = count_in_row(old_graph, row, level)
    new_count = count_in_row(new_graph, row, level)
    at_end = position >= old_count - 2
    if at_end and new_count > old_count:
        return row, max(0, new_count - 1)
    return row, position


def has_active_nodes(graph: Graph) -> bool:
    """Whether the newest node is a tool call still waiting for its result."""
    if not graph.nodes:
        return False
    content = graph.nodes[-1].node_type
    return isinstance(content, ToolCallContent) and content.output is None
