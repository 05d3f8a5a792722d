"""Zoom projection of a graph onto visual rows.

Four zoom levels, from coarse to fine: sessions, conversations, details,
focus. Projection is pure: it selects the visible nodes for a level and maps
each node to a stable row. Main-line rows are fixed (user 0, assistant 1,
everything else 2); each sub-agent lane gets its own pair of rows below.
"""

from __future__ import annotations

from enum import Enum

from vizier.models import Node

# Row value for nodes that a level hides
HIDDEN_ROW = -1


class ZoomLevel(str, Enum):
    """Graph projection granularities, coarse to fine."""

    SESSIONS = "sessions"
    CONVERSATIONS = "conversations"
    DETAILS = "details"
    FOCUS = "focus"


ZOOM_ORDER = [ZoomLevel.SESSIONS, ZoomLevel.CONVERSATIONS, ZoomLevel.DETAILS, ZoomLevel.FOCUS]


def zoom_in(level: ZoomLevel) -> ZoomLevel:
    """Next finer level; stays at focus."""
    index = ZOOM_ORDER.index(level)
    return ZOOM_ORDER[min(index + 1, len(ZOOM_ORDER) - 1)]


def zoom_out(level: ZoomLevel) -> ZoomLevel:
    """Next coarser level; stays at sessions."""
    index = ZOOM_ORDER.index(level)
    return ZOOM_ORDER[max(index - 1, 0)]


def zoom_label(level: ZoomLevel) -> str:
    return level.value.upper()


def _main_line_row(node: Node) -> int:
    if node.kind == "user":
        return 0
    if node.kind == "assistant":
        return 1
    return 2


def agent_rows(branch_level: int) -> tuple[int, int]:
    """Rows ``(assistant, other)`` reserved for a sub-agent lane at details/focus."""
    base = 3 + (branch_level - 1) * 2
    return base, base + 1


def visual_branch(node: Node, level: ZoomLevel) -> int:
    """Map a node to its visual row at a zoom level.

    Args:
        node: The node to place.
        level: Current zoom level.

    Returns:
        Row index, or ``HIDDEN_ROW`` for sub-agent nodes hidden at the
        conversations level.
    """
    if level == ZoomLevel.SESSIONS:
        return 0

    if level == ZoomLevel.CONVERSATIONS:
        if node.branch_level > 0:
            # Sub-agent assistants sit on offset rows, their tools are hidden
            if node.kind == "assistant":
                return 2 + node.branch_level
            return HIDDEN_ROW
        return _main_line_row(node)

    if node.branch_level > 0:
        assistant_row, other_row = agent_rows(node.branch_level)
        return assistant_row if node.kind == "assistant" else other_row
    return _main_line_row(node)


def filter_by_zoom(nodes: list[Node], level: ZoomLevel) -> list[int]:
    """Indices of the nodes visible at a zoom level.

    Sessions shows only the first and last node. Conversations shows main-line
    user and assistant nodes plus sub-agent assistant nodes. Details and focus
    show everything.
    """
    if level == ZoomLevel.SESSIONS:
        if not nodes:
            return []
        if len(nodes) == 1:
            return [0]
        return [0, len(nodes) - 1]

    if level == ZoomLevel.CONVERSATIONS:
        visible = []
        for index, node in enumerate(nodes):
            if node.branch_level == 0:
                if node.kind in ("user", "assistant"):
                    visible.append(index)
            elif node.kind == "assistant":
                visible.append(index)
        return visible

    return list(range(len(nodes)))


def find_sticky_node(
    nodes: list[Node],
    visible_indices: list[int],
    row: int,
    before_column: int,
    level: ZoomLevel,
) -> int | None:
    """Find the most recent node on ``row`` before a viewport column.

    Args:
        nodes: All graph nodes.
        visible_indices: Output of :func:`filter_by_zoom`.
        row: Visual row to search.
        before_column: Position in ``visible_indices``; only earlier
            positions are scanned.
        level: Current zoom level.

    Returns:
        Index into ``nodes``, or None if the row has no earlier node.
    """
    best: int | None = None
    for column in range(min(before_column, len(visible_indices))):
        index = visible_indices[column]
        if visual_branch(nodes[index], level) == row:
            best = index
    return best


def _first_words(text: str, count: int, max_len: int) -> str:
    words = " ".join(text.split()[:count])
    if len(words) <= max_len:
        return words
    return words[: max_len - 1] + "…"


def node_preview(node: Node, max_len: int = 18) -> str:
    """Short content label for a node."""
    content = node.node_type
    if content.kind in ("user", "assistant"):
        return _first_words(content.text, 5, max_len)
    if content.kind in ("reasoning", "progress"):
        return _first_words(content.text, 3, max_len)
    if content.kind in ("tool_call", "tool_use"):
        return content.name
    if content.kind == "tool_result":
        return "error" if content.is_error else "ok"
    if content.kind == "agent_start":
        return content.agent_type
    if content.kind == "agent_end":
        return "end"
    if content.kind == "patch":
        return f"{len(content.files)} file(s)"
    return ""
