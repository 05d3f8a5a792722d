"""Tool-call merging.

Collapses each ``tool_use`` node and the ``tool_result`` that references it
into a single ``tool_call`` node.
"""

from __future__ import annotations

from vizier.models import Node, ToolCallContent, ToolResultContent, ToolUseContent


def merge_tool_calls(nodes: list[Node]) -> list[Node]:
    """Merge tool invocation/result pairs into ``tool_call`` nodes.

    A result matches an invocation when its ``parent_id`` equals the
    invocation's id. Invocations without a result become pending tool calls
    (``output`` is None). Results without an invocation are kept unchanged.

    Args:
        nodes: Normalized nodes, in the order they should be emitted.

    Returns:
        A new list with merged nodes in place of the invocations.
    """
    use_ids = {node.id for node in nodes if isinstance(node.node_type, ToolUseContent)}

    # Last result wins when several reference the same invocation
    result_by_tool_id: dict[str, Node] = {}
    for node in nodes:
        if isinstance(node.node_type, ToolResultContent) and node.parent_id:
            result_by_tool_id[node.parent_id] = node

    consumed = {
        result.id for tool_id, result in result_by_tool_id.items() if tool_id in use_ids
    }

    merged: list[Node] = []
    for node in nodes:
        content = node.node_type
        if isinstance(content, ToolUseContent):
            result = result_by_tool_id.get(node.id)
            result_content = result.node_type if result is not None else None
            merged.append(
                node.model_copy(
                    update={
                        "node_type": ToolCallContent(
                            name=content.name,
                            input=content.input,
                            output=result_content.output if result_content else None,
                            is_error=result_content.is_error if result_content else False,
                        )
                    }
                )
            )
        elif isinstance(content, ToolResultContent):
            if node.id not in consumed:
                merged.append(node)
        else:
            merged.append(node)

    return merged
