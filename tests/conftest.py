import shutil
import tempfile
from pathlib import Path

import pytest

from vizier.config import _clear_config_cache
from vizier.models import (
    AssistantContent,
    Node,
    ReasoningContent,
    ToolCallContent,
    ToolResultContent,
    ToolUseContent,
    UserContent,
)
from vizier.tool_icons import _clear_rules_cache


@pytest.fixture(autouse=True)
def reset_caches():
    """Process-wide caches must not leak between tests."""
    _clear_config_cache()
    _clear_rules_cache()
    yield
    _clear_config_cache()
    _clear_rules_cache()


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    path = Path(tempfile.mkdtemp())
    yield path
    shutil.rmtree(path)


@pytest.fixture
def claude_dir(temp_dir):
    """An empty Claude directory with a projects/ folder."""
    (temp_dir / "claude" / "projects").mkdir(parents=True)
    return temp_dir / "claude"


@pytest.fixture
def opencode_storage(temp_dir):
    """An empty OpenCode storage root."""
    storage = temp_dir / "opencode" / "storage"
    storage.mkdir(parents=True)
    return storage


@pytest.fixture
def make_node():
    """Factory for nodes of any kind."""

    def _make(
        node_id: str,
        kind: str = "assistant",
        timestamp: int = 0,
        branch_level: int = 0,
        parent_id: str | None = None,
        agent_id: str | None = None,
        **content,
    ) -> Node:
        if kind == "user":
            node_type = UserContent(text=content.get("text", "hi"))
        elif kind == "assistant":
            node_type = AssistantContent(text=content.get("text", "hello"))
        elif kind == "reasoning":
            node_type = ReasoningContent(text=content.get("text", "thinking"))
        elif kind == "tool_use":
            node_type = ToolUseContent(name=content.get("name", "read"), input=content.get("input", ""))
        elif kind == "tool_result":
            node_type = ToolResultContent(
                output=content.get("output", ""), is_error=content.get("is_error", False)
            )
        elif kind == "tool_call":
            node_type = ToolCallContent(
                name=content.get("name", "read"),
                input=content.get("input", ""),
                output=content.get("output"),
                is_error=content.get("is_error", False),
            )
        else:
            raise ValueError(f"Unsupported kind in tests: {kind}")
        return Node(
            id=node_id,
            parent_id=parent_id,
            node_type=node_type,
            timestamp=timestamp,
            branch_level=branch_level,
            agent_id=agent_id,
        )

    return _make
