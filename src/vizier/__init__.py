"""
vizier - Session execution graphs

Rebuilds a causally-ordered execution graph from agent session logs
(Claude Code, OpenCode) and projects it onto zoomable visual rows.
"""

__version__ = "0.1.0"

from vizier.models import (
    Edge,
    Graph,
    Node,
    SessionInfo,
    SessionStats,
    SourceKind,
    TokenUsage,
)
from vizier.adapters import MultiSource, SessionSource, build_registry
from vizier.zoom import ZoomLevel

__all__ = [
    "__version__",
    # Models
    "Node",
    "Edge",
    "Graph",
    "SessionStats",
    "SessionInfo",
    "SourceKind",
    "TokenUsage",
    # Sources
    "SessionSource",
    "MultiSource",
    "build_registry",
    # Projection
    "ZoomLevel",
]
