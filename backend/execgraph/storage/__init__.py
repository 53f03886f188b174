"""Storage package init."""
from execgraph.db_base import Base
from execgraph.storage.models import (
    EdgeType,
    GraphEdge,
    GraphNode,
    NodeType,
    OrgRiskSnapshot,
)

__all__ = [
    "Base",
    "EdgeType",
    "GraphEdge",
    "GraphNode",
    "NodeType",
    "OrgRiskSnapshot",
]
