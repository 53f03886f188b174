"""Graph store: listing, lookup, traversal and entity sync."""

from execgraph.graph.errors import (
    CrossTenantEdgeError,
    GraphError,
    ImpactRadiusTooLargeError,
    InvalidProjectionError,
    NodeNotFoundError,
    TenantMismatchError,
)
from execgraph.graph.service import GraphService
from execgraph.graph.sync import GraphSyncService

__all__ = [
    "CrossTenantEdgeError",
    "GraphError",
    "GraphService",
    "GraphSyncService",
    "ImpactRadiusTooLargeError",
    "InvalidProjectionError",
    "NodeNotFoundError",
    "TenantMismatchError",
]
