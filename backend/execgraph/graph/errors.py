"""Typed errors for graph, risk and impact radius operations."""

from __future__ import annotations

from typing import Any


class GraphError(Exception):
    """Base class for execution graph errors surfaced to callers."""

    code = "GRAPH_ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NodeNotFoundError(GraphError):
    """Raised when a node does not exist in the requesting tenant's graph."""

    code = "NOT_FOUND"
    status_code = 404


class ImpactRadiusTooLargeError(GraphError):
    """Raised when an impact radius query would exceed its node or edge cap."""

    code = "IMPACT_RADIUS_TOO_LARGE"
    status_code = 413

    def __init__(self, cap: str, limit: int):
        super().__init__(
            f"Impact radius exceeded max {cap} cap.",
            details={"cap": cap, "limit": limit},
        )
        self.cap = cap
        self.limit = limit


class CrossTenantEdgeError(GraphError):
    """Raised when an edge would connect nodes outside a single tenant."""

    code = "CROSS_TENANT_EDGE"
    status_code = 400


class InvalidProjectionError(GraphError):
    """Raised when a sync projection violates a graph invariant."""

    code = "INVALID_PROJECTION"
    status_code = 422


class TenantMismatchError(GraphError):
    """Raised when a payload names a different tenant than the request."""

    code = "TENANT_MISMATCH"
    status_code = 400
