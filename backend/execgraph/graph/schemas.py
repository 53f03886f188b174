"""Request and response models for the graph store."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from execgraph.storage.models import EdgeType, NodeType
from execgraph.timeutils import as_utc

T = TypeVar("T")

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

MAX_PAGE_SIZE = 100
TRAVERSE_MAX_DEPTH = 4
TRAVERSE_MAX_EDGE_TYPES = 20


class GraphNodeRead(BaseModel):
    """Full node record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    entity_id: str
    title: str | None = None
    status: str | None = None
    amount_cents: int | None = None
    currency: str | None = None
    due_at: UtcDatetime | None = None
    occurred_at: UtcDatetime | None = None
    risk_score: int
    created_at: UtcDatetime
    updated_at: UtcDatetime


class NodeSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    title: str | None = None
    status: str | None = None


class GraphEdgeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    weight: int
    from_node_id: str
    to_node_id: str
    created_at: UtcDatetime


class GraphEdgeWithEndpoints(GraphEdgeRead):
    from_node: NodeSummary
    to_node: NodeSummary


class Page(BaseModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int
    total_pages: int


class NodeListQuery(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=MAX_PAGE_SIZE)
    type: str | None = None
    q: str | None = None


class EdgeListQuery(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=MAX_PAGE_SIZE)
    type: str | None = None
    from_node_id: str | None = None
    to_node_id: str | None = None
    node_id: str | None = None


class NodeDetail(BaseModel):
    node: GraphNodeRead
    edges: list[GraphEdgeWithEndpoints]


class TraverseRequest(BaseModel):
    start_node_id: str
    max_depth: int = Field(..., ge=1, le=TRAVERSE_MAX_DEPTH)
    edge_types: list[str] | None = Field(None, max_length=TRAVERSE_MAX_EDGE_TYPES)


class TraverseResult(BaseModel):
    nodes: list[GraphNodeRead]
    edges: list[GraphEdgeRead]


class NodeProjection(BaseModel):
    """Node payload pushed by the entity sync process."""

    org_id: str
    type: NodeType
    entity_id: str
    title: str | None = None
    status: str | None = None
    amount_cents: int | None = None
    currency: str | None = None
    due_at: UtcDatetime | None = None
    occurred_at: UtcDatetime | None = None
    meta: dict | None = None


class EdgeProjection(BaseModel):
    """Edge payload pushed by the entity sync process."""

    org_id: str
    from_node_id: str
    to_node_id: str
    type: EdgeType
    weight: int = Field(1, gt=0)
    meta: dict | None = None
