"""Impact radius request, options and result models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

from execgraph.graph.schemas import UtcDatetime

MAX_DEPTH = 5
DEFAULT_DEPTH = 3
MAX_TYPE_FILTERS = 50


class Direction(str, Enum):
    OUT = "OUT"
    IN = "IN"
    BOTH = "BOTH"


class ImpactRadiusRequest(BaseModel):
    start_node_id: str
    max_depth: int | None = Field(None, ge=1, le=MAX_DEPTH)
    direction: Direction | None = None
    edge_types: list[str] | None = Field(None, max_length=MAX_TYPE_FILTERS)
    include_types: list[str] | None = Field(None, max_length=MAX_TYPE_FILTERS)


def _normalize_types(values: Iterable[str] | None) -> tuple[str, ...] | None:
    if not values:
        return None
    cleaned = sorted({value.strip() for value in values if value and value.strip()})
    return tuple(cleaned) or None


@dataclass(frozen=True)
class NormalizedImpactOptions:
    """Hashable, canonical form of the traversal options (also the cache key)."""

    max_depth: int = DEFAULT_DEPTH
    direction: Direction = Direction.BOTH
    edge_types: tuple[str, ...] | None = None
    include_types: tuple[str, ...] | None = None

    @classmethod
    def build(
        cls,
        max_depth: int | None = None,
        direction: Direction | str | None = None,
        edge_types: Iterable[str] | None = None,
        include_types: Iterable[str] | None = None,
    ) -> "NormalizedImpactOptions":
        depth = DEFAULT_DEPTH if max_depth is None else max_depth
        return cls(
            max_depth=min(MAX_DEPTH, max(1, depth)),
            direction=Direction(direction) if direction else Direction.BOTH,
            edge_types=_normalize_types(edge_types),
            include_types=_normalize_types(include_types),
        )

    @classmethod
    def from_request(cls, request: ImpactRadiusRequest) -> "NormalizedImpactOptions":
        return cls.build(request.max_depth, request.direction, request.edge_types, request.include_types)


class ImpactNode(BaseModel):
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


class ImpactEdge(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    from_node_id: str
    to_node_id: str
    weight: int
    created_at: UtcDatetime


class MaxRiskNode(BaseModel):
    id: str
    type: str
    title: str | None = None
    risk_score: int


class ImpactSummary(BaseModel):
    money_at_risk_cents: int = 0
    overdue_invoices_count: int = 0
    open_work_count: int = 0
    overdue_work_count: int = 0
    deals_at_risk_cents: int = 0
    companies_impacted_count: int = 0
    incidents_count: int = 0
    max_risk_node: MaxRiskNode | None = None
    path_counts_by_type: dict[str, int] = Field(default_factory=dict)


class Hotspot(BaseModel):
    id: str
    type: str
    title: str | None = None
    status: str | None = None
    amount_cents: int | None = None
    due_at: UtcDatetime | None = None
    risk_score: int


class ImpactRadiusResult(BaseModel):
    start_node: ImpactNode
    summary: ImpactSummary
    hotspots: list[Hotspot]
    nodes: list[ImpactNode]
    edges: list[ImpactEdge]


class DeeplinkResult(BaseModel):
    url: str | None = None
    label: str
