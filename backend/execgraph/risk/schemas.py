"""Risk engine result models."""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field

from execgraph.graph.deeplinks import Deeplink
from execgraph.graph.schemas import UtcDatetime

PROPAGATED_FROM_PREFIX = "PROPAGATED_FROM_"


class ReasonCode(str, Enum):
    INVOICE_OVERDUE = "INVOICE_OVERDUE"
    INVOICE_HIGH_AMOUNT = "INVOICE_HIGH_AMOUNT"
    WORK_OVERDUE = "WORK_OVERDUE"
    WORK_BLOCKED = "WORK_BLOCKED"
    INCIDENT_OPEN = "INCIDENT_OPEN"
    DEAL_STALE = "DEAL_STALE"
    DEAL_HIGH_AMOUNT = "DEAL_HIGH_AMOUNT"


def propagated_from(node_type: str) -> str:
    return f"{PROPAGATED_FROM_PREFIX}{node_type}"


class DriverEvidence(BaseModel):
    due_at: UtcDatetime | None = None
    amount_cents: int | None = None
    status: str | None = None
    counts: dict[str, int] | None = None


class Driver(BaseModel):
    """A ranked, explained contributor to organization risk."""

    node_id: str
    entity_id: str
    type: str
    title: str | None = None
    risk_score: int
    reason_codes: list[str] = Field(default_factory=list)
    evidence: DriverEvidence = Field(default_factory=DriverEvidence)
    deeplink: Deeplink | None = None


class SnapshotMeta(BaseModel):
    node_count: int = 0
    edge_count: int = 0
    updated_nodes_count: int = 0


class NodeUpdate(BaseModel):
    node_id: str
    risk_score: int
    reasons: list[str]


class RiskComputeResult(BaseModel):
    org_risk_score: int
    as_of_date: date
    node_updates: list[NodeUpdate]
    top_drivers: list[Driver]
    delta_vs_yesterday: int | None = None
    meta: SnapshotMeta


class LatestRisk(BaseModel):
    org_risk_score: int
    delta_vs_yesterday: int | None = None
    top_drivers: list[Driver]
    generated_at: UtcDatetime


class RiskWhy(BaseModel):
    drivers: list[Driver]
    generated_at: UtcDatetime


class RiskHistoryPoint(BaseModel):
    as_of_date: date
    risk_score: int
    created_at: UtcDatetime


class RecomputeRequest(BaseModel):
    max_nodes: int | None = Field(None, ge=1, le=5000)


class RecomputeResponse(BaseModel):
    org_risk_score: int
    top_drivers: list[Driver]
    updated_nodes_count: int
    delta_vs_yesterday: int | None = None


class DispatchResponse(BaseModel):
    as_of_date: date | None = None
    drivers_count: int = 0
    consumers: dict[str, bool] = Field(default_factory=dict)

