"""Deterministic risk scoring and propagation.

Everything here is pure: the engine loads rows, converts them into
``ScoringNode``/``ScoringEdge`` values and hands them to these functions,
so the rules can be exercised without a database.

Base rules per node type (all results clamped to 0..100):

- INVOICE: 0 when PAID; +60 overdue by date, +20 for SENT/OVERDUE/UNPAID,
  plus an amount percentile boost of up to 20.
- WORK_ITEM: 0 when DONE/COMPLETED/CLOSED; +50 overdue, +25 BLOCKED.
- DEAL: 0 when WON/CLOSED_WON; +20 when the status mentions STALE, plus an
  amount percentile boost of up to 25.
- INCIDENT: +70 while OPEN or ACKNOWLEDGED.

Propagation runs a fixed number of rounds. Each round sums the
contributions of every edge from the risk values as they stood when the
round began, then applies them, so edge order inside a round never changes
the outcome.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

from execgraph.graph.deeplinks import build_deeplink
from execgraph.risk.schemas import Driver, DriverEvidence, ReasonCode, propagated_from
from execgraph.timeutils import as_utc, is_past

PROPAGATION_ROUNDS = 3
NOISE_FLOOR = 0.5
MIN_EDGE_WEIGHT = 1
MAX_EDGE_WEIGHT = 5

INVOICE_AMOUNT_MAX_BOOST = 20
DEAL_AMOUNT_MAX_BOOST = 25

TOP_DRIVERS_LIMIT = 10
INVOICE_BUCKET_SIZE = 20
WORK_BUCKET_SIZE = 20
OTHER_BUCKET_SIZE = 10

DONE_WORK_STATUSES = frozenset({"DONE", "COMPLETED", "CLOSED"})
WON_DEAL_STATUSES = frozenset({"WON", "CLOSED_WON"})
PAID_INVOICE_STATUSES = frozenset({"PAID"})
RISK_INVOICE_STATUSES = frozenset({"SENT", "OVERDUE", "UNPAID"})
OPEN_INCIDENT_STATUSES = frozenset({"OPEN", "ACKNOWLEDGED"})

EDGE_FACTORS: dict[str, float] = {
    "BLOCKS": 0.25,
    "DEPENDS_ON": 0.25,
    "BILLED_BY": 0.2,
    "CREATED_FROM": 0.15,
    "RELATES_TO": 0.1,
    "ASSIGNED_TO": 0.05,
}


@dataclass(frozen=True)
class ScoringNode:
    id: str
    type: str
    entity_id: str
    risk_score: int = 0
    title: str | None = None
    status: str | None = None
    amount_cents: int | None = None
    due_at: datetime | None = None


@dataclass(frozen=True)
class ScoringEdge:
    id: str
    from_node_id: str
    to_node_id: str
    type: str
    weight: int
    created_at: datetime


@dataclass
class NodeRiskState:
    base_risk: int
    risk: int
    reasons: set[str] = field(default_factory=set)
    incoming_by_type: dict[str, float] = field(default_factory=dict)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_risk(value: float) -> int:
    if value <= 0:
        return 0
    if value >= 100:
        return 100
    return round_half_up(value)


def mean(values: Sequence[int]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def build_amount_scale(nodes: Iterable[ScoringNode], node_type: str, max_boost: int) -> dict[str, int]:
    """Percentile-rank boost for same-type nodes with a positive amount.

    A lone qualifying node gets the full boost; otherwise the boost grows
    linearly from 0 (smallest amount) to ``max_boost`` (largest).
    """
    bucket = sorted(
        (node for node in nodes if node.type == node_type and node.amount_cents is not None and node.amount_cents > 0),
        key=lambda node: (node.amount_cents, node.id),
    )
    if not bucket:
        return {}
    if len(bucket) == 1:
        return {bucket[0].id: max_boost}

    last_index = len(bucket) - 1
    return {node.id: round_half_up(index / last_index * max_boost) for index, node in enumerate(bucket)}


def compute_base_risk(
    node: ScoringNode,
    now: datetime,
    invoice_amount_scale: dict[str, int],
    deal_amount_scale: dict[str, int],
) -> tuple[int, list[str]]:
    status = (node.status or "").upper()
    risk = 0
    reasons: list[str] = []

    if node.type == "INVOICE":
        if status in PAID_INVOICE_STATUSES:
            return 0, reasons
        if is_past(node.due_at, now):
            risk += 60
            reasons.append(ReasonCode.INVOICE_OVERDUE.value)
        if status in RISK_INVOICE_STATUSES:
            risk += 20
        boost = invoice_amount_scale.get(node.id, 0)
        if boost > 0:
            risk += boost
            reasons.append(ReasonCode.INVOICE_HIGH_AMOUNT.value)
        return clamp_risk(risk), reasons

    if node.type == "WORK_ITEM":
        if status in DONE_WORK_STATUSES:
            return 0, reasons
        if is_past(node.due_at, now):
            risk += 50
            reasons.append(ReasonCode.WORK_OVERDUE.value)
        if status == "BLOCKED":
            risk += 25
            reasons.append(ReasonCode.WORK_BLOCKED.value)
        return clamp_risk(risk), reasons

    if node.type == "DEAL":
        if status in WON_DEAL_STATUSES:
            return 0, reasons
        if "STALE" in status:
            risk += 20
            reasons.append(ReasonCode.DEAL_STALE.value)
        boost = deal_amount_scale.get(node.id, 0)
        if boost > 0:
            risk += boost
            reasons.append(ReasonCode.DEAL_HIGH_AMOUNT.value)
        return clamp_risk(risk), reasons

    if node.type == "INCIDENT":
        if status in OPEN_INCIDENT_STATUSES:
            risk += 70
            reasons.append(ReasonCode.INCIDENT_OPEN.value)
        return clamp_risk(risk), reasons

    return 0, reasons


def score_base(nodes: Sequence[ScoringNode], now: datetime) -> dict[str, NodeRiskState]:
    invoice_scale = build_amount_scale(nodes, "INVOICE", INVOICE_AMOUNT_MAX_BOOST)
    deal_scale = build_amount_scale(nodes, "DEAL", DEAL_AMOUNT_MAX_BOOST)

    states: dict[str, NodeRiskState] = {}
    for node in nodes:
        risk, reasons = compute_base_risk(node, now, invoice_scale, deal_scale)
        states[node.id] = NodeRiskState(base_risk=risk, risk=risk, reasons=set(reasons))
    return states


def edge_order_key(edge: ScoringEdge) -> tuple[datetime, str]:
    return as_utc(edge.created_at), edge.id


def propagate(
    nodes: Sequence[ScoringNode],
    edges: Sequence[ScoringEdge],
    states: dict[str, NodeRiskState],
    rounds: int = PROPAGATION_ROUNDS,
) -> dict[str, NodeRiskState]:
    """Relax risk along edges in place and return ``states``."""
    type_by_id = {node.id: node.type for node in nodes}
    ordered_edges = sorted(
        (edge for edge in edges if edge.from_node_id in states and edge.to_node_id in states),
        key=edge_order_key,
    )

    for _round in range(rounds):
        increments: dict[str, float] = {}

        for edge in ordered_edges:
            source = states[edge.from_node_id]
            if source.risk <= 0:
                continue

            factor = EDGE_FACTORS.get(edge.type, 0.0)
            if factor <= 0:
                continue

            weight = min(MAX_EDGE_WEIGHT, max(MIN_EDGE_WEIGHT, edge.weight or MIN_EDGE_WEIGHT))
            propagated = source.risk * factor * weight
            if propagated <= NOISE_FLOOR:
                continue

            increments[edge.to_node_id] = increments.get(edge.to_node_id, 0.0) + propagated

            source_type = type_by_id[edge.from_node_id]
            target = states[edge.to_node_id]
            target.reasons.add(propagated_from(source_type))
            target.incoming_by_type[source_type] = target.incoming_by_type.get(source_type, 0.0) + propagated

        for node_id, increment in increments.items():
            state = states[node_id]
            state.risk = clamp_risk(state.risk + increment)

    return states


def org_risk_score(scored: Iterable[tuple[str, int]]) -> int:
    """Blend the top invoice, work item and other-type risks into one score."""
    invoices: list[int] = []
    work_items: list[int] = []
    others: list[int] = []
    for node_type, risk in scored:
        if node_type == "INVOICE":
            invoices.append(risk)
        elif node_type == "WORK_ITEM":
            work_items.append(risk)
        else:
            others.append(risk)

    invoice_top = sorted(invoices, reverse=True)[:INVOICE_BUCKET_SIZE]
    work_top = sorted(work_items, reverse=True)[:WORK_BUCKET_SIZE]
    other_top = sorted(others, reverse=True)[:OTHER_BUCKET_SIZE]

    return clamp_risk(0.45 * mean(invoice_top) + 0.35 * mean(work_top) + 0.2 * mean(other_top))


def to_driver(node: ScoringNode, state: NodeRiskState | None) -> Driver:
    counts = {}
    if state is not None:
        counts = {source_type: round_half_up(value) for source_type, value in state.incoming_by_type.items()}

    return Driver(
        node_id=node.id,
        entity_id=node.entity_id,
        type=node.type,
        title=node.title,
        risk_score=state.risk if state is not None else node.risk_score,
        reason_codes=sorted(state.reasons) if state is not None else [],
        evidence=DriverEvidence(
            due_at=node.due_at,
            amount_cents=node.amount_cents,
            status=node.status or None,
            counts=counts or None,
        ),
        deeplink=build_deeplink(node.type, node.entity_id, node.title),
    )


def select_top_drivers(
    nodes: Sequence[ScoringNode],
    states: dict[str, NodeRiskState],
    limit: int = TOP_DRIVERS_LIMIT,
) -> list[Driver]:
    ranked = sorted(nodes, key=lambda node: (-states[node.id].risk, node.id))
    return [to_driver(node, states[node.id]) for node in ranked[:limit]]
