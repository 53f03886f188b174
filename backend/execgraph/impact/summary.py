"""Summary and hotspot builders over an impact radius result set."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Sequence

from execgraph.impact.schemas import Hotspot, ImpactEdge, ImpactNode, ImpactSummary, MaxRiskNode
from execgraph.timeutils import as_utc, is_past

HOTSPOT_LIMIT = 10

INVOICE_AT_RISK_STATUSES = frozenset({"DRAFT", "SENT", "OVERDUE", "UNPAID"})
PAID_STATUSES = frozenset({"PAID"})
DONE_STATUSES = frozenset({"DONE", "COMPLETED", "CLOSED"})
WON_STATUSES = frozenset({"WON", "CLOSED_WON"})


def build_summary(nodes: Sequence[ImpactNode], edges: Sequence[ImpactEdge], now: datetime) -> ImpactSummary:
    summary = ImpactSummary(path_counts_by_type=dict(Counter(edge.type for edge in edges)))
    companies: set[str] = set()
    incidents: set[str] = set()

    for node in nodes:
        status = (node.status or "").upper()

        if node.type == "INVOICE":
            # Status can lag behind the due date.
            overdue_by_date = is_past(node.due_at, now) and status not in PAID_STATUSES
            if status in INVOICE_AT_RISK_STATUSES or overdue_by_date:
                summary.money_at_risk_cents += node.amount_cents or 0
            if overdue_by_date or status == "OVERDUE":
                summary.overdue_invoices_count += 1

        elif node.type == "WORK_ITEM":
            if status not in DONE_STATUSES:
                summary.open_work_count += 1
                if is_past(node.due_at, now):
                    summary.overdue_work_count += 1

        elif node.type == "DEAL":
            if status not in WON_STATUSES:
                summary.deals_at_risk_cents += node.amount_cents or 0

        elif node.type == "COMPANY":
            companies.add(node.id)

        elif node.type == "INCIDENT":
            incidents.add(node.id)

    summary.companies_impacted_count = len(companies)
    summary.incidents_count = len(incidents)

    if nodes:
        top = min(nodes, key=lambda node: (-node.risk_score, node.id))
        summary.max_risk_node = MaxRiskNode(id=top.id, type=top.type, title=top.title, risk_score=top.risk_score)

    return summary


def _hotspot_key(node: ImpactNode) -> tuple:
    due = as_utc(node.due_at)
    return (
        -node.risk_score,
        due is None,
        due.timestamp() if due is not None else 0.0,
        -(node.amount_cents or 0),
    )


def build_hotspots(nodes: Sequence[ImpactNode], limit: int = HOTSPOT_LIMIT) -> list[Hotspot]:
    """Highest risk first, then earliest due date (undated last), then largest amount."""
    ranked = sorted(nodes, key=_hotspot_key)[:limit]
    return [
        Hotspot(
            id=node.id,
            type=node.type,
            title=node.title,
            status=node.status,
            amount_cents=node.amount_cents,
            due_at=node.due_at,
            risk_score=node.risk_score,
        )
        for node in ranked
    ]
