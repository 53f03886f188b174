"""SQLAlchemy models for the execution graph."""

from datetime import date, datetime, timezone
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from execgraph.db_base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================

class NodeType(str, PyEnum):
    DEAL = "DEAL"
    WORK_ITEM = "WORK_ITEM"
    INVOICE = "INVOICE"
    COMPANY = "COMPANY"
    CONTACT = "CONTACT"
    INCIDENT = "INCIDENT"


class EdgeType(str, PyEnum):
    BLOCKS = "BLOCKS"
    DEPENDS_ON = "DEPENDS_ON"
    BILLED_BY = "BILLED_BY"
    CREATED_FROM = "CREATED_FROM"
    RELATES_TO = "RELATES_TO"
    ASSIGNED_TO = "ASSIGNED_TO"


# ============================================================================
# Models
# ============================================================================

class GraphNode(Base):
    """Projection of one source entity inside a tenant's graph.

    ``risk_score`` is owned by the risk engine; entity sync never writes it.
    """

    __tablename__ = "graph_nodes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    occurred_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "type", "entity_id", name="uq_graph_nodes_org_type_entity"),
        Index("ix_graph_nodes_org_type_updated", "org_id", "type", "updated_at"),
        Index("ix_graph_nodes_org_updated", "org_id", "updated_at"),
        Index("ix_graph_nodes_org_risk", "org_id", "risk_score"),
    )


class GraphEdge(Base):
    """Directed relation between two nodes of the same tenant."""

    __tablename__ = "graph_edges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    from_node_id: Mapped[str] = mapped_column(String(64), ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=False)
    to_node_id: Mapped[str] = mapped_column(String(64), ForeignKey("graph_nodes.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    from_node: Mapped["GraphNode"] = relationship(foreign_keys=[from_node_id], lazy="raise")
    to_node: Mapped["GraphNode"] = relationship(foreign_keys=[to_node_id], lazy="raise")

    __table_args__ = (
        UniqueConstraint("org_id", "from_node_id", "to_node_id", "type", name="uq_graph_edges_org_from_to_type"),
        Index("ix_graph_edges_org_from", "org_id", "from_node_id"),
        Index("ix_graph_edges_org_to", "org_id", "to_node_id"),
        Index("ix_graph_edges_org_type_created", "org_id", "type", "created_at"),
    )


class OrgRiskSnapshot(Base):
    """Daily organization-level risk result.

    One row per (org, UTC day). Re-running the engine on the same day
    overwrites the row; past days serve as the delta baseline.
    """

    __tablename__ = "org_risk_snapshots"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    org_id: Mapped[str] = mapped_column(String(64), nullable=False)
    as_of_date: Mapped[date] = mapped_column(Date, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    drivers: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("org_id", "as_of_date", name="uq_org_risk_snapshots_org_day"),
        Index("ix_org_risk_snapshots_org_day", "org_id", "as_of_date"),
    )
