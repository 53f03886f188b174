"""Risk propagation engine.

One run covers one tenant: LOAD, SCORE_BASE, RELAX (three rounds),
PERSIST. The engine only computes and stores; handing drivers to
downstream consumers is the orchestrator's job.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph.config import Settings
from execgraph.risk.schemas import (
    Driver,
    LatestRisk,
    NodeUpdate,
    RiskComputeResult,
    RiskHistoryPoint,
    RiskWhy,
    SnapshotMeta,
)
from execgraph.risk.scoring import (
    ScoringEdge,
    ScoringNode,
    org_risk_score,
    propagate,
    score_base,
    select_top_drivers,
)
from execgraph.storage.models import GraphEdge, GraphNode, OrgRiskSnapshot
from execgraph.timeutils import previous_day, utc_day, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODES = 2000
HARD_MAX_NODES = 5000
MAX_EDGES = 15000
PERSIST_BATCH_SIZE = 200


class RiskEngine:
    """Computes per-node and organization risk for a tenant.

    Runs for the same tenant must not overlap; ``RiskRunOrchestrator``
    serializes them inside one process.
    """

    def __init__(
        self,
        default_max_nodes: int = DEFAULT_MAX_NODES,
        hard_max_nodes: int = HARD_MAX_NODES,
        max_edges: int = MAX_EDGES,
        persist_batch_size: int = PERSIST_BATCH_SIZE,
    ):
        self.hard_max_nodes = hard_max_nodes
        self.default_max_nodes = min(default_max_nodes, hard_max_nodes)
        self.max_edges = max_edges
        self.persist_batch_size = persist_batch_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "RiskEngine":
        return cls(
            default_max_nodes=settings.risk_default_max_nodes,
            hard_max_nodes=settings.risk_hard_max_nodes,
            max_edges=settings.risk_max_edges,
        )

    def resolve_max_nodes(self, max_nodes: int | None) -> int:
        requested = self.default_max_nodes if max_nodes is None else max_nodes
        return min(self.hard_max_nodes, max(1, requested))

    async def compute_org_risk(
        self,
        db: AsyncSession,
        org_id: str,
        max_nodes: int | None = None,
        now: datetime | None = None,
    ) -> RiskComputeResult:
        """Run a full propagation pass and upsert today's snapshot.

        Args:
            db: Session used for every read and write of the run.
            org_id: Tenant to score.
            max_nodes: Optional node budget, clamped to the hard cap.
            now: Reference time for overdue checks and the snapshot day.

        Returns:
            The org score, changed node risks, top drivers and the delta
            against yesterday's snapshot.
        """
        started = time.monotonic()
        now = now or utcnow()
        as_of_date = utc_day(now)
        limit = self.resolve_max_nodes(max_nodes)

        nodes, edges = await self._load_graph(db, org_id, limit)

        if not nodes:
            meta = SnapshotMeta()
            await self._upsert_snapshot(db, org_id, as_of_date, 0, [], meta)
            delta = await self._delta_vs_yesterday(db, org_id, as_of_date, 0)
            return RiskComputeResult(
                org_risk_score=0,
                as_of_date=as_of_date,
                node_updates=[],
                top_drivers=[],
                delta_vs_yesterday=delta,
                meta=meta,
            )

        states = score_base(nodes, now)
        propagate(nodes, edges, states)

        changed = [node for node in nodes if states[node.id].risk != node.risk_score]
        await self._persist_node_risk(db, org_id, [(node.id, states[node.id].risk) for node in changed])

        score = org_risk_score((node.type, states[node.id].risk) for node in nodes)
        drivers = select_top_drivers(nodes, states)
        meta = SnapshotMeta(node_count=len(nodes), edge_count=len(edges), updated_nodes_count=len(changed))

        await self._upsert_snapshot(db, org_id, as_of_date, score, drivers, meta)
        delta = await self._delta_vs_yesterday(db, org_id, as_of_date, score)

        logger.info(
            "risk_run_completed",
            extra={
                "org_id": org_id,
                "org_risk_score": score,
                "node_count": meta.node_count,
                "edge_count": meta.edge_count,
                "updated_nodes_count": meta.updated_nodes_count,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )

        return RiskComputeResult(
            org_risk_score=score,
            as_of_date=as_of_date,
            node_updates=[
                NodeUpdate(
                    node_id=node.id,
                    risk_score=states[node.id].risk,
                    reasons=sorted(states[node.id].reasons),
                )
                for node in changed
            ],
            top_drivers=drivers,
            delta_vs_yesterday=delta,
            meta=meta,
        )

    async def get_latest_risk(self, db: AsyncSession, org_id: str) -> LatestRisk:
        latest = await self._latest_snapshot(db, org_id)
        if latest is None:
            computed = await self.compute_org_risk(db, org_id)
            return LatestRisk(
                org_risk_score=computed.org_risk_score,
                delta_vs_yesterday=computed.delta_vs_yesterday,
                top_drivers=computed.top_drivers,
                generated_at=utcnow(),
            )

        delta = await self._delta_vs_yesterday(db, org_id, latest.as_of_date, latest.risk_score)
        return LatestRisk(
            org_risk_score=latest.risk_score,
            delta_vs_yesterday=delta,
            top_drivers=_drivers_from_snapshot(latest),
            generated_at=latest.created_at,
        )

    async def get_risk_why(self, db: AsyncSession, org_id: str) -> RiskWhy:
        latest = await self._latest_snapshot(db, org_id)
        if latest is None:
            computed = await self.compute_org_risk(db, org_id)
            return RiskWhy(drivers=computed.top_drivers, generated_at=utcnow())

        return RiskWhy(drivers=_drivers_from_snapshot(latest), generated_at=latest.created_at)

    async def get_latest_drivers(self, db: AsyncSession, org_id: str) -> tuple[date, list[Driver]] | None:
        """Latest snapshot day and its drivers, without a cold-start compute."""
        latest = await self._latest_snapshot(db, org_id)
        if latest is None:
            return None
        return latest.as_of_date, _drivers_from_snapshot(latest)

    async def list_snapshots(self, db: AsyncSession, org_id: str, days: int = 30) -> list[RiskHistoryPoint]:
        result = await db.execute(
            select(OrgRiskSnapshot)
            .where(OrgRiskSnapshot.org_id == org_id)
            .order_by(OrgRiskSnapshot.as_of_date.desc(), OrgRiskSnapshot.created_at.desc())
            .limit(days)
        )
        return [
            RiskHistoryPoint(as_of_date=row.as_of_date, risk_score=row.risk_score, created_at=row.created_at)
            for row in result.scalars().all()
        ]

    async def _load_graph(
        self, db: AsyncSession, org_id: str, max_nodes: int
    ) -> tuple[list[ScoringNode], list[ScoringEdge]]:
        node_rows = await db.execute(
            select(
                GraphNode.id,
                GraphNode.type,
                GraphNode.entity_id,
                GraphNode.risk_score,
                GraphNode.title,
                GraphNode.status,
                GraphNode.amount_cents,
                GraphNode.due_at,
            )
            .where(GraphNode.org_id == org_id)
            .order_by(GraphNode.updated_at.desc(), GraphNode.id.asc())
            .limit(max_nodes)
        )
        nodes = [ScoringNode(*row) for row in node_rows.all()]
        if not nodes:
            return [], []

        node_ids = {node.id for node in nodes}
        id_list = sorted(node_ids)
        edge_rows = await db.execute(
            select(
                GraphEdge.id,
                GraphEdge.from_node_id,
                GraphEdge.to_node_id,
                GraphEdge.type,
                GraphEdge.weight,
                GraphEdge.created_at,
            )
            .where(
                GraphEdge.org_id == org_id,
                or_(GraphEdge.from_node_id.in_(id_list), GraphEdge.to_node_id.in_(id_list)),
            )
            .order_by(GraphEdge.created_at.asc(), GraphEdge.id.asc())
            .limit(self.max_edges)
        )
        # Edges to nodes outside the loaded window would score against
        # stale or missing state.
        edges = [
            edge
            for edge in (ScoringEdge(*row) for row in edge_rows.all())
            if edge.from_node_id in node_ids and edge.to_node_id in node_ids
        ]
        return nodes, edges

    async def _persist_node_risk(self, db: AsyncSession, org_id: str, changes: list[tuple[str, int]]) -> None:
        if not changes:
            return

        for start in range(0, len(changes), self.persist_batch_size):
            batch = changes[start:start + self.persist_batch_size]
            await db.execute(
                update(GraphNode),
                [{"id": node_id, "risk_score": risk} for node_id, risk in batch],
            )
            await db.commit()

        logger.info(
            "risk_nodes_persisted",
            extra={
                "org_id": org_id,
                "updated_nodes_count": len(changes),
                "batches": (len(changes) + self.persist_batch_size - 1) // self.persist_batch_size,
            },
        )

    async def _upsert_snapshot(
        self,
        db: AsyncSession,
        org_id: str,
        as_of_date: date,
        score: int,
        drivers: list[Driver],
        meta: SnapshotMeta,
    ) -> OrgRiskSnapshot:
        """Write the (org, day) snapshot, overwriting a row another run inserted first."""
        values = {
            "risk_score": score,
            "drivers": [driver.model_dump(mode="json") for driver in drivers],
            "meta": meta.model_dump(mode="json"),
        }

        snapshot = await self._snapshot_for_day(db, org_id, as_of_date)
        if snapshot is None:
            snapshot = OrgRiskSnapshot(org_id=org_id, as_of_date=as_of_date, **values)
            db.add(snapshot)
            try:
                await db.commit()
                return snapshot
            except IntegrityError:
                # A concurrent run won the insert; overwrite its row instead.
                await db.rollback()
                logger.info(
                    "risk_snapshot_insert_conflict",
                    extra={"org_id": org_id, "as_of_date": as_of_date.isoformat()},
                )
                snapshot = await self._snapshot_for_day(db, org_id, as_of_date)

        for key, value in values.items():
            setattr(snapshot, key, value)
        await db.commit()
        return snapshot

    async def _snapshot_for_day(self, db: AsyncSession, org_id: str, as_of_date: date) -> OrgRiskSnapshot | None:
        result = await db.execute(
            select(OrgRiskSnapshot).where(
                OrgRiskSnapshot.org_id == org_id,
                OrgRiskSnapshot.as_of_date == as_of_date,
            )
        )
        return result.scalars().first()

    async def _latest_snapshot(self, db: AsyncSession, org_id: str) -> OrgRiskSnapshot | None:
        result = await db.execute(
            select(OrgRiskSnapshot)
            .where(OrgRiskSnapshot.org_id == org_id)
            .order_by(OrgRiskSnapshot.as_of_date.desc(), OrgRiskSnapshot.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def _delta_vs_yesterday(self, db: AsyncSession, org_id: str, as_of_date: date, score: int) -> int | None:
        yesterday_score = await db.scalar(
            select(OrgRiskSnapshot.risk_score).where(
                OrgRiskSnapshot.org_id == org_id,
                OrgRiskSnapshot.as_of_date == previous_day(as_of_date),
            )
        )
        if yesterday_score is None:
            return None
        return score - yesterday_score


def _drivers_from_snapshot(snapshot: OrgRiskSnapshot) -> list[Driver]:
    if not isinstance(snapshot.drivers, list):
        return []
    return [Driver.model_validate(item) for item in snapshot.drivers]
