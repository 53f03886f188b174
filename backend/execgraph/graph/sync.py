"""Idempotent node/edge upserts driven by the external entity sync process."""

from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph.graph.errors import CrossTenantEdgeError, InvalidProjectionError, NodeNotFoundError
from execgraph.graph.schemas import EdgeProjection, NodeProjection
from execgraph.storage.models import GraphEdge, GraphNode
from execgraph.timeutils import utcnow

logger = logging.getLogger(__name__)


class GraphSyncService:
    """Keeps graph nodes and edges aligned with their source entities.

    Upserts are keyed on the natural identities ``(org, type, entity)`` for
    nodes and ``(org, from, to, type)`` for edges, so repeated calls with the
    same projection are harmless. Risk scores are left untouched.
    """

    async def upsert_node(self, db: AsyncSession, node: NodeProjection) -> GraphNode:
        now = utcnow()
        query = select(GraphNode).where(
            GraphNode.org_id == node.org_id,
            GraphNode.type == node.type.value,
            GraphNode.entity_id == node.entity_id,
        )
        result = await db.execute(query)
        existing = result.scalars().first()

        if existing:
            existing.title = node.title
            existing.status = node.status
            existing.amount_cents = node.amount_cents
            existing.currency = node.currency
            existing.due_at = node.due_at
            existing.occurred_at = node.occurred_at
            existing.meta = node.meta
            existing.updated_at = now
            await db.flush()
            return existing

        created = GraphNode(
            org_id=node.org_id,
            type=node.type.value,
            entity_id=node.entity_id,
            title=node.title,
            status=node.status,
            amount_cents=node.amount_cents,
            currency=node.currency,
            due_at=node.due_at,
            occurred_at=node.occurred_at,
            meta=node.meta,
            risk_score=0,
            created_at=now,
            updated_at=now,
        )
        db.add(created)
        await db.flush()
        return created

    async def ensure_edge(self, db: AsyncSession, edge: EdgeProjection) -> GraphEdge:
        if edge.from_node_id == edge.to_node_id:
            raise InvalidProjectionError(
                "Edge endpoints must be distinct nodes",
                details={"node_id": edge.from_node_id},
            )

        endpoint_ids = [edge.from_node_id, edge.to_node_id]
        result = await db.execute(
            select(GraphNode.id).where(GraphNode.id.in_(endpoint_ids), GraphNode.org_id == edge.org_id)
        )
        found = set(result.scalars().all())
        missing = [node_id for node_id in endpoint_ids if node_id not in found]
        if missing:
            raise CrossTenantEdgeError(
                "Edge endpoints must exist in the same tenant",
                details={"org_id": edge.org_id, "missing_node_ids": missing},
            )

        query = select(GraphEdge).where(
            GraphEdge.org_id == edge.org_id,
            GraphEdge.from_node_id == edge.from_node_id,
            GraphEdge.to_node_id == edge.to_node_id,
            GraphEdge.type == edge.type.value,
        )
        result = await db.execute(query)
        existing = result.scalars().first()

        if existing:
            existing.weight = edge.weight
            if edge.meta is not None:
                existing.meta = edge.meta
            await db.flush()
            return existing

        created = GraphEdge(
            org_id=edge.org_id,
            from_node_id=edge.from_node_id,
            to_node_id=edge.to_node_id,
            type=edge.type.value,
            weight=edge.weight,
            meta=edge.meta,
            created_at=utcnow(),
        )
        db.add(created)
        await db.flush()
        return created

    async def delete_node(self, db: AsyncSession, org_id: str, node_id: str) -> int:
        """Remove a node and its incident edges. Returns the number of edges removed."""
        node = await db.scalar(select(GraphNode).where(GraphNode.id == node_id, GraphNode.org_id == org_id))
        if node is None:
            raise NodeNotFoundError("Graph node not found", details={"node_id": node_id})

        result = await db.execute(
            delete(GraphEdge).where(
                GraphEdge.org_id == org_id,
                or_(GraphEdge.from_node_id == node_id, GraphEdge.to_node_id == node_id),
            )
        )
        await db.delete(node)
        await db.flush()

        removed_edges = result.rowcount or 0
        logger.info(
            "graph_node_deleted",
            extra={"org_id": org_id, "node_id": node_id, "removed_edges": removed_edges},
        )
        return removed_edges
