"""Tenant-scoped graph listing, lookup and bounded traversal."""

from __future__ import annotations

import logging
import math

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from execgraph.graph.errors import NodeNotFoundError
from execgraph.graph.schemas import (
    EdgeListQuery,
    GraphEdgeRead,
    GraphEdgeWithEndpoints,
    GraphNodeRead,
    NodeDetail,
    NodeListQuery,
    Page,
    TraverseRequest,
    TraverseResult,
)
from execgraph.storage.models import GraphEdge, GraphNode

logger = logging.getLogger(__name__)

TRAVERSE_MAX_NODES = 500
TRAVERSE_MAX_EDGES = 1000
NODE_DETAIL_EDGE_LIMIT = 50


def _total_pages(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


class GraphService:
    """Read side of the graph store.

    Traversal caps are a normal stop condition: hitting them returns what
    was visited so far instead of raising.
    """

    def __init__(self, max_nodes: int = TRAVERSE_MAX_NODES, max_edges: int = TRAVERSE_MAX_EDGES):
        self.max_nodes = max_nodes
        self.max_edges = max_edges

    async def list_nodes(self, db: AsyncSession, org_id: str, query: NodeListQuery) -> Page[GraphNodeRead]:
        conditions = [GraphNode.org_id == org_id]
        if query.type:
            conditions.append(GraphNode.type == query.type)
        if query.q:
            conditions.append(GraphNode.title.icontains(query.q, autoescape=True))

        total = await db.scalar(select(func.count()).select_from(GraphNode).where(*conditions)) or 0
        result = await db.execute(
            select(GraphNode)
            .where(*conditions)
            .order_by(GraphNode.updated_at.desc(), GraphNode.id.asc())
            .offset((query.page - 1) * query.page_size)
            .limit(query.page_size)
        )
        items = [GraphNodeRead.model_validate(node) for node in result.scalars().all()]

        return Page[GraphNodeRead](
            items=items,
            page=query.page,
            page_size=query.page_size,
            total=total,
            total_pages=_total_pages(total, query.page_size),
        )

    async def list_edges(self, db: AsyncSession, org_id: str, query: EdgeListQuery) -> Page[GraphEdgeWithEndpoints]:
        conditions = [GraphEdge.org_id == org_id]
        if query.type:
            conditions.append(GraphEdge.type == query.type)
        if query.from_node_id:
            conditions.append(GraphEdge.from_node_id == query.from_node_id)
        if query.to_node_id:
            conditions.append(GraphEdge.to_node_id == query.to_node_id)
        if query.node_id:
            conditions.append(or_(GraphEdge.from_node_id == query.node_id, GraphEdge.to_node_id == query.node_id))

        total = await db.scalar(select(func.count()).select_from(GraphEdge).where(*conditions)) or 0
        result = await db.execute(
            select(GraphEdge)
            .options(selectinload(GraphEdge.from_node), selectinload(GraphEdge.to_node))
            .where(*conditions)
            .order_by(GraphEdge.created_at.desc(), GraphEdge.id.asc())
            .offset((query.page - 1) * query.page_size)
            .limit(query.page_size)
        )
        items = [GraphEdgeWithEndpoints.model_validate(edge) for edge in result.scalars().all()]

        return Page[GraphEdgeWithEndpoints](
            items=items,
            page=query.page,
            page_size=query.page_size,
            total=total,
            total_pages=_total_pages(total, query.page_size),
        )

    async def get_node(self, db: AsyncSession, org_id: str, node_id: str) -> NodeDetail:
        node = await db.scalar(
            select(GraphNode).where(GraphNode.id == node_id, GraphNode.org_id == org_id)
        )
        if node is None:
            raise NodeNotFoundError("Graph node not found", details={"node_id": node_id})

        result = await db.execute(
            select(GraphEdge)
            .options(selectinload(GraphEdge.from_node), selectinload(GraphEdge.to_node))
            .where(
                GraphEdge.org_id == org_id,
                or_(GraphEdge.from_node_id == node_id, GraphEdge.to_node_id == node_id),
            )
            .order_by(GraphEdge.created_at.desc(), GraphEdge.id.asc())
            .limit(NODE_DETAIL_EDGE_LIMIT)
        )

        return NodeDetail(
            node=GraphNodeRead.model_validate(node),
            edges=[GraphEdgeWithEndpoints.model_validate(edge) for edge in result.scalars().all()],
        )

    async def traverse(self, db: AsyncSession, org_id: str, request: TraverseRequest) -> TraverseResult:
        """Undirected breadth-first expansion from ``request.start_node_id``."""
        start_id = await db.scalar(
            select(GraphNode.id).where(GraphNode.id == request.start_node_id, GraphNode.org_id == org_id)
        )
        if start_id is None:
            raise NodeNotFoundError("Start node not found", details={"node_id": request.start_node_id})

        visited: set[str] = {start_id}
        edge_ids: set[str] = set()
        frontier = [start_id]
        capped = False

        for _depth in range(request.max_depth):
            if not frontier:
                break

            query = select(GraphEdge.id, GraphEdge.from_node_id, GraphEdge.to_node_id).where(
                GraphEdge.org_id == org_id,
                or_(GraphEdge.from_node_id.in_(frontier), GraphEdge.to_node_id.in_(frontier)),
            )
            if request.edge_types:
                query = query.where(GraphEdge.type.in_(request.edge_types))
            query = query.order_by(GraphEdge.created_at.asc(), GraphEdge.id.asc()).limit(self.max_edges)
            rows = (await db.execute(query)).all()

            frontier_set = set(frontier)
            next_frontier: list[str] = []
            for edge_id, from_id, to_id in rows:
                if len(edge_ids) >= self.max_edges:
                    break
                edge_ids.add(edge_id)

                connected_id = to_id if from_id in frontier_set else from_id
                if len(visited) < self.max_nodes and connected_id not in visited:
                    visited.add(connected_id)
                    next_frontier.append(connected_id)

            if len(visited) >= self.max_nodes or len(edge_ids) >= self.max_edges:
                capped = True
                break

            frontier = next_frontier

        if capped:
            logger.info(
                "graph_traverse_capped",
                extra={
                    "org_id": org_id,
                    "start_node_id": start_id,
                    "nodes": len(visited),
                    "edges": len(edge_ids),
                },
            )

        nodes_result = await db.execute(
            select(GraphNode)
            .where(GraphNode.org_id == org_id, GraphNode.id.in_(sorted(visited)))
            .order_by(GraphNode.created_at.asc(), GraphNode.id.asc())
        )
        edges_result = await db.execute(
            select(GraphEdge)
            .where(GraphEdge.org_id == org_id, GraphEdge.id.in_(sorted(edge_ids)))
            .order_by(GraphEdge.created_at.asc(), GraphEdge.id.asc())
        )

        return TraverseResult(
            nodes=[GraphNodeRead.model_validate(node) for node in nodes_result.scalars().all()],
            edges=[GraphEdgeRead.model_validate(edge) for edge in edges_result.scalars().all()],
        )
