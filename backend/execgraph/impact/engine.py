"""Impact radius: bounded, direction-aware reachability with a business summary."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph.graph.deeplinks import route_for
from execgraph.graph.errors import ImpactRadiusTooLargeError, NodeNotFoundError
from execgraph.impact.cache import ImpactRadiusCache
from execgraph.impact.schemas import (
    DeeplinkResult,
    Direction,
    ImpactEdge,
    ImpactNode,
    ImpactRadiusResult,
    NormalizedImpactOptions,
)
from execgraph.impact.summary import build_hotspots, build_summary
from execgraph.storage.models import GraphEdge, GraphNode
from execgraph.timeutils import utcnow

logger = logging.getLogger(__name__)

IMPACT_MAX_NODES = 800
IMPACT_MAX_EDGES = 2000


class ImpactRadiusEngine:
    """Computes what a start node can reach within a depth and direction.

    Unlike ``GraphService.traverse`` the caps are hard failures: a result
    that would exceed them raises ``ImpactRadiusTooLargeError`` instead of
    being truncated. Results are cached per (org, start node, options).
    """

    def __init__(
        self,
        cache: ImpactRadiusCache[ImpactRadiusResult] | None = None,
        max_nodes: int = IMPACT_MAX_NODES,
        max_edges: int = IMPACT_MAX_EDGES,
    ):
        self.cache = cache if cache is not None else ImpactRadiusCache()
        self.max_nodes = max_nodes
        self.max_edges = max_edges

    async def compute_impact_radius(
        self,
        db: AsyncSession,
        org_id: str,
        start_node_id: str,
        options: NormalizedImpactOptions | None = None,
        now: datetime | None = None,
    ) -> ImpactRadiusResult:
        options = options or NormalizedImpactOptions()
        cache_key = (org_id, start_node_id, options)

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(
                "impact_radius_cache_hit",
                extra={"org_id": org_id, "start_node_id": start_node_id},
            )
            return cached

        start = await db.scalar(
            select(GraphNode).where(GraphNode.id == start_node_id, GraphNode.org_id == org_id)
        )
        if start is None:
            raise NodeNotFoundError("Start node not found", details={"node_id": start_node_id})
        start_node = ImpactNode.model_validate(start)

        try:
            visited, edge_ids = await self._expand(db, org_id, start_node.id, options)
        except ImpactRadiusTooLargeError as e:
            logger.warning(
                "impact_radius_too_large",
                extra={
                    "org_id": org_id,
                    "start_node_id": start_node_id,
                    "cap": e.cap,
                    "limit": e.limit,
                    "max_depth": options.max_depth,
                    "direction": options.direction.value,
                },
            )
            raise

        nodes_result = await db.execute(
            select(GraphNode)
            .where(GraphNode.org_id == org_id, GraphNode.id.in_(sorted(visited)))
            .order_by(GraphNode.created_at.asc(), GraphNode.id.asc())
        )
        all_nodes = [ImpactNode.model_validate(node) for node in nodes_result.scalars().all()]

        all_edges: list[ImpactEdge] = []
        if edge_ids:
            edges_result = await db.execute(
                select(GraphEdge)
                .where(GraphEdge.org_id == org_id, GraphEdge.id.in_(sorted(edge_ids)))
                .order_by(GraphEdge.created_at.asc(), GraphEdge.id.asc())
            )
            all_edges = [ImpactEdge.model_validate(edge) for edge in edges_result.scalars().all()]

        # Type filtering applies to the result only; expansion above walked through every type.
        if options.include_types:
            included = set(options.include_types)
            nodes = [node for node in all_nodes if node.type in included]
        else:
            nodes = all_nodes
        node_ids = {node.id for node in nodes}
        edges = [edge for edge in all_edges if edge.from_node_id in node_ids and edge.to_node_id in node_ids]

        result = ImpactRadiusResult(
            start_node=start_node,
            summary=build_summary(nodes, edges, now or utcnow()),
            hotspots=build_hotspots(nodes),
            nodes=nodes,
            edges=edges,
        )
        self.cache.set(cache_key, result)
        return result

    async def _expand(
        self,
        db: AsyncSession,
        org_id: str,
        start_id: str,
        options: NormalizedImpactOptions,
    ) -> tuple[set[str], set[str]]:
        visited: set[str] = {start_id}
        edge_ids: set[str] = set()
        frontier = [start_id]

        for _depth in range(options.max_depth):
            if not frontier:
                break

            if options.direction == Direction.OUT:
                touches = GraphEdge.from_node_id.in_(frontier)
            elif options.direction == Direction.IN:
                touches = GraphEdge.to_node_id.in_(frontier)
            else:
                touches = or_(GraphEdge.from_node_id.in_(frontier), GraphEdge.to_node_id.in_(frontier))

            query = select(GraphEdge.id, GraphEdge.from_node_id, GraphEdge.to_node_id).where(
                GraphEdge.org_id == org_id, touches
            )
            if options.edge_types:
                query = query.where(GraphEdge.type.in_(options.edge_types))
            # One row past the cap is enough to prove an overflow.
            query = query.order_by(GraphEdge.created_at.asc(), GraphEdge.id.asc()).limit(self.max_edges + 1)
            rows = (await db.execute(query)).all()

            frontier_set = set(frontier)
            next_frontier: list[str] = []
            for edge_id, from_id, to_id in rows:
                if edge_id not in edge_ids:
                    if len(edge_ids) >= self.max_edges:
                        raise ImpactRadiusTooLargeError("edge", self.max_edges)
                    edge_ids.add(edge_id)

                reached: list[str] = []
                if options.direction in (Direction.OUT, Direction.BOTH) and from_id in frontier_set:
                    reached.append(to_id)
                if options.direction in (Direction.IN, Direction.BOTH) and to_id in frontier_set:
                    reached.append(from_id)

                for node_id in reached:
                    if node_id in visited:
                        continue
                    if len(visited) >= self.max_nodes:
                        raise ImpactRadiusTooLargeError("node", self.max_nodes)
                    visited.add(node_id)
                    next_frontier.append(node_id)

            frontier = next_frontier

        return visited, edge_ids

    async def map_deeplink(self, db: AsyncSession, org_id: str, node_id: str) -> DeeplinkResult:
        row = (
            await db.execute(
                select(GraphNode.type, GraphNode.entity_id, GraphNode.title).where(
                    GraphNode.id == node_id, GraphNode.org_id == org_id
                )
            )
        ).first()
        if row is None:
            raise NodeNotFoundError("Graph node not found", details={"node_id": node_id})

        node_type, entity_id, title = row
        return DeeplinkResult(url=route_for(node_type, entity_id), label=title or node_type)
