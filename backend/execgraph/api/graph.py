"""Graph store API endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph.api.deps import get_graph_service, get_org_id
from execgraph.graph import GraphService
from execgraph.graph.schemas import (
    MAX_PAGE_SIZE,
    EdgeListQuery,
    GraphEdgeWithEndpoints,
    GraphNodeRead,
    NodeDetail,
    NodeListQuery,
    Page,
    TraverseRequest,
    TraverseResult,
)
from execgraph.storage.database import get_db

router = APIRouter(prefix="/api/graph", tags=["graph"])


@router.get("/nodes", response_model=Page[GraphNodeRead])
async def list_nodes(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    type: str | None = None,
    q: str | None = None,
    org_id: str = Depends(get_org_id),
    service: GraphService = Depends(get_graph_service),
    db: AsyncSession = Depends(get_db),
):
    """List the tenant's nodes, most recently updated first."""
    query = NodeListQuery(page=page, page_size=page_size, type=type, q=q)
    return await service.list_nodes(db, org_id, query)


@router.get("/edges", response_model=Page[GraphEdgeWithEndpoints])
async def list_edges(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    type: str | None = None,
    from_node_id: str | None = None,
    to_node_id: str | None = None,
    node_id: str | None = None,
    org_id: str = Depends(get_org_id),
    service: GraphService = Depends(get_graph_service),
    db: AsyncSession = Depends(get_db),
):
    query = EdgeListQuery(
        page=page,
        page_size=page_size,
        type=type,
        from_node_id=from_node_id,
        to_node_id=to_node_id,
        node_id=node_id,
    )
    return await service.list_edges(db, org_id, query)


@router.get("/node/{node_id}", response_model=NodeDetail)
async def get_node(
    node_id: str,
    org_id: str = Depends(get_org_id),
    service: GraphService = Depends(get_graph_service),
    db: AsyncSession = Depends(get_db),
):
    """Node with its most recent incident edges."""
    return await service.get_node(db, org_id, node_id)


@router.post("/traverse", response_model=TraverseResult)
async def traverse(
    request: TraverseRequest,
    org_id: str = Depends(get_org_id),
    service: GraphService = Depends(get_graph_service),
    db: AsyncSession = Depends(get_db),
):
    return await service.traverse(db, org_id, request)
