"""Entity sync endpoints used by the source-entity projection process."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph.api.deps import get_org_id, get_sync_service
from execgraph.graph import GraphSyncService, TenantMismatchError
from execgraph.graph.schemas import EdgeProjection, GraphEdgeRead, GraphNodeRead, NodeProjection
from execgraph.storage.database import get_db

router = APIRouter(prefix="/api/graph/sync", tags=["sync"])


def _check_tenant(org_id: str, payload_org_id: str) -> None:
    if org_id != payload_org_id:
        raise TenantMismatchError(
            "Payload org_id does not match X-Org-Id",
            details={"org_id": org_id, "payload_org_id": payload_org_id},
        )


@router.put("/nodes", response_model=GraphNodeRead)
async def upsert_node(
    projection: NodeProjection,
    org_id: str = Depends(get_org_id),
    service: GraphSyncService = Depends(get_sync_service),
    db: AsyncSession = Depends(get_db),
):
    """Insert or update the node mirroring a source entity."""
    _check_tenant(org_id, projection.org_id)
    node = await service.upsert_node(db, projection)
    return GraphNodeRead.model_validate(node)


@router.put("/edges", response_model=GraphEdgeRead)
async def ensure_edge(
    projection: EdgeProjection,
    org_id: str = Depends(get_org_id),
    service: GraphSyncService = Depends(get_sync_service),
    db: AsyncSession = Depends(get_db),
):
    _check_tenant(org_id, projection.org_id)
    edge = await service.ensure_edge(db, projection)
    return GraphEdgeRead.model_validate(edge)


@router.delete("/nodes/{node_id}")
async def delete_node(
    node_id: str,
    org_id: str = Depends(get_org_id),
    service: GraphSyncService = Depends(get_sync_service),
    db: AsyncSession = Depends(get_db),
):
    removed_edges = await service.delete_node(db, org_id, node_id)
    return {"deleted": True, "node_id": node_id, "removed_edges": removed_edges}
