"""Impact radius API endpoints."""

from fastapi import APIRouter, Depends, Query
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph.api.deps import get_impact_engine, get_org_id
from execgraph.impact import ImpactRadiusEngine
from execgraph.impact.schemas import (
    MAX_DEPTH,
    MAX_TYPE_FILTERS,
    DeeplinkResult,
    Direction,
    ImpactRadiusRequest,
    ImpactRadiusResult,
    NormalizedImpactOptions,
)
from execgraph.storage.database import get_db

router = APIRouter(prefix="/api/graph", tags=["impact"])


def _split_csv(field: str, value: str | None) -> list[str] | None:
    """Parse a comma-separated type filter, with the same size limit as the POST body."""
    if not value:
        return None
    items = [item for item in (part.strip() for part in value.split(",")) if item]
    if len(items) > MAX_TYPE_FILTERS:
        raise RequestValidationError(
            [
                {
                    "type": "too_long",
                    "loc": ("query", field),
                    "msg": f"List should have at most {MAX_TYPE_FILTERS} items after validation, not {len(items)}",
                    "input": value,
                }
            ]
        )
    return items


@router.post("/impact-radius", response_model=ImpactRadiusResult)
async def compute_impact_radius(
    request: ImpactRadiusRequest,
    org_id: str = Depends(get_org_id),
    engine: ImpactRadiusEngine = Depends(get_impact_engine),
    db: AsyncSession = Depends(get_db),
):
    """Reachability from a start node with money/work/deal exposure.

    Returns 413 when the reachable set exceeds the node or edge cap.
    """
    options = NormalizedImpactOptions.from_request(request)
    return await engine.compute_impact_radius(db, org_id, request.start_node_id, options)


@router.get("/impact-radius/node/{node_id}", response_model=ImpactRadiusResult)
async def compute_impact_radius_for_node(
    node_id: str,
    max_depth: int | None = Query(None, ge=1, le=MAX_DEPTH),
    direction: Direction | None = None,
    edge_types: str | None = Query(None, description="Comma-separated edge types"),
    include_types: str | None = Query(None, description="Comma-separated node types"),
    org_id: str = Depends(get_org_id),
    engine: ImpactRadiusEngine = Depends(get_impact_engine),
    db: AsyncSession = Depends(get_db),
):
    options = NormalizedImpactOptions.build(
        max_depth=max_depth,
        direction=direction,
        edge_types=_split_csv("edge_types", edge_types),
        include_types=_split_csv("include_types", include_types),
    )
    return await engine.compute_impact_radius(db, org_id, node_id, options)


@router.get("/deeplink/{node_id}", response_model=DeeplinkResult)
async def deeplink(
    node_id: str,
    org_id: str = Depends(get_org_id),
    engine: ImpactRadiusEngine = Depends(get_impact_engine),
    db: AsyncSession = Depends(get_db),
):
    return await engine.map_deeplink(db, org_id, node_id)
