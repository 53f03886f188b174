"""Risk API endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from execgraph.api.deps import get_orchestrator, get_org_id, get_risk_engine
from execgraph.risk import RiskEngine, RiskRunOrchestrator
from execgraph.risk.schemas import (
    DispatchResponse,
    LatestRisk,
    RecomputeRequest,
    RecomputeResponse,
    RiskHistoryPoint,
    RiskWhy,
)
from execgraph.storage.database import get_db

router = APIRouter(prefix="/api/risk", tags=["risk"])
admin_router = APIRouter(prefix="/api/graph/risk", tags=["risk"])


@router.get("", response_model=LatestRisk)
async def get_latest_risk(
    org_id: str = Depends(get_org_id),
    engine: RiskEngine = Depends(get_risk_engine),
    orchestrator: RiskRunOrchestrator = Depends(get_orchestrator),
    db: AsyncSession = Depends(get_db),
):
    """Latest org risk score; computes one on first use."""
    await orchestrator.ensure_snapshot(org_id)
    return await engine.get_latest_risk(db, org_id)


@router.get("/why", response_model=RiskWhy)
async def get_risk_why(
    org_id: str = Depends(get_org_id),
    engine: RiskEngine = Depends(get_risk_engine),
    orchestrator: RiskRunOrchestrator = Depends(get_orchestrator),
    db: AsyncSession = Depends(get_db),
):
    await orchestrator.ensure_snapshot(org_id)
    return await engine.get_risk_why(db, org_id)


@router.get("/history", response_model=list[RiskHistoryPoint])
async def get_risk_history(
    days: int = Query(30, ge=1, le=365),
    org_id: str = Depends(get_org_id),
    engine: RiskEngine = Depends(get_risk_engine),
    db: AsyncSession = Depends(get_db),
):
    """Daily snapshot scores, newest first."""
    return await engine.list_snapshots(db, org_id, days=days)


@admin_router.post("/recompute", response_model=RecomputeResponse)
async def recompute(
    request: RecomputeRequest | None = None,
    org_id: str = Depends(get_org_id),
    orchestrator: RiskRunOrchestrator = Depends(get_orchestrator),
):
    """Run the risk engine now and hand drivers to the configured consumers."""
    max_nodes = request.max_nodes if request else None
    result = await orchestrator.run(org_id, max_nodes=max_nodes)
    return RecomputeResponse(
        org_risk_score=result.org_risk_score,
        top_drivers=result.top_drivers,
        updated_nodes_count=result.meta.updated_nodes_count,
        delta_vs_yesterday=result.delta_vs_yesterday,
    )


@admin_router.post("/dispatch-latest", response_model=DispatchResponse)
async def dispatch_latest(
    org_id: str = Depends(get_org_id),
    orchestrator: RiskRunOrchestrator = Depends(get_orchestrator),
):
    """Re-send the latest snapshot's drivers without recomputing."""
    return await orchestrator.dispatch_latest(org_id)
