"""Shared FastAPI dependencies: tenant resolution and service singletons."""

from functools import lru_cache

from fastapi import Header

from execgraph.config import get_settings
from execgraph.graph import GraphService, GraphSyncService
from execgraph.impact import ImpactRadiusCache, ImpactRadiusEngine
from execgraph.risk import RiskEngine, RiskRunOrchestrator, build_default_consumers
from execgraph.storage.database import async_session_maker

ORG_HEADER = "X-Org-Id"


async def get_org_id(x_org_id: str = Header(..., alias=ORG_HEADER, min_length=1, max_length=64)) -> str:
    """Tenant for the request. Authentication is handled in front of this service."""
    return x_org_id


@lru_cache
def get_graph_service() -> GraphService:
    return GraphService()


@lru_cache
def get_sync_service() -> GraphSyncService:
    return GraphSyncService()


@lru_cache
def get_risk_engine() -> RiskEngine:
    return RiskEngine.from_settings(get_settings())


@lru_cache
def get_impact_engine() -> ImpactRadiusEngine:
    settings = get_settings()
    cache = ImpactRadiusCache(
        ttl_seconds=settings.impact_cache_ttl_seconds,
        max_entries=settings.impact_cache_max_entries,
    )
    return ImpactRadiusEngine(cache=cache)


@lru_cache
def get_orchestrator() -> RiskRunOrchestrator:
    return RiskRunOrchestrator(
        engine=get_risk_engine(),
        session_maker=async_session_maker,
        consumers=build_default_consumers(get_settings()),
    )
