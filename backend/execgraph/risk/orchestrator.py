"""Risk run orchestration and driver fan-out."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Iterable, Protocol, runtime_checkable

from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from execgraph.observability.request_context import bind_request_context, get_request_id, reset_request_context
from execgraph.risk.engine import RiskEngine
from execgraph.risk.schemas import DispatchResponse, Driver, RiskComputeResult
from execgraph.storage.models import GraphNode

logger = logging.getLogger(__name__)


@runtime_checkable
class DriverConsumer(Protocol):
    """Downstream collaborator that receives a run's drivers (nudges, autopilot)."""

    name: str

    async def consume(self, org_id: str, drivers: list[Driver], as_of_date: date) -> None:
        ...


class RiskRunOrchestrator:
    """Runs the risk engine for a tenant and hands the drivers on.

    Runs for one tenant are serialized through a per-tenant lock. Consumer
    failures are logged and never undo the persisted snapshot.
    """

    def __init__(
        self,
        engine: RiskEngine,
        session_maker: async_sessionmaker[AsyncSession],
        consumers: Iterable[DriverConsumer] = (),
    ):
        self.engine = engine
        self.session_maker = session_maker
        self.consumers = list(consumers)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _tenant_lock(self, org_id: str):
        """Hold the tenant's lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(org_id)
        if lock is None:
            lock = self._locks[org_id] = asyncio.Lock()
        self._lock_users[org_id] = self._lock_users.get(org_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[org_id] -= 1
            if not self._lock_users[org_id]:
                del self._lock_users[org_id]
                del self._locks[org_id]

    async def _compute(self, org_id: str, max_nodes: int | None = None) -> RiskComputeResult:
        async with self.session_maker() as session:
            try:
                result = await self.engine.compute_org_risk(session, org_id, max_nodes=max_nodes)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        return result

    async def run(self, org_id: str, max_nodes: int | None = None) -> RiskComputeResult:
        # Scheduled runs have no request; keep the caller's request id when there is one.
        token = bind_request_context(get_request_id(), org_id)
        try:
            async with self._tenant_lock(org_id):
                result = await self._compute(org_id, max_nodes=max_nodes)

            await self.dispatch(org_id, result.top_drivers, result.as_of_date)
            return result
        finally:
            reset_request_context(token)

    async def ensure_snapshot(self, org_id: str) -> bool:
        """Compute a first snapshot for a tenant that has none.

        Used by the read paths before they fall back to a cold start, so a
        first read never races a run for the same tenant. Drivers are not
        dispatched. Returns True when a snapshot was computed.
        """
        async with self._tenant_lock(org_id):
            async with self.session_maker() as session:
                if await self.engine.get_latest_drivers(session, org_id) is not None:
                    return False
            await self._compute(org_id)
            return True

    async def dispatch(self, org_id: str, drivers: list[Driver], as_of_date: date) -> dict[str, bool]:
        """Hand drivers to every consumer; returns per-consumer success."""
        outcome: dict[str, bool] = {}
        for consumer in self.consumers:
            try:
                await consumer.consume(org_id, drivers, as_of_date)
                outcome[consumer.name] = True
            except Exception as e:
                outcome[consumer.name] = False
                logger.warning(
                    "driver_dispatch_failed",
                    extra={
                        "org_id": org_id,
                        "consumer": consumer.name,
                        "as_of_date": as_of_date.isoformat(),
                        "error": str(e),
                    },
                )
        return outcome

    async def dispatch_latest(self, org_id: str) -> DispatchResponse:
        """Re-send the drivers of the tenant's latest snapshot."""
        async with self.session_maker() as session:
            latest = await self.engine.get_latest_drivers(session, org_id)

        if latest is None:
            return DispatchResponse()

        as_of_date, drivers = latest
        consumers = await self.dispatch(org_id, drivers, as_of_date)
        return DispatchResponse(as_of_date=as_of_date, drivers_count=len(drivers), consumers=consumers)

    async def list_org_ids(self) -> list[str]:
        async with self.session_maker() as session:
            result = await session.execute(select(distinct(GraphNode.org_id)).order_by(GraphNode.org_id))
            return list(result.scalars().all())

    async def run_all(self) -> dict[str, bool]:
        """Scheduled entry point: one run per tenant, one at a time."""
        outcome: dict[str, bool] = {}
        for org_id in await self.list_org_ids():
            try:
                await self.run(org_id)
                outcome[org_id] = True
            except Exception as e:
                outcome[org_id] = False
                logger.error(
                    "risk_run_failed",
                    extra={"org_id": org_id, "error": str(e)},
                    exc_info=True,
                )
        return outcome
