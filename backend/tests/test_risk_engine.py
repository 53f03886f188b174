import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from execgraph.db_base import Base
from execgraph.risk import RiskEngine
from execgraph.storage.models import GraphNode, OrgRiskSnapshot
from execgraph.timeutils import previous_day, utc_day

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


async def _stored_risk(db, node_id):
    return await db.scalar(select(GraphNode.risk_score).where(GraphNode.id == node_id))


async def _snapshot_count(db, org_id="org-1"):
    return await db.scalar(select(func.count()).select_from(OrgRiskSnapshot).where(OrgRiskSnapshot.org_id == org_id))


@pytest.mark.asyncio
async def test_empty_graph_writes_zero_snapshot(async_db):
    engine = RiskEngine()

    result = await engine.compute_org_risk(async_db, "org-empty", now=NOW)

    assert result.org_risk_score == 0
    assert result.top_drivers == []
    assert result.node_updates == []
    assert result.delta_vs_yesterday is None

    snapshot = await async_db.scalar(select(OrgRiskSnapshot).where(OrgRiskSnapshot.org_id == "org-empty"))
    assert snapshot.risk_score == 0
    assert snapshot.drivers == []
    assert snapshot.meta == {"node_count": 0, "edge_count": 0, "updated_nodes_count": 0}
    assert snapshot.as_of_date == utc_day(NOW)


@pytest.mark.asyncio
async def test_overdue_invoice_scores_and_persists(async_db, seed):
    seed.node(
        "INVOICE",
        node_id="inv-1",
        entity_id="INV-1001",
        title="Invoice 1001",
        status="OVERDUE",
        amount_cents=100000,
        due_at=NOW - timedelta(days=1),
    )
    await seed.commit()

    result = await RiskEngine().compute_org_risk(async_db, "org-1", now=NOW)

    assert await _stored_risk(async_db, "inv-1") == 100
    assert result.org_risk_score == 45
    assert result.meta.updated_nodes_count == 1

    driver = result.top_drivers[0]
    assert driver.node_id == "inv-1"
    assert driver.reason_codes == ["INVOICE_HIGH_AMOUNT", "INVOICE_OVERDUE"]
    assert driver.evidence.amount_cents == 100000
    assert driver.evidence.status == "OVERDUE"
    assert driver.deeplink.url == "/finance/invoices/INV-1001"


@pytest.mark.asyncio
async def test_blocking_work_propagates_to_blocked_item(async_db, seed):
    blocker = seed.node("WORK_ITEM", node_id="w-blocker", status="BLOCKED", due_at=NOW - timedelta(days=3))
    blocked = seed.node("WORK_ITEM", node_id="w-blocked", status="OPEN")
    done = seed.node("WORK_ITEM", node_id="w-done", status="DONE")
    seed.edge(blocker, blocked, type="BLOCKS", weight=2)
    await seed.commit()

    result = await RiskEngine().compute_org_risk(async_db, "org-1", now=NOW)

    assert await _stored_risk(async_db, "w-blocker") == 75
    # 37.5 per round: 38, then 75.5 -> 76, then clamped
    assert await _stored_risk(async_db, "w-blocked") == 100
    assert await _stored_risk(async_db, done.id) == 0

    updates = {update.node_id: update for update in result.node_updates}
    assert set(updates) == {"w-blocker", "w-blocked"}
    assert "PROPAGATED_FROM_WORK_ITEM" in updates["w-blocked"].reasons

    drivers = {driver.node_id: driver for driver in result.top_drivers}
    assert drivers["w-blocked"].evidence.counts == {"WORK_ITEM": 113}


@pytest.mark.asyncio
async def test_rerun_same_day_is_idempotent(async_db, seed):
    seed.node("INCIDENT", node_id="inc-1", status="OPEN")
    await seed.commit()
    engine = RiskEngine()

    first = await engine.compute_org_risk(async_db, "org-1", now=NOW)
    second = await engine.compute_org_risk(async_db, "org-1", now=NOW + timedelta(hours=2))

    assert first.org_risk_score == second.org_risk_score == 14
    assert first.meta.updated_nodes_count == 1
    assert second.meta.updated_nodes_count == 0
    assert second.node_updates == []
    assert await _snapshot_count(async_db) == 1


@pytest.mark.asyncio
async def test_delta_against_yesterday_snapshot(async_db, seed):
    seed.node("INCIDENT", node_id="inc-1", status="OPEN")
    async_db.add(
        OrgRiskSnapshot(org_id="org-1", as_of_date=previous_day(utc_day(NOW)), risk_score=20, drivers=[], meta={})
    )
    await seed.commit()

    result = await RiskEngine().compute_org_risk(async_db, "org-1", now=NOW)

    assert result.delta_vs_yesterday == result.org_risk_score - 20


@pytest.mark.asyncio
async def test_max_nodes_loads_most_recently_updated(async_db, seed):
    for index in range(5):
        seed.node(
            "INCIDENT",
            node_id=f"inc-{index}",
            status="OPEN",
            updated_at=NOW - timedelta(hours=10 - index),
        )
    await seed.commit()

    result = await RiskEngine().compute_org_risk(async_db, "org-1", max_nodes=2, now=NOW)

    assert result.meta.node_count == 2
    assert {update.node_id for update in result.node_updates} == {"inc-3", "inc-4"}
    assert await _stored_risk(async_db, "inc-0") == 0


@pytest.mark.asyncio
async def test_edges_to_unloaded_nodes_are_ignored(async_db, seed):
    source = seed.node("INCIDENT", node_id="inc-old", status="OPEN", updated_at=NOW - timedelta(days=9))
    target = seed.node("WORK_ITEM", node_id="w-new", status="OPEN", updated_at=NOW)
    seed.edge(source, target, type="BLOCKS", weight=5)
    await seed.commit()

    result = await RiskEngine().compute_org_risk(async_db, "org-1", max_nodes=1, now=NOW)

    assert result.meta.edge_count == 0
    assert await _stored_risk(async_db, "w-new") == 0


def test_max_nodes_is_clamped_to_hard_cap():
    engine = RiskEngine(default_max_nodes=9000, hard_max_nodes=5000)

    assert engine.default_max_nodes == 5000
    assert engine.resolve_max_nodes(None) == 5000
    assert engine.resolve_max_nodes(10) == 10
    assert engine.resolve_max_nodes(0) == 1
    assert engine.resolve_max_nodes(99999) == 5000


@pytest.mark.asyncio
async def test_changed_nodes_are_written_in_batches(async_db, seed):
    for index in range(5):
        seed.node("INCIDENT", node_id=f"inc-{index}", status="OPEN")
    await seed.commit()
    engine = RiskEngine(persist_batch_size=2)

    with patch("execgraph.risk.engine.logger") as mock_logger:
        await engine.compute_org_risk(async_db, "org-1", now=NOW)

    for index in range(5):
        assert await _stored_risk(async_db, f"inc-{index}") == 70

    persisted = [c for c in mock_logger.info.call_args_list if c.args[0] == "risk_nodes_persisted"]
    assert persisted[0].kwargs["extra"]["batches"] == 3
    assert any(c.args[0] == "risk_run_completed" for c in mock_logger.info.call_args_list)


@pytest.mark.asyncio
async def test_runs_are_tenant_scoped(async_db, seed):
    seed.node("INCIDENT", node_id="inc-a", status="OPEN")
    seed.node("INCIDENT", node_id="inc-b", org_id="org-2", status="OPEN")
    await seed.commit()

    result = await RiskEngine().compute_org_risk(async_db, "org-1", now=NOW)

    assert [driver.node_id for driver in result.top_drivers] == ["inc-a"]
    assert await _stored_risk(async_db, "inc-b") == 0
    assert await _snapshot_count(async_db, "org-2") == 0


@pytest.mark.asyncio
async def test_latest_risk_cold_start_then_reads_snapshot(async_db, seed):
    seed.node("INCIDENT", node_id="inc-1", title="Outage", status="OPEN")
    await seed.commit()
    engine = RiskEngine()

    cold = await engine.get_latest_risk(async_db, "org-1")
    assert cold.org_risk_score == 14
    assert cold.delta_vs_yesterday is None
    assert cold.top_drivers[0].node_id == "inc-1"
    assert await _snapshot_count(async_db) == 1

    warm = await engine.get_latest_risk(async_db, "org-1")
    assert warm.org_risk_score == 14
    assert warm.top_drivers == cold.top_drivers
    assert await _snapshot_count(async_db) == 1

    why = await engine.get_risk_why(async_db, "org-1")
    assert [driver.node_id for driver in why.drivers] == ["inc-1"]
    assert why.drivers[0].deeplink.label == "Outage"


@pytest.mark.asyncio
async def test_snapshot_insert_conflict_overwrites_existing_row(async_db, session_maker, seed):
    seed.node("INCIDENT", node_id="inc-1", status="OPEN")
    await seed.commit()
    engine = RiskEngine()
    real_lookup = engine._snapshot_for_day
    lookups = []

    async def miss_first_lookup(db, org_id, as_of_date):
        # Another run inserts today's row right after this run looked for it.
        lookups.append(as_of_date)
        if len(lookups) == 1:
            async with session_maker() as other:
                other.add(OrgRiskSnapshot(org_id=org_id, as_of_date=as_of_date, risk_score=99, drivers=[]))
                await other.commit()
            return None
        return await real_lookup(db, org_id, as_of_date)

    engine._snapshot_for_day = miss_first_lookup

    with patch("execgraph.risk.engine.logger") as mock_logger:
        result = await engine.compute_org_risk(async_db, "org-1", now=NOW)

    assert result.org_risk_score == 14
    assert len(lookups) == 2
    logged = [call.args[0] for call in mock_logger.info.call_args_list]
    assert "risk_snapshot_insert_conflict" in logged
    async with session_maker() as fresh:
        scores = (await fresh.execute(select(OrgRiskSnapshot.risk_score))).scalars().all()
    assert scores == [14]


@pytest.mark.asyncio
async def test_concurrent_cold_start_reads_share_one_snapshot(tmp_path):
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'risk.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    makers = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with makers() as session:
        for index in range(5):
            session.add(
                GraphNode(
                    id=f"inv-{index}",
                    org_id="org-1",
                    type="INVOICE",
                    entity_id=f"INV-{index}",
                    status="OVERDUE",
                    amount_cents=10_000 * (index + 1),
                    due_at=NOW - timedelta(days=3),
                    created_at=NOW,
                    updated_at=NOW,
                )
            )
        await session.commit()

    engine = RiskEngine()
    try:
        async with makers() as first, makers() as second:
            results = await asyncio.gather(
                engine.get_latest_risk(first, "org-1"),
                engine.get_latest_risk(second, "org-1"),
            )
        async with makers() as session:
            count = await _snapshot_count(session)
    finally:
        await db_engine.dispose()

    assert results[0].org_risk_score == results[1].org_risk_score
    assert count == 1


@pytest.mark.asyncio
async def test_risk_why_cold_start_on_empty_tenant(async_db):
    why = await RiskEngine().get_risk_why(async_db, "org-none")

    assert why.drivers == []
    assert await _snapshot_count(async_db, "org-none") == 1


@pytest.mark.asyncio
async def test_list_snapshots_newest_first(async_db):
    today = utc_day(NOW)
    for offset, score in enumerate([30, 20, 10]):
        async_db.add(
            OrgRiskSnapshot(
                org_id="org-1",
                as_of_date=today - timedelta(days=offset),
                risk_score=score,
                drivers=[],
            )
        )
    await async_db.commit()

    history = await RiskEngine().list_snapshots(async_db, "org-1", days=2)

    assert [point.risk_score for point in history] == [30, 20]
    assert history[0].as_of_date == today
