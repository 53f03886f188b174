# conftest.py - Global pytest configuration
"""
Global pytest configuration.

This file is automatically loaded by pytest before collecting tests.
It points the application at an in-memory SQLite database and provides
async session fixtures plus a small graph seeding helper.
"""
import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

# Must be set before anything imports execgraph.storage.database
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RISK_SCHEDULER_ENABLED"] = "false"
os.environ.pop("OTEL_ENDPOINT", None)

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from execgraph.db_base import Base  # noqa: E402
from execgraph.storage.models import GraphEdge, GraphNode  # noqa: E402

# Migrations are run by alembic, not collected as tests
collect_ignore = ["alembic"]

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Async Test Fixtures for SQLAlchemy + aiosqlite
# =============================================================================

@pytest.fixture(scope="function")
async def db_engine():
    """
    Fresh in-memory database per test.

    StaticPool keeps the single in-memory connection alive for every
    session created from this engine.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
async def async_db(session_maker):
    """Provide a fresh async database session for each test."""
    async with session_maker() as session:
        yield session


class GraphSeeder:
    """Adds nodes and edges with deterministic ids and creation times."""

    def __init__(self, session: AsyncSession, org_id: str = "org-1", base_time: datetime = NOW):
        self.session = session
        self.org_id = org_id
        self.base_time = base_time
        self._tick = 0

    def _next_time(self) -> datetime:
        self._tick += 1
        return self.base_time - timedelta(days=30) + timedelta(seconds=self._tick)

    def node(self, type: str, node_id: str | None = None, org_id: str | None = None, **fields) -> GraphNode:
        node_id = node_id or str(uuid4())
        created = self._next_time()
        fields.setdefault("created_at", created)
        fields.setdefault("updated_at", created)
        node = GraphNode(
            id=node_id,
            org_id=org_id or self.org_id,
            type=type,
            entity_id=fields.pop("entity_id", f"{type.lower()}-{node_id}"),
            risk_score=fields.pop("risk_score", 0),
            **fields,
        )
        self.session.add(node)
        return node

    def edge(
        self,
        from_node: GraphNode,
        to_node: GraphNode,
        type: str = "RELATES_TO",
        weight: int = 1,
        edge_id: str | None = None,
        org_id: str | None = None,
    ) -> GraphEdge:
        edge = GraphEdge(
            id=edge_id or str(uuid4()),
            org_id=org_id or self.org_id,
            from_node_id=from_node.id,
            to_node_id=to_node.id,
            type=type,
            weight=weight,
            created_at=self._next_time(),
        )
        self.session.add(edge)
        return edge

    async def commit(self) -> None:
        await self.session.commit()


@pytest.fixture(scope="function")
def seed(async_db):
    return GraphSeeder(async_db)
