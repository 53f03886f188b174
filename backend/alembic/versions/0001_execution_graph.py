"""execution_graph

Revision ID: 0001_execution_graph
Revises:
Create Date: 2026-02-18

Add graph_nodes, graph_edges and org_risk_snapshots tables.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_execution_graph"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "graph_nodes",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("risk_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "type", "entity_id", name="uq_graph_nodes_org_type_entity"),
    )
    op.create_index("ix_graph_nodes_org_type_updated", "graph_nodes", ["org_id", "type", "updated_at"])
    op.create_index("ix_graph_nodes_org_updated", "graph_nodes", ["org_id", "updated_at"])
    op.create_index("ix_graph_nodes_org_risk", "graph_nodes", ["org_id", "risk_score"])

    op.create_table(
        "graph_edges",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("from_node_id", sa.String(length=64), nullable=False),
        sa.Column("to_node_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["from_node_id"], ["graph_nodes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_node_id"], ["graph_nodes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "from_node_id", "to_node_id", "type", name="uq_graph_edges_org_from_to_type"),
    )
    op.create_index("ix_graph_edges_org_from", "graph_edges", ["org_id", "from_node_id"])
    op.create_index("ix_graph_edges_org_to", "graph_edges", ["org_id", "to_node_id"])
    op.create_index("ix_graph_edges_org_type_created", "graph_edges", ["org_id", "type", "created_at"])

    op.create_table(
        "org_risk_snapshots",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("as_of_date", sa.Date(), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=False),
        sa.Column("drivers", sa.JSON(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "as_of_date", name="uq_org_risk_snapshots_org_day"),
    )
    op.create_index("ix_org_risk_snapshots_org_day", "org_risk_snapshots", ["org_id", "as_of_date"])


def downgrade():
    op.drop_index("ix_org_risk_snapshots_org_day", table_name="org_risk_snapshots")
    op.drop_table("org_risk_snapshots")

    op.drop_index("ix_graph_edges_org_type_created", table_name="graph_edges")
    op.drop_index("ix_graph_edges_org_to", table_name="graph_edges")
    op.drop_index("ix_graph_edges_org_from", table_name="graph_edges")
    op.drop_table("graph_edges")

    op.drop_index("ix_graph_nodes_org_risk", table_name="graph_nodes")
    op.drop_index("ix_graph_nodes_org_updated", table_name="graph_nodes")
    op.drop_index("ix_graph_nodes_org_type_updated", table_name="graph_nodes")
    op.drop_table("graph_nodes")
