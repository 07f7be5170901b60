"""Initial resolution store schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "harmonized_entities",
        sa.Column("harmonized_id", sa.String(), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("native_id", sa.String(), nullable=False),
        sa.Column("name_clean", sa.String(), nullable=False),
        sa.Column("issuer_clean", sa.String(), nullable=False),
        sa.Column("asset_type", sa.String(), nullable=False),
        sa.Column("isin", sa.String(12), nullable=True),
        sa.Column("sedol", sa.String(7), nullable=True),
        sa.Column("ticker", sa.String(), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("harmonized_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("harmonized_id", name="pk_harmonized_entities"),
        sa.UniqueConstraint("source", "native_id", name="uq_harmonized_entities_source_native_id"),
        sa.CheckConstraint(
            "source IN ('FEED_A', 'FEED_B', 'FEED_C')",
            name="ck_harmonized_entities_valid_source",
        ),
    )
    op.create_index("ix_harmonized_entities_asset_type", "harmonized_entities", ["asset_type"])

    op.create_table(
        "security_embeddings",
        sa.Column("harmonized_id", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("model", sa.String(), nullable=False),
        sa.Column("dimension", sa.Integer(), nullable=False),
        sa.Column("vector", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("harmonized_id", name="pk_security_embeddings"),
    )

    op.create_table(
        "match_decisions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("match_id", sa.String(), nullable=False),
        sa.Column("source_1", sa.String(16), nullable=False),
        sa.Column("id_1", sa.String(), nullable=False),
        sa.Column("harmonized_id_1", sa.String(), nullable=False),
        sa.Column("source_2", sa.String(16), nullable=False),
        sa.Column("id_2", sa.String(), nullable=False),
        sa.Column("harmonized_id_2", sa.String(), nullable=False),
        sa.Column("similarity_score", sa.Float(), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("adjudicated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_match_decisions"),
        sa.UniqueConstraint("match_id", name="uq_match_decisions_match_id"),
        sa.UniqueConstraint(
            "harmonized_id_1", "harmonized_id_2", name="uq_match_decisions_entity_pair"
        ),
        sa.CheckConstraint("source_1 < source_2", name="ck_match_decisions_source_ordering"),
        sa.CheckConstraint(
            "status IN ('APPROVED', 'PENDING', 'REJECTED')",
            name="ck_match_decisions_valid_status",
        ),
        sa.CheckConstraint(
            "method IN ('SIMILARITY', 'ORACLE_VALIDATED')",
            name="ck_match_decisions_valid_method",
        ),
    )
    op.create_index("ix_match_decisions_harmonized_id_1", "match_decisions", ["harmonized_id_1"])
    op.create_index("ix_match_decisions_harmonized_id_2", "match_decisions", ["harmonized_id_2"])
    op.create_index("ix_match_decisions_status", "match_decisions", ["status"])

    op.create_table(
        "adjudication_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("run_id", sa.String(), nullable=True),
        sa.Column("match_id", sa.String(), nullable=False),
        sa.Column("harmonized_id_1", sa.String(), nullable=False),
        sa.Column("harmonized_id_2", sa.String(), nullable=False),
        sa.Column("similarity_score", sa.Float(), nullable=False),
        sa.Column("verdict", sa.String(16), nullable=False),
        sa.Column("rationale", sa.Text(), nullable=False),
        sa.Column("response", sa.Text(), nullable=False),
        sa.Column("model", sa.String(), nullable=False),
        sa.Column("applied", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("id", name="pk_adjudication_log"),
        sa.CheckConstraint(
            "verdict IN ('APPROVED', 'REJECTED', 'INCONCLUSIVE')",
            name="ck_adjudication_log_valid_verdict",
        ),
    )
    op.create_index(
        "ix_adjudication_log_pair", "adjudication_log", ["harmonized_id_1", "harmonized_id_2"]
    )

    op.create_table(
        "canonical_securities",
        sa.Column("canonical_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("asset_type", sa.String(), nullable=False),
        sa.Column("isin", sa.String(12), nullable=True),
        sa.Column("sources", sa.JSON(), nullable=False),
        sa.Column("member_count", sa.Integer(), nullable=False),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("review_reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.PrimaryKeyConstraint("canonical_id", name="pk_canonical_securities"),
    )

    op.create_table(
        "canonical_security_members",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("canonical_id", sa.String(), nullable=False),
        sa.Column("harmonized_id", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_canonical_security_members"),
        sa.ForeignKeyConstraint(
            ["canonical_id"],
            ["canonical_securities.canonical_id"],
            name="fk_canonical_security_members_canonical_id_canonical_securities",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "harmonized_id", name="uq_canonical_security_members_harmonized_id"
        ),
    )

    op.create_table(
        "resolution_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("summary", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("run_id", name="pk_resolution_runs"),
        sa.CheckConstraint(
            "status IN ('completed', 'aborted', 'cancelled')",
            name="ck_resolution_runs_valid_run_status",
        ),
    )


def downgrade() -> None:
    op.drop_table("resolution_runs")
    op.drop_table("canonical_security_members")
    op.drop_table("canonical_securities")
    op.drop_index("ix_adjudication_log_pair")
    op.drop_table("adjudication_log")
    op.drop_index("ix_match_decisions_status")
    op.drop_index("ix_match_decisions_harmonized_id_2")
    op.drop_index("ix_match_decisions_harmonized_id_1")
    op.drop_table("match_decisions")
    op.drop_table("security_embeddings")
    op.drop_index("ix_harmonized_entities_asset_type")
    op.drop_table("harmonized_entities")
