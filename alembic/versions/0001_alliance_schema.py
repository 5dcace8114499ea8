"""alliance schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates the alliance schema: alliance_orgs, alliance_members, players
(player lookup cache), sync_log.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS alliance")

    # -------------------------------------------------------------------------
    # alliance_orgs
    # -------------------------------------------------------------------------
    op.create_table(
        "alliance_orgs",
        sa.Column("org_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("org_name", sa.String(50)),
        sa.Column("added_by", sa.String(15), nullable=False),
        sa.Column("added_dt", TIMESTAMP(timezone=True), server_default=sa.func.now()),
        schema="alliance",
    )

    # -------------------------------------------------------------------------
    # alliance_members
    # -------------------------------------------------------------------------
    op.create_table(
        "alliance_members",
        sa.Column("name", sa.String(15), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(7), nullable=False, server_default="org"),
        sa.Column("logged_off", TIMESTAMP(timezone=True)),
        sa.CheckConstraint("mode IN ('add', 'org', 'del')", name="ck_alliance_member_mode"),
        schema="alliance",
    )
    op.create_index(
        "ix_alliance_alliance_members_org_id",
        "alliance_members",
        ["org_id"],
        schema="alliance",
    )

    # -------------------------------------------------------------------------
    # players
    # -------------------------------------------------------------------------
    op.create_table(
        "players",
        sa.Column("name", sa.String(15), primary_key=True),
        sa.Column("guild_id", sa.Integer()),
        sa.Column("dimension", sa.Integer()),
        sa.Column("guild_rank_id", sa.Integer()),
        sa.Column("guild_rank", sa.String(20)),
        schema="alliance",
    )

    # -------------------------------------------------------------------------
    # sync_log
    # -------------------------------------------------------------------------
    op.create_table(
        "sync_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("orgs_synced", sa.Integer()),
        sa.Column("orgs_skipped", sa.Integer()),
        sa.Column("members_new", sa.Integer()),
        sa.Column("members_removed", sa.Integer()),
        sa.Column("failed_org_ids", ARRAY(sa.Integer())),
        sa.Column("org_results", JSONB()),
        sa.Column("error_message", sa.Text()),
        sa.Column("duration_seconds", sa.Float()),
        sa.Column("started_at", TIMESTAMP(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", TIMESTAMP(timezone=True)),
        schema="alliance",
    )


def downgrade() -> None:
    op.drop_table("sync_log", schema="alliance")
    op.drop_table("players", schema="alliance")
    op.drop_index("ix_alliance_alliance_members_org_id", "alliance_members", schema="alliance")
    op.drop_table("alliance_members", schema="alliance")
    op.drop_table("alliance_orgs", schema="alliance")
    op.execute("DROP SCHEMA IF EXISTS alliance")
