"""SQLAlchemy ORM models for the alliance roster service.

alliance schema: alliance_orgs, alliance_members, sync_log
players (alliance schema) is owned by the player-lookup subsystem; it is
declared here so the cache rebuild join has a table to read in tests.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Float,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# alliance schema
# ---------------------------------------------------------------------------


class AllianceOrg(Base):
    __tablename__ = "alliance_orgs"
    __table_args__ = {"schema": "alliance"}

    org_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    # last name reported by the roster server
    org_name: Mapped[Optional[str]] = mapped_column(String(50))
    added_by: Mapped[str] = mapped_column(String(15), nullable=False)
    added_dt: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class AllianceMember(Base):
    __tablename__ = "alliance_members"
    __table_args__ = (
        CheckConstraint("mode IN ('add', 'org', 'del')", name="ck_alliance_member_mode"),
        {"schema": "alliance"},
    )

    # name is globally unique across every org of the alliance
    name: Mapped[str] = mapped_column(String(15), primary_key=True)
    org_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    mode: Mapped[str] = mapped_column(String(7), nullable=False, server_default="org")
    logged_off: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))


class Player(Base):
    __tablename__ = "players"
    __table_args__ = {"schema": "alliance"}

    name: Mapped[str] = mapped_column(String(15), primary_key=True)
    guild_id: Mapped[Optional[int]] = mapped_column(Integer)
    dimension: Mapped[Optional[int]] = mapped_column(Integer)
    guild_rank_id: Mapped[Optional[int]] = mapped_column(Integer)
    guild_rank: Mapped[Optional[str]] = mapped_column(String(20))


class AllianceSyncLog(Base):
    __tablename__ = "sync_log"
    __table_args__ = {"schema": "alliance"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    orgs_synced: Mapped[Optional[int]] = mapped_column(Integer)
    orgs_skipped: Mapped[Optional[int]] = mapped_column(Integer)
    members_new: Mapped[Optional[int]] = mapped_column(Integer)
    members_removed: Mapped[Optional[int]] = mapped_column(Integer)
    failed_org_ids: Mapped[Optional[list[int]]] = mapped_column(ARRAY(Integer))
    org_results: Mapped[Optional[list]] = mapped_column(JSONB)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float)
    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
