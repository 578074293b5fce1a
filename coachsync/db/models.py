from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import StrEnum

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class Discipline(StrEnum):
    RUN = "RUN"
    BIKE = "BIKE"
    SWIM = "SWIM"
    OTHER = "OTHER"


class SessionStatus(StrEnum):
    """Planned session status, in lifecycle order."""

    PLANNED = "PLANNED"
    MODIFIED = "MODIFIED"
    COMPLETED_SYNCED_DRAFT = "COMPLETED_SYNCED_DRAFT"
    COMPLETED_SYNCED = "COMPLETED_SYNCED"
    COMPLETED_MANUAL = "COMPLETED_MANUAL"
    SKIPPED = "SKIPPED"


class Athlete(Base):
    """Athlete record as seen by the sync engine.

    Only the fields sync needs: the owning coach (for coach-wide polls) and the
    IANA timezone used to compute local day keys.
    """

    __tablename__ = "athletes"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    coach_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    timezone: Mapped[str] = mapped_column(String, nullable=False, default="UTC")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ProviderConnection(Base):
    """OAuth connection between one athlete and one activity provider.

    Fields:
    - access_token / refresh_token: current token pair
    - expires_at: expiry of the currently stored access token
    - scope: scope granted at authorization (kept across refreshes)
    - provider_athlete_id: provider-side athlete id, used to resolve webhook owners
    - last_sync_at: last successful sync pass (start of the next window)
    - last_sync_error: last per-athlete failure, cleared on success
    """

    __tablename__ = "provider_connections"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    athlete_id: Mapped[str] = mapped_column(String, ForeignKey("athletes.id"), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String, nullable=False, default="strava")
    provider_athlete_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    access_token: Mapped[str] = mapped_column(String, nullable=False)
    refresh_token: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scope: Mapped[str | None] = mapped_column(String, nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (UniqueConstraint("athlete_id", "provider", name="uq_provider_connection_athlete_provider"),)


class PlannedSession(Base):
    """Coach- or athlete-authored training session for one day.

    `date` is the athlete-local calendar day and `planned_start_time_local`
    an optional "HH:MM" wall-clock time on that day.
    """

    __tablename__ = "planned_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    athlete_id: Mapped[str] = mapped_column(String, ForeignKey("athletes.id"), nullable=False, index=True)
    coach_id: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    planned_start_time_local: Mapped[str | None] = mapped_column(String, nullable=True)
    discipline: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(String, nullable=False, default=SessionStatus.PLANNED)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (Index("idx_planned_sessions_athlete_date", "athlete_id", "date"),)


class IngestedActivity(Base):
    """Provider-sourced completion record.

    One row per (source, external_activity_id); that pair is the idempotency
    key every trigger relies on. Rows are updated in place when the provider
    edits the activity and are never deleted by sync.

    `notes` and `confirmed_at` belong to the athlete and are never written by
    the ingestion pipeline.
    """

    __tablename__ = "ingested_activities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    athlete_id: Mapped[str] = mapped_column(String, ForeignKey("athletes.id"), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="strava")
    external_activity_id: Mapped[str] = mapped_column(String, nullable=False)
    discipline: Mapped[str] = mapped_column(String, nullable=False, default=Discipline.OTHER)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    start_time_local: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    local_date: Mapped[date] = mapped_column(Date, nullable=False)
    local_start_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    distance_meters: Mapped[float | None] = mapped_column(nullable=True)
    metrics: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    planned_session_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("planned_sessions.id"), nullable=True, unique=True, index=True
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    __table_args__ = (
        UniqueConstraint("source", "external_activity_id", name="uq_ingested_activity_source_external_id"),
        Index("idx_ingested_activities_athlete_date", "athlete_id", "local_date"),
    )


class SyncRun(Base):
    """Audit row for one orchestrator invocation (written only when enabled)."""

    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    trigger: Mapped[str] = mapped_column(String, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    athletes_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_unchanged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
