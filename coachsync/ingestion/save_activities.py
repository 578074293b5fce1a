"""Idempotent persistence of normalized provider activities.

Insert first, and treat a unique-key violation on (source,
external_activity_id) as "someone already ingested this": read the row back
and update it only if the provider changed it. There is no existence check
before the insert; the unique constraint is the only serialization point
between cron, webhook and on-demand triggers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coachsync.db.models import IngestedActivity
from coachsync.ingestion.normalize import NormalizedActivity
from coachsync.utils.time_utils import as_utc

IngestKind = Literal["created", "updated", "unchanged"]


@dataclass(frozen=True)
class IngestResult:
    kind: IngestKind
    activity: IngestedActivity


def _get_existing(session: Session, source: str, external_activity_id: str) -> IngestedActivity | None:
    return session.scalars(
        select(IngestedActivity).where(
            IngestedActivity.source == source,
            IngestedActivity.external_activity_id == external_activity_id,
        )
    ).one_or_none()


def _metrics_changed(existing: dict[str, Any] | None, incoming: dict[str, Any]) -> bool:
    """Only keys carried by the incoming payload count; summary payloads omit detail fields."""
    if not isinstance(existing, dict):
        return True
    return any(existing.get(key) != value for key, value in incoming.items())


def _is_unchanged(existing: IngestedActivity, incoming: NormalizedActivity) -> bool:
    existing_metrics = (existing.metrics or {}).get(incoming.metrics_namespace)
    return (
        existing.duration_seconds == incoming.duration_seconds
        and existing.distance_meters == incoming.distance_meters
        and as_utc(existing.start_time) == incoming.start_time
        and not _metrics_changed(existing_metrics, incoming.metrics)
    )


def _apply_core_fields(activity: IngestedActivity, incoming: NormalizedActivity) -> None:
    activity.discipline = incoming.discipline
    activity.title = incoming.title
    activity.start_time = incoming.start_time
    activity.start_time_local = incoming.start_time_local
    activity.local_date = incoming.local_date
    activity.local_start_minutes = incoming.local_start_minutes
    activity.duration_seconds = incoming.duration_seconds
    activity.distance_meters = incoming.distance_meters


def save_normalized_activity(
    session: Session,
    athlete_id: str,
    incoming: NormalizedActivity,
    *,
    source: str = "strava",
) -> IngestResult:
    """Create the activity, or reconcile it with the copy already stored.

    Flushes but does not commit; the caller owns the outer transaction.

    Raises:
        IntegrityError: The insert failed for a reason other than a duplicate key
    """
    activity = IngestedActivity(
        athlete_id=athlete_id,
        source=source,
        external_activity_id=incoming.external_activity_id,
        metrics={incoming.metrics_namespace: incoming.metrics},
        planned_session_id=None,
        confirmed_at=None,
        notes=None,
    )
    _apply_core_fields(activity, incoming)

    try:
        with session.begin_nested():
            session.add(activity)
            session.flush()
    except IntegrityError as e:
        existing = _get_existing(session, source, incoming.external_activity_id)
        if existing is None:
            logger.error(f"[INGEST] Insert of {source}:{incoming.external_activity_id} failed and no existing row found: {e}")
            raise

        if _is_unchanged(existing, incoming):
            logger.debug(f"[INGEST] Activity {source}:{incoming.external_activity_id} already present, unchanged")
            return IngestResult(kind="unchanged", activity=existing)

        _apply_core_fields(existing, incoming)
        metrics = dict(existing.metrics or {})
        previous = metrics.get(incoming.metrics_namespace)
        metrics[incoming.metrics_namespace] = {**(previous if isinstance(previous, dict) else {}), **incoming.metrics}
        existing.metrics = metrics
        session.flush()
        logger.info(f"[INGEST] Updated activity {source}:{incoming.external_activity_id} for athlete_id={athlete_id}")
        return IngestResult(kind="updated", activity=existing)

    logger.info(f"[INGEST] Created activity {source}:{incoming.external_activity_id} for athlete_id={athlete_id}")
    return IngestResult(kind="created", activity=activity)
