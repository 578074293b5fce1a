"""One raw provider activity through ingest → match → reconcile."""

from __future__ import annotations

from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from coachsync.ingestion.normalize import normalize_strava_activity
from coachsync.ingestion.save_activities import IngestResult, save_normalized_activity
from coachsync.pairing.auto_pairing_service import match_and_link
from coachsync.plans.reconciliation.service import reconcile_linked_session
from coachsync.sync.scoring import ScoringNotifier, notify_safely
from coachsync.sync.summary import SyncRunSummary


def ingest_activity(
    session: Session,
    athlete_id: str,
    raw: dict[str, Any],
    athlete_timezone: str | None,
    *,
    source: str = "strava",
) -> IngestResult | None:
    """Normalize and idempotently persist one raw activity.

    Returns None when the raw activity is incomplete and was skipped.
    """
    normalized = normalize_strava_activity(raw, athlete_timezone)
    if normalized is None:
        return None
    return save_normalized_activity(session, athlete_id, normalized, source=source)


def process_activity(
    session: Session,
    athlete_id: str,
    raw: dict[str, Any],
    athlete_timezone: str | None,
    *,
    notifier: ScoringNotifier | None = None,
) -> SyncRunSummary:
    """Ingest, match and reconcile one activity; commit; return its counts.

    Reconciliation failures are logged and left for the next pass.
    """
    result = ingest_activity(session, athlete_id, raw, athlete_timezone)
    if result is None:
        return SyncRunSummary()

    activity = result.activity
    matched = 0

    if activity.planned_session_id is None and match_and_link(session, activity) is not None:
        matched = 1

    try:
        with session.begin_nested():
            reconcile_linked_session(session, activity)
    except Exception as e:
        logger.warning(f"[SYNC] Status reconciliation failed for activity {activity.id}: {e}")

    session.commit()

    if result.kind in ("created", "updated") and notifier is not None:
        notify_safely(notifier, athlete_id, activity.start_time)

    return SyncRunSummary(
        created=1 if result.kind == "created" else 0,
        updated=1 if result.kind == "updated" else 0,
        skipped_unchanged=1 if result.kind == "unchanged" else 0,
        matched=matched,
    )
