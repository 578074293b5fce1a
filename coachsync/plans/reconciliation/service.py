"""Persistence side of the planned-session status state machine.

Every function here is idempotent: re-running it after a crash or on the next
sync pass converges to the same statuses.
"""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from coachsync.db.models import IngestedActivity, PlannedSession
from coachsync.plans.reconciliation.status import reconcile_status


class ActivityNotFoundError(Exception):
    """Raised when confirming an activity that does not exist."""


def reconcile_linked_session(session: Session, activity: IngestedActivity) -> bool:
    """Bring the linked session's status in line with the activity's confirmation.

    Args:
        session: Database session
        activity: Activity that may be linked to a planned session

    Returns:
        True if the session status changed, False otherwise (including no link)
    """
    if not activity.planned_session_id:
        return False

    planned = session.get(PlannedSession, activity.planned_session_id)
    if planned is None:
        logger.warning(
            f"[RECONCILE] Planned session {activity.planned_session_id} not found for activity {activity.id}"
        )
        return False

    next_status = reconcile_status(planned.status, confirmed=activity.confirmed_at is not None)
    if next_status == planned.status:
        return False

    logger.info(f"[RECONCILE] Planned session {planned.id}: {planned.status} -> {next_status.value}")
    planned.status = next_status.value
    session.flush()
    return True


def confirm_activity(
    session: Session,
    activity_id: str,
    *,
    now: datetime | None = None,
) -> IngestedActivity:
    """Record the athlete's explicit confirmation of a synced activity.

    Sets confirmed_at (once; re-confirming keeps the first instant) and
    promotes a linked draft session to COMPLETED_SYNCED.

    Raises:
        ActivityNotFoundError: No activity with this id
    """
    activity = session.get(IngestedActivity, activity_id)
    if activity is None:
        raise ActivityNotFoundError(f"Activity {activity_id} not found")

    if activity.confirmed_at is None:
        activity.confirmed_at = now or datetime.now(timezone.utc)
        logger.info(f"[RECONCILE] Activity {activity.id} confirmed by athlete_id={activity.athlete_id}")

    reconcile_linked_session(session, activity)
    session.commit()
    return activity


def reconcile_athlete_sessions(session: Session, athlete_id: str) -> int:
    """Self-heal pass over every linked activity of one athlete.

    A failure on one session is logged and skipped; the next pass will pick
    it up again.

    Returns:
        Number of sessions whose status changed
    """
    activities = session.scalars(
        select(IngestedActivity).where(
            IngestedActivity.athlete_id == athlete_id,
            IngestedActivity.planned_session_id.is_not(None),
        )
    ).all()

    changed = 0
    for activity in activities:
        try:
            with session.begin_nested():
                if reconcile_linked_session(session, activity):
                    changed += 1
        except Exception as e:
            logger.warning(f"[RECONCILE] Failed to reconcile activity {activity.id}: {e}")

    session.commit()
    logger.info(f"[RECONCILE] Self-heal for athlete_id={athlete_id}: {changed} session(s) corrected")
    return changed
