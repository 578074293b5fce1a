import time
from typing import Any

from loguru import logger

from coachsync.celery_app import celery_app
from coachsync.db.session import get_session, get_session_factory
from coachsync.plans.reconciliation import confirm_activity, reconcile_athlete_sessions
from coachsync.sync.orchestrator import SyncOrchestrator
from coachsync.sync.scoring import CeleryScoringNotifier


def build_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator(get_session_factory(), notifier=CeleryScoringNotifier())


@celery_app.task
def scheduled_poll_task(athlete_id: str | None = None, force_days: int | None = None) -> dict[str, Any]:
    """Periodic Strava poll over every connected athlete."""
    task_start = time.time()
    logger.info(f"[CELERY] Scheduled poll STARTED (athlete_id={athlete_id}, force_days={force_days})")
    summary = build_orchestrator().poll_scheduled(athlete_id=athlete_id, force_days=force_days)
    elapsed = time.time() - task_start
    logger.info(f"[CELERY] Scheduled poll finished in {elapsed:.2f}s: {summary.to_dict()}")
    return summary.to_dict()


@celery_app.task
def reconcile_athlete_task(athlete_id: str) -> int:
    """Self-heal every linked planned session of one athlete."""
    with get_session() as session:
        return reconcile_athlete_sessions(session, athlete_id)


@celery_app.task
def confirm_activity_task(activity_id: str) -> str | None:
    """Athlete confirmed a synced activity; returns the linked session id."""
    with get_session() as session:
        activity = confirm_activity(session, activity_id)
        logger.info(f"[CELERY] Activity {activity_id} confirmed")
        return activity.planned_session_id
