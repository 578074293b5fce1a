"""Out-of-band notification of the scoring collaborator.

Best effort: a failing notification never fails the sync.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from loguru import logger

from coachsync.config.settings import settings
from coachsync.utils.time_utils import as_utc


class ScoringNotifier(Protocol):
    def notify(self, athlete_id: str, start_time: datetime) -> None: ...


class CeleryScoringNotifier:
    """Enqueue the scoring recompute by task name (fire-and-forget)."""

    def __init__(self, task_name: str | None = None) -> None:
        self._task_name = task_name or settings.scoring_task_name

    def notify(self, athlete_id: str, start_time: datetime) -> None:
        from coachsync.celery_app import celery_app

        celery_app.send_task(self._task_name, args=[athlete_id, as_utc(start_time).isoformat()], ignore_result=True)


def notify_safely(notifier: ScoringNotifier, athlete_id: str, start_time: datetime) -> None:
    try:
        notifier.notify(athlete_id, start_time)
    except Exception as e:
        logger.warning(f"[SCORING] Failed to notify scoring for athlete_id={athlete_id}: {e}")
