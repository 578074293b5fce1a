from celery import Celery

from coachsync.config.settings import settings

celery_app = Celery(
    "coachsync",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["coachsync.sync.tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    # Bounds a whole batch; individual provider calls have their own timeouts
    task_soft_time_limit=10 * 60,
    task_time_limit=12 * 60,
    beat_schedule={
        "strava-scheduled-poll": {
            "task": "coachsync.sync.tasks.scheduled_poll_task",
            "schedule": settings.sync_poll_interval_minutes * 60,
        },
    },
)
