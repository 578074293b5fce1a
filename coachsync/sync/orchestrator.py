"""Sync orchestrator: the entry points that drive token → fetch → ingest → match.

Entry points:
- sync_connections / poll_scheduled: bulk poll over many athletes (cron)
- sync_activity_by_id / handle_webhook_event: one activity (provider webhook)
- poll_on_demand: user-initiated poll, ownership-checked

Per-athlete isolation: any error for one athlete is recorded in the summary
and the batch moves on, except RateLimited (stop the batch, keep the partial
summary) and ProviderConfigError (propagates).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from coachsync.config.settings import settings
from coachsync.db.models import Athlete, ProviderConnection, SyncRun
from coachsync.ingestion.pipeline import process_activity
from coachsync.integrations.strava.client import StravaClient
from coachsync.integrations.strava.errors import ProviderConfigError, RateLimited
from coachsync.integrations.strava.schemas import StravaWebhookEvent
from coachsync.integrations.strava.token_service import ensure_fresh_token
from coachsync.sync.ownership import OwnershipResolver
from coachsync.sync.scoring import ScoringNotifier
from coachsync.sync.summary import SyncRunSummary, combine
from coachsync.utils.time_utils import as_utc

MAX_FORCE_DAYS = 30
WEBHOOK_UPDATE_FALLBACK_DAYS = 30
WEBHOOK_DEFAULT_FALLBACK_DAYS = 2

Fetch = Callable[[StravaClient, ProviderConnection, datetime], list[dict[str, Any]]]


@dataclass(frozen=True)
class SyncContext:
    """Everything one athlete's sync pass needs, passed explicitly."""

    athlete_id: str
    connection_id: str
    timezone: str


def clamp_force_days(value: Any) -> int | None:
    """Clamp a forced lookback to [1, 30]; None when absent, not a number or not positive."""
    if value is None or isinstance(value, bool):
        return None
    try:
        days = int(float(value))
    except (TypeError, ValueError):
        return None
    if days <= 0:
        return None
    return min(MAX_FORCE_DAYS, days)


def compute_window_start(
    *,
    now: datetime,
    last_sync_at: datetime | None,
    force_days: int | None = None,
    lookback_days: int | None = None,
    safety_buffer: timedelta | None = None,
) -> datetime:
    """Start of the fetch window for one athlete.

    max(last_sync_at, now - lookback) - buffer, or now - force_days - buffer
    when a forced lookback is given.
    """
    buffer = safety_buffer if safety_buffer is not None else timedelta(minutes=settings.sync_safety_buffer_minutes)
    forced = clamp_force_days(force_days)
    if forced is not None:
        return now - timedelta(days=forced) - buffer

    lookback_floor = now - timedelta(days=lookback_days or settings.sync_lookback_days)
    base = lookback_floor if last_sync_at is None else max(as_utc(last_sync_at), lookback_floor)
    return base - buffer


def load_contexts(session: Session, athlete_ids: Sequence[str] | None = None) -> list[SyncContext]:
    """Sync contexts for connected athletes (all of them when athlete_ids is None)."""
    query = (
        select(ProviderConnection, Athlete.timezone)
        .join(Athlete, Athlete.id == ProviderConnection.athlete_id)
        .where(ProviderConnection.provider == "strava")
        .order_by(ProviderConnection.athlete_id)
    )
    if athlete_ids is not None:
        if not athlete_ids:
            return []
        query = query.where(ProviderConnection.athlete_id.in_(list(athlete_ids)))

    return [
        SyncContext(
            athlete_id=connection.athlete_id,
            connection_id=connection.id,
            timezone=tz or settings.default_athlete_timezone,
        )
        for connection, tz in session.execute(query).all()
    ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        fetcher_factory: Callable[[str], StravaClient] = StravaClient,
        notifier: ScoringNotifier | None = None,
        ownership: OwnershipResolver | None = None,
        clock: Callable[[], datetime] = _utcnow,
        max_workers: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._fetcher_factory = fetcher_factory
        self._notifier = notifier
        self._ownership = ownership
        self._clock = clock
        self._max_workers = max_workers or settings.sync_max_workers

    # Per-athlete body

    def _record_failure(self, connection_id: str, message: str) -> None:
        try:
            with self._session_factory() as session:
                connection = session.get(ProviderConnection, connection_id)
                if connection is not None:
                    connection.last_sync_error = message[:500]
                    session.commit()
        except Exception as e:
            logger.warning(f"[SYNC] Could not record sync error on connection {connection_id}: {e}")

    def _sync_athlete(self, context: SyncContext, fetch: Fetch) -> SyncRunSummary:
        summary = SyncRunSummary(athletes_processed=1)
        now = self._clock()

        with self._session_factory() as session:
            try:
                connection = session.get(ProviderConnection, context.connection_id)
                if connection is None:
                    return summary.with_error(context.athlete_id, "Provider connection not found.")

                connection = ensure_fresh_token(session, connection, now=now)
                client = self._fetcher_factory(connection.access_token)
                raw_activities = fetch(client, connection, now)
                summary = replace(summary, fetched=len(raw_activities))

                for raw in raw_activities:
                    summary = summary.merge(
                        process_activity(
                            session,
                            context.athlete_id,
                            raw,
                            context.timezone,
                            notifier=self._notifier,
                        )
                    )

                connection.last_sync_at = now
                connection.last_sync_error = None
                session.commit()
            except ProviderConfigError:
                session.rollback()
                logger.error("[SYNC] Strava client credentials missing, aborting run")
                raise
            except RateLimited as e:
                session.rollback()
                logger.warning(f"[SYNC] Rate limited while syncing athlete_id={context.athlete_id}, stopping batch")
                self._record_failure(context.connection_id, str(e))
                return summary.with_error(context.athlete_id, str(e), rate_limited=True)
            except Exception as e:
                session.rollback()
                logger.opt(exception=True).error(f"[SYNC] Sync failed for athlete_id={context.athlete_id}: {e}")
                self._record_failure(context.connection_id, str(e) or type(e).__name__)
                return summary.with_error(context.athlete_id, str(e) or "Strava sync failed.")

        logger.info(
            f"[SYNC] athlete_id={context.athlete_id}: fetched={summary.fetched} created={summary.created} "
            f"updated={summary.updated} matched={summary.matched} unchanged={summary.skipped_unchanged}"
        )
        return summary

    # Batch driver

    def _run_sequential(self, contexts: Sequence[SyncContext], fetch: Fetch) -> SyncRunSummary:
        results: list[SyncRunSummary] = []
        for context in contexts:
            result = self._sync_athlete(context, fetch)
            results.append(result)
            if result.rate_limited:
                skipped = len(contexts) - len(results)
                if skipped:
                    logger.warning(f"[SYNC] Skipping {skipped} remaining athlete(s) after rate limit")
                break
        return combine(results)

    def _run_parallel(self, contexts: Sequence[SyncContext], fetch: Fetch) -> SyncRunSummary:
        stop = threading.Event()

        def run(context: SyncContext) -> SyncRunSummary:
            if stop.is_set():
                return SyncRunSummary()
            result = self._sync_athlete(context, fetch)
            if result.rate_limited:
                stop.set()
            return result

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="strava-sync") as pool:
            return combine(pool.map(run, contexts))

    def _run(self, contexts: Sequence[SyncContext], fetch: Fetch, trigger: str) -> SyncRunSummary:
        started_at = self._clock()
        logger.info(f"[SYNC] Starting {trigger} run for {len(contexts)} athlete(s)")

        if self._max_workers > 1 and len(contexts) > 1:
            summary = self._run_parallel(contexts, fetch)
        else:
            summary = self._run_sequential(contexts, fetch)

        logger.info(f"[SYNC] {trigger} run finished: {summary.to_dict()}")
        self._record_run(trigger, started_at, summary)
        return summary

    def _record_run(self, trigger: str, started_at: datetime, summary: SyncRunSummary) -> None:
        if not settings.sync_audit_enabled:
            return
        try:
            with self._session_factory() as session:
                session.add(
                    SyncRun(
                        trigger=trigger,
                        started_at=started_at,
                        finished_at=self._clock(),
                        athletes_processed=summary.athletes_processed,
                        fetched=summary.fetched,
                        created=summary.created,
                        updated=summary.updated,
                        matched=summary.matched,
                        skipped_unchanged=summary.skipped_unchanged,
                        errors=summary.to_dict()["errors"],
                    )
                )
                session.commit()
        except Exception as e:
            logger.warning(f"[SYNC] Failed to write sync audit row: {e}")

    # Entry points

    def sync_connections(
        self,
        contexts: Sequence[SyncContext],
        *,
        force_days: Any = None,
        trigger: str = "scheduled",
    ) -> SyncRunSummary:
        """Bulk poll: fetch each athlete's window and ingest everything in it."""
        forced = clamp_force_days(force_days)

        def fetch(client: StravaClient, connection: ProviderConnection, now: datetime) -> list[dict[str, Any]]:
            after = compute_window_start(now=now, last_sync_at=connection.last_sync_at, force_days=forced)
            logger.info(f"[SYNC] Fetching activities for athlete_id={connection.athlete_id} after {after.isoformat()}")
            return client.list_activities(after=after, per_page=settings.sync_page_size, max_pages=settings.sync_max_pages)

        return self._run(contexts, fetch, trigger)

    def sync_activity_by_id(self, context: SyncContext, activity_id: str) -> SyncRunSummary:
        """Fetch and ingest exactly one activity."""

        def fetch(client: StravaClient, _connection: ProviderConnection, _now: datetime) -> list[dict[str, Any]]:
            return [client.get_activity(activity_id)]

        return self._run([context], fetch, "webhook")

    def poll_scheduled(self, *, athlete_id: str | None = None, force_days: Any = None) -> SyncRunSummary:
        """Cron entry point over every connected athlete (or just one)."""
        if not settings.strava_autosync_enabled:
            logger.info("[SYNC] Scheduled poll disabled by STRAVA_AUTOSYNC_ENABLED")
            return SyncRunSummary()

        with self._session_factory() as session:
            contexts = load_contexts(session, [athlete_id] if athlete_id else None)
        return self.sync_connections(contexts, force_days=force_days, trigger="scheduled")

    def poll_on_demand(
        self,
        caller_id: str,
        athlete_id: str | None = None,
        *,
        force_days: Any = None,
    ) -> SyncRunSummary:
        """User-initiated poll for one athlete or every athlete the caller may sync.

        Raises:
            UnauthorizedSyncError: The caller may not sync the requested athlete
        """
        if self._ownership is None:
            raise RuntimeError("poll_on_demand requires an ownership resolver")

        if athlete_id:
            self._ownership.assert_can_sync(caller_id, athlete_id)
            athlete_ids = [athlete_id]
        else:
            athlete_ids = self._ownership.athletes_for_caller(caller_id)

        with self._session_factory() as session:
            contexts = load_contexts(session, athlete_ids)
        return self.sync_connections(contexts, force_days=force_days, trigger="on_demand")

    def handle_webhook_event(self, event: StravaWebhookEvent | dict[str, Any]) -> SyncRunSummary | None:
        """Process one provider webhook event. Never raises.

        create/update with an activity id fetch just that activity; any other
        activity event falls back to a short forced bulk poll.
        """
        try:
            if not isinstance(event, StravaWebhookEvent):
                event = StravaWebhookEvent.model_validate(event)
        except ValidationError as e:
            logger.warning(f"[WEBHOOK] Ignoring malformed event: {e.error_count()} validation errors")
            return None

        if event.object_type != "activity" or not event.owner_id:
            logger.debug(f"[WEBHOOK] Ignoring event object_type={event.object_type} owner_id={event.owner_id}")
            return None

        try:
            with self._session_factory() as session:
                row = session.execute(
                    select(ProviderConnection.id, ProviderConnection.athlete_id, Athlete.timezone)
                    .join(Athlete, Athlete.id == ProviderConnection.athlete_id)
                    .where(ProviderConnection.provider_athlete_id == str(event.owner_id))
                ).first()

            if row is None:
                logger.info(f"[WEBHOOK] No connection for provider athlete {event.owner_id}")
                return None

            context = SyncContext(
                athlete_id=row.athlete_id,
                connection_id=row.id,
                timezone=row.timezone or settings.default_athlete_timezone,
            )

            if event.object_id and event.aspect_type in ("create", "update"):
                return self.sync_activity_by_id(context, str(event.object_id))

            fallback_days = WEBHOOK_UPDATE_FALLBACK_DAYS if event.aspect_type == "update" else WEBHOOK_DEFAULT_FALLBACK_DAYS
            logger.info(f"[WEBHOOK] Falling back to {fallback_days}-day poll for athlete_id={context.athlete_id}")
            return self.sync_connections([context], force_days=fallback_days, trigger="webhook")
        except Exception as e:
            logger.opt(exception=True).error(f"[WEBHOOK] Processing failed for owner_id={event.owner_id}: {e}")
            return None
