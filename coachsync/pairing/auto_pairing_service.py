"""Auto-pairing of ingested activities with planned sessions.

Canonical pairing rules:
- Same athlete
- Same discipline (normalized)
- Session still PLANNED or MODIFIED
- Session date within ±1 athlete-local day of the activity

Ranking, strictly in this order:
1. Same local day beats adjacent day
2. Closest planned start time (minutes of day) to the activity's local start
3. Sessions without a planned time rank after timed ones of equal day distance
4. Earliest planned time, then earliest date, then id

The ranking is a pure function of its inputs, so the outcome does not depend
on query or call order.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coachsync.db.models import IngestedActivity, PlannedSession
from coachsync.plans.reconciliation.status import MATCHABLE_STATUSES, status_on_link
from coachsync.utils.time_utils import parse_time_to_minutes

MAX_CANDIDATES = 25
DAY_WINDOW = 1


@dataclass(frozen=True)
class RankedCandidate:
    planned: PlannedSession
    day_distance: int
    planned_minutes: int | None
    time_diff: int | None

    def sort_key(self) -> tuple:
        has_time = self.planned_minutes is not None
        return (
            self.day_distance,
            0 if has_time else 1,
            self.time_diff if self.time_diff is not None else math.inf,
            self.planned_minutes if has_time else math.inf,
            self.planned.date,
            self.planned.id,
        )


def rank_candidates(
    candidates: Iterable[PlannedSession],
    activity_date: date,
    activity_minutes: int,
) -> list[RankedCandidate]:
    """Rank candidate sessions for an activity, best first.

    Candidates further than one day from `activity_date` are dropped.
    """
    ranked: list[RankedCandidate] = []
    for planned in candidates:
        day_distance = abs((planned.date - activity_date).days)
        if day_distance > DAY_WINDOW:
            continue
        planned_minutes = parse_time_to_minutes(planned.planned_start_time_local)
        time_diff = abs(planned_minutes - activity_minutes) if planned_minutes is not None else None
        ranked.append(
            RankedCandidate(
                planned=planned,
                day_distance=day_distance,
                planned_minutes=planned_minutes,
                time_diff=time_diff,
            )
        )

    ranked.sort(key=RankedCandidate.sort_key)
    return ranked


def _get_candidate_sessions(session: Session, activity: IngestedActivity) -> list[PlannedSession]:
    """Unmatched sessions of the same athlete/discipline around the activity's local day."""
    range_start = activity.local_date - timedelta(days=DAY_WINDOW)
    range_end = activity.local_date + timedelta(days=DAY_WINDOW)

    query = (
        select(PlannedSession)
        .where(
            PlannedSession.athlete_id == activity.athlete_id,
            PlannedSession.discipline == activity.discipline,
            PlannedSession.date >= range_start,
            PlannedSession.date <= range_end,
            PlannedSession.status.in_([s.value for s in MATCHABLE_STATUSES]),
        )
        .order_by(PlannedSession.date, PlannedSession.planned_start_time_local, PlannedSession.id)
        .limit(MAX_CANDIDATES)
    )
    return list(session.scalars(query).all())


def find_best_match(session: Session, activity: IngestedActivity) -> PlannedSession | None:
    """Best planned session for an activity, or None when nothing qualifies."""
    candidates = _get_candidate_sessions(session, activity)
    if not candidates:
        logger.info(
            f"[PAIRING] No candidates: activity_id={activity.id} athlete_id={activity.athlete_id} "
            f"date={activity.local_date} discipline={activity.discipline}"
        )
        return None

    ranked = rank_candidates(candidates, activity.local_date, activity.local_start_minutes)
    if not ranked:
        return None

    best = ranked[0]
    logger.debug(
        f"[PAIRING] Activity {activity.id}: chose planned session {best.planned.id} "
        f"(day_distance={best.day_distance}, time_diff={best.time_diff}) from {len(ranked)} candidate(s)"
    )
    return best.planned


def _persist_pairing(session: Session, planned: PlannedSession, activity: IngestedActivity) -> bool:
    """Link activity and session and set the session status in one transaction.

    The status update is conditional on the session still being matchable,
    and the activity link is unique per session, so two activities racing for
    the same session cannot both win.
    """
    next_status = status_on_link(activity.confirmed_at)
    try:
        with session.begin_nested():
            result = session.execute(
                update(PlannedSession)
                .where(
                    PlannedSession.id == planned.id,
                    PlannedSession.status.in_([s.value for s in MATCHABLE_STATUSES]),
                )
                .values(status=next_status.value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info(f"[PAIRING] Planned session {planned.id} no longer matchable, leaving activity {activity.id} unscheduled")
                return False
            activity.planned_session_id = planned.id
            session.flush()
    except IntegrityError as e:
        logger.warning(f"[PAIRING] Planned session {planned.id} already linked elsewhere: {e}")
        session.refresh(activity)
        return False

    session.refresh(planned)
    logger.info(f"[PAIRING] Paired activity {activity.id} with planned session {planned.id} ({next_status.value})")
    return True


def match_and_link(session: Session, activity: IngestedActivity) -> PlannedSession | None:
    """Match an unlinked activity to a planned session and persist the link.

    Returns:
        The linked planned session, or None when the activity stays unscheduled
        (already linked, no candidate, or lost a race for the candidate)
    """
    if activity.planned_session_id:
        logger.debug(f"[PAIRING] Activity {activity.id} already linked to {activity.planned_session_id}")
        return None

    planned = find_best_match(session, activity)
    if planned is None:
        return None

    if not _persist_pairing(session, planned, activity):
        return None
    return planned
