"""Normalize raw provider activities into ingestion-ready records.

Pure functions only: no database access, no network.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError

from coachsync.db.models import Discipline
from coachsync.integrations.strava.schemas import StravaActivity
from coachsync.utils.sport_utils import normalize_discipline
from coachsync.utils.time_utils import local_day_key, local_minutes, parse_provider_instant, to_local

METRICS_NAMESPACE = "strava"


@dataclass(frozen=True)
class NormalizedActivity:
    external_activity_id: str
    discipline: Discipline
    title: str | None
    start_time: datetime
    start_time_local: datetime
    local_date: date
    local_start_minutes: int
    duration_seconds: int
    distance_meters: float | None
    metrics: dict[str, Any]
    metrics_namespace: str = METRICS_NAMESPACE


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _avg_pace_sec_per_km(avg_speed_mps: float | None) -> int | None:
    if not avg_speed_mps or avg_speed_mps <= 0:
        return None
    return round(1000 / avg_speed_mps)


def build_metrics(activity: StravaActivity, discipline: Discipline, external_id: str) -> dict[str, Any]:
    """Build the provider metrics payload stored under the `strava` namespace."""
    return _compact(
        {
            "activityId": external_id,
            "startDateUtc": activity.start_date,
            "startDateLocal": activity.start_date_local,
            "timezone": activity.timezone,
            "name": activity.name,
            "sportType": activity.sport_type,
            "type": activity.type,
            "distanceMeters": activity.distance,
            "movingTimeSec": activity.moving_time,
            "elapsedTimeSec": activity.elapsed_time,
            "totalElevationGainM": activity.total_elevation_gain,
            "elevHighM": activity.elev_high,
            "elevLowM": activity.elev_low,
            "averageSpeedMps": activity.average_speed,
            "maxSpeedMps": activity.max_speed,
            "averageHeartrateBpm": activity.average_heartrate,
            "maxHeartrateBpm": activity.max_heartrate,
            "averageCadenceRpm": activity.average_cadence,
            "caloriesKcal": activity.calories,
            "summaryPolyline": activity.map.summary_polyline if activity.map else None,
            "avgPaceSecPerKm": _avg_pace_sec_per_km(activity.average_speed) if discipline == Discipline.RUN else None,
            "avgHr": round(activity.average_heartrate) if activity.average_heartrate is not None else None,
            "maxHr": round(activity.max_heartrate) if activity.max_heartrate is not None else None,
        }
    )


def normalize_strava_activity(raw: dict[str, Any], athlete_timezone: str | None) -> NormalizedActivity | None:
    """Normalize one raw Strava activity for the given athlete timezone.

    Returns None (skip, not an error) when the activity has no id, no
    parseable start time, or no positive elapsed duration.
    """
    try:
        activity = StravaActivity.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"[INGEST] Skipping malformed activity id={raw.get('id')!r}: {e.error_count()} validation errors")
        return None

    external_id = str(activity.id).strip() if activity.id is not None else ""
    if not external_id:
        logger.debug("[INGEST] Skipping activity without id")
        return None

    start_time = parse_provider_instant(activity.start_date)
    if start_time is None:
        logger.debug(f"[INGEST] Skipping activity {external_id}: missing start_date")
        return None

    if not activity.elapsed_time or activity.elapsed_time <= 0:
        logger.debug(f"[INGEST] Skipping activity {external_id}: missing elapsed_time")
        return None

    discipline = normalize_discipline(activity.sport_type or activity.type)
    start_local = to_local(start_time, athlete_timezone)
    distance = activity.distance if activity.distance is not None and activity.distance > 0 else None
    title = (activity.name or "").strip() or None

    return NormalizedActivity(
        external_activity_id=external_id,
        discipline=discipline,
        title=title,
        start_time=start_time,
        start_time_local=start_local,
        local_date=local_day_key(start_time, athlete_timezone),
        local_start_minutes=local_minutes(start_time, athlete_timezone),
        duration_seconds=int(activity.elapsed_time),
        distance_meters=distance,
        metrics=build_metrics(activity, discipline, external_id),
    )
