from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class StravaActivityMap(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary_polyline: str | None = None


class StravaActivity(BaseModel):
    """Summary activity as returned by /athlete/activities and /activities/{id}.

    Every field is optional: incomplete activities are skipped by the
    ingestion pipeline rather than rejected here.
    """

    model_config = ConfigDict(extra="allow")

    id: int | str | None = None
    name: str | None = None
    type: str | None = None
    sport_type: str | None = None
    start_date: str | None = None  # UTC
    start_date_local: str | None = None
    timezone: str | None = None
    elapsed_time: int | None = None  # seconds
    moving_time: int | None = None  # seconds
    distance: float | None = None  # meters
    total_elevation_gain: float | None = None
    elev_high: float | None = None
    elev_low: float | None = None
    average_speed: float | None = None  # m/s
    max_speed: float | None = None
    average_heartrate: float | None = None
    max_heartrate: float | None = None
    average_cadence: float | None = None
    calories: float | None = None
    map: StravaActivityMap | None = None


class StravaWebhookEvent(BaseModel):
    """Push subscription event body."""

    model_config = ConfigDict(extra="ignore")

    aspect_type: Literal["create", "update", "delete"] | None = None
    event_time: int | None = None
    object_id: int | None = None
    object_type: Literal["activity", "athlete"] | None = None
    owner_id: int | None = None
    subscription_id: int | None = None
    updates: dict[str, Any] | None = None
