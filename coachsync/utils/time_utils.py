"""Timezone helpers for athlete-local day keys."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_provider_instant(value: str | datetime | None) -> datetime | None:
    """Parse a provider ISO-8601 instant ("2024-03-01T21:00:00Z") to aware UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        logger.debug(f"Unparseable provider instant: {value!r}")
        return None


def resolve_zone(tz_name: str | None, fallback: str = "UTC") -> ZoneInfo:
    """Resolve an IANA timezone name, falling back when unknown."""
    for name in (tz_name, fallback, "UTC"):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone '{name}', trying fallback")
    return ZoneInfo("UTC")


def to_local(instant: datetime, tz_name: str | None) -> datetime:
    """Convert an instant to naive wall-clock time in the athlete's timezone."""
    return as_utc(instant).astimezone(resolve_zone(tz_name)).replace(tzinfo=None)


def local_day_key(instant: datetime, tz_name: str | None) -> date:
    """Calendar date of `instant` as observed in `tz_name`."""
    return to_local(instant, tz_name).date()


def local_minutes(instant: datetime, tz_name: str | None) -> int:
    """Minutes since local midnight of `instant` in `tz_name`."""
    local = to_local(instant, tz_name)
    return local.hour * 60 + local.minute


def parse_time_to_minutes(value: str | None) -> int | None:
    """Parse "HH:MM" into minutes of day; None when missing or malformed."""
    if not value:
        return None
    parts = value.strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours * 60 + minutes
