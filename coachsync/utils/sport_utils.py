"""Sport type normalization utilities.

Maps provider sport/type strings to the disciplines planned sessions use.
"""

from __future__ import annotations

from coachsync.db.models import Discipline


def normalize_discipline(sport_type: str | None) -> Discipline:
    """Classify a provider sport/type string by substring.

    "TrailRun" and "VirtualRun" are runs, "EBikeRide" and "VirtualRide" are
    rides, anything unrecognised is OTHER.

    Args:
        sport_type: Provider sport type (e.g. 'Run', 'VirtualRide', 'Swim')

    Returns:
        Normalized discipline
    """
    raw = (sport_type or "").lower()

    if "run" in raw:
        return Discipline.RUN
    if "ride" in raw or "bike" in raw:
        return Discipline.BIKE
    if "swim" in raw:
        return Discipline.SWIM

    return Discipline.OTHER
