"""Raw OAuth refresh-grant call. Classification of failures lives in token_service."""

from __future__ import annotations

from typing import Any

import requests
from loguru import logger

from coachsync.config.settings import settings

TOKEN_TIMEOUT_SECONDS = 10


def refresh_access_token(
    *,
    client_id: str,
    client_secret: str,
    refresh_token: str,
) -> dict[str, Any]:
    """POST a refresh_token grant and return the decoded token response.

    Raises:
        requests.HTTPError: Strava answered with a non-2xx status
        requests.RequestException: Network failure or timeout
        ValueError: Body was not JSON
    """
    resp = requests.post(
        settings.strava_token_url,
        data={
            "client_id": client_id,
            "client_secret": client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        },
        timeout=TOKEN_TIMEOUT_SECONDS,
    )
    if not resp.ok:
        logger.warning(f"[TOKEN_REFRESH] Strava token endpoint answered {resp.status_code}")
    resp.raise_for_status()
    return resp.json()
