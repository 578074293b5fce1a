from __future__ import annotations

import datetime as dt
from typing import Any

import httpx
from loguru import logger

from coachsync.config.settings import settings
from coachsync.integrations.strava.errors import ProviderResponseInvalid, RateLimited

DEFAULT_PAGE_SIZE = 50


class StravaClient:
    """Thin Strava API client.

    - Bounded pagination (max_pages per call)
    - No sleeping, no retries: 429 surfaces as RateLimited
    - No persistence
    """

    def __init__(self, access_token: str, *, base_url: str | None = None, timeout: float = 15):
        self._access_token = access_token
        self._base_url = (base_url or settings.strava_api_base_url).rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        resp = httpx.get(
            f"{self._base_url}{path}",
            headers=self._headers(),
            params=params,
            timeout=self._timeout,
        )

        if resp.status_code == 429:
            raise RateLimited("Strava rate limit hit. Try again later.")

        if resp.status_code >= 400:
            raise ProviderResponseInvalid(
                f"Strava request {path} failed with status {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderResponseInvalid(f"Strava response for {path} was not JSON") from e

    def list_activities(
        self,
        *,
        after: dt.datetime,
        per_page: int = DEFAULT_PAGE_SIZE,
        max_pages: int = 1,
    ) -> list[dict[str, Any]]:
        """Fetch activities started after `after`, at most `max_pages` pages.

        Raises:
            RateLimited: Strava answered 429
            ProviderResponseInvalid: Non-2xx status or a body that is not a list
        """
        after_epoch = max(0, int(after.timestamp()))
        activities: list[dict[str, Any]] = []

        for page in range(1, max(1, max_pages) + 1):
            payload = self._get(
                "/athlete/activities",
                params={"after": after_epoch, "per_page": per_page, "page": page},
            )
            if not isinstance(payload, list):
                raise ProviderResponseInvalid("Strava activities response was not an array.")

            activities.extend(item for item in payload if isinstance(item, dict))
            logger.debug(f"[FETCH] page={page} returned {len(payload)} activities (after={after_epoch})")

            if len(payload) < per_page:
                break

        return activities

    def get_activity(self, activity_id: str) -> dict[str, Any]:
        """Fetch one activity by id.

        Raises:
            RateLimited: Strava answered 429
            ProviderResponseInvalid: Non-2xx status or a body that is not an object
        """
        payload = self._get(f"/activities/{activity_id}")
        if not isinstance(payload, dict):
            raise ProviderResponseInvalid("Strava activity response was not an object.")
        return payload
