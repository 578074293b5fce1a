"""Provider token manager.

Owns the access/refresh token pair of one athlete's connection and refreshes
it on demand. It is the only writer of token fields on ProviderConnection.
"""

from __future__ import annotations

import datetime as dt

import requests
from loguru import logger
from sqlalchemy.orm import Session

from coachsync.config.settings import settings
from coachsync.db.models import ProviderConnection
from coachsync.integrations.strava.errors import ProviderConfigError, RateLimited, TokenRefreshError
from coachsync.integrations.strava.tokens import refresh_access_token
from coachsync.utils.time_utils import as_utc

EXPIRY_MARGIN_SECONDS = 60


def token_is_fresh(connection: ProviderConnection, *, now: dt.datetime | None = None) -> bool:
    """True when the stored access token outlives the safety margin."""
    current = now or dt.datetime.now(dt.timezone.utc)
    threshold = as_utc(connection.expires_at) - dt.timedelta(seconds=EXPIRY_MARGIN_SECONDS)
    return current < threshold


def _validate_token_data(token_data: dict) -> tuple[str, str, int]:
    """Extract (access_token, refresh_token, expires_at) or raise TokenRefreshError."""
    new_access_token = token_data.get("access_token")
    new_refresh_token = token_data.get("refresh_token")
    new_expires_at = token_data.get("expires_at")

    if not new_access_token or not isinstance(new_access_token, str):
        raise TokenRefreshError("Strava token refresh response missing access_token")
    if not new_refresh_token or not isinstance(new_refresh_token, str):
        raise TokenRefreshError("Strava token refresh response missing refresh_token")
    if not isinstance(new_expires_at, int) or isinstance(new_expires_at, bool):
        raise TokenRefreshError("Strava token refresh response missing expires_at")

    return new_access_token, new_refresh_token, new_expires_at


def ensure_fresh_token(
    session: Session,
    connection: ProviderConnection,
    *,
    now: dt.datetime | None = None,
) -> ProviderConnection:
    """Return the connection with an access token valid for at least 60s.

    Refreshes through the provider only when needed and persists the new
    triple. Scope is preserved when the refresh response omits it.

    Raises:
        ProviderConfigError: Client credentials are not configured
        TokenRefreshError: Provider rejected the refresh or answered malformed
        RateLimited: Provider throttled the refresh call
    """
    if token_is_fresh(connection, now=now):
        logger.debug(f"[TOKEN_REFRESH] Token still valid for athlete_id={connection.athlete_id}")
        return connection

    if not settings.strava_client_id or not settings.strava_client_secret:
        raise ProviderConfigError("STRAVA_CLIENT_ID/STRAVA_CLIENT_SECRET are not set.")

    logger.info(f"[TOKEN_REFRESH] Refreshing tokens for athlete_id={connection.athlete_id}")
    try:
        token_data = refresh_access_token(
            client_id=settings.strava_client_id,
            client_secret=settings.strava_client_secret,
            refresh_token=connection.refresh_token,
        )
    except requests.HTTPError as e:
        status_code = e.response.status_code if e.response is not None else None
        if status_code == 429:
            raise RateLimited("Strava rate limit hit during token refresh. Try again later.") from e
        raise TokenRefreshError(f"Failed to refresh Strava token (status={status_code})") from e
    except requests.RequestException as e:
        raise TokenRefreshError(f"Failed to refresh Strava token: {e}") from e
    except ValueError as e:
        raise TokenRefreshError("Strava token refresh response was not JSON") from e

    if not isinstance(token_data, dict):
        raise TokenRefreshError("Strava token refresh response was not an object")

    access_token, refresh_token, expires_at = _validate_token_data(token_data)

    connection.access_token = access_token
    connection.refresh_token = refresh_token
    connection.expires_at = dt.datetime.fromtimestamp(expires_at, tz=dt.timezone.utc)
    scope = token_data.get("scope")
    if scope:
        connection.scope = scope
    session.commit()

    logger.info(f"[TOKEN_REFRESH] Tokens refreshed successfully for athlete_id={connection.athlete_id}")
    return connection
