"""Error taxonomy for provider sync.

How the orchestrator treats each one:
- ProviderConfigError: batch-fatal, propagates to the caller
- TokenRefreshError: skip this athlete, record the error, continue
- RateLimited: record the error and stop the remaining athletes
- ProviderResponseInvalid: skip this athlete, record the error, continue
"""

from __future__ import annotations


class StravaSyncError(Exception):
    """Base exception for sync errors."""


class ProviderConfigError(StravaSyncError):
    """Raised when client credentials are missing."""


class TokenRefreshError(StravaSyncError):
    """Raised when the provider rejects a token refresh."""


class RateLimited(StravaSyncError):
    """Raised on HTTP 429 from the provider."""


class ProviderResponseInvalid(StravaSyncError):
    """Raised on a non-2xx or malformed provider response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
