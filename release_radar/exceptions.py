"""
Exception classes for Release Radar

Every error raised by the application derives from ReleaseRadarError so the
CLI can report failures uniformly. The hierarchy mirrors how a failure is
handled rather than where it happened:

    ReleaseRadarError (base)
        ConfigError            - invalid or missing configuration
        AuthError              - no usable token, refresh failed
        AuthExpired            - remote answered 401, one refresh-and-retry allowed
        TransientNetworkError  - connection problems, timeouts, 5xx (retried)
        RateLimited            - 429 from the remote (retried)
        RateLimitExceeded      - rate limiting beyond what we are willing to wait (fatal)
        FatalApiError          - any other non-retryable response (fatal)
        FatalFetchError        - retries exhausted for a page (fatal)
        MalformedData          - unusable catalog record (skipped and logged)
        PersistenceError       - local store could not be read or written (fatal)
"""

from typing import Any, Dict, Optional


class ReleaseRadarError(Exception):
    """
    Base exception for all Release Radar errors

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context (artist id, cursor, status)
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(ReleaseRadarError):
    """Raised when configuration is missing or invalid"""
    pass


class AuthError(ReleaseRadarError):
    """
    Raised when no valid Spotify token can be obtained

    Typical causes are a missing token record (never logged in) or a refresh
    request that the accounts service rejected.
    """
    pass


class AuthExpired(ReleaseRadarError):
    """
    Raised when the Web API rejects the access token (HTTP 401)

    The fetcher surfaces this immediately. The synchronization engine refreshes
    credentials once and re-invokes the call; a second occurrence is fatal.
    """
    pass


class TransientNetworkError(ReleaseRadarError):
    """Connection failure, timeout or 5xx response; retried by the fetcher"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status: Optional[int] = None
    ) -> None:
        super().__init__(message, details)
        self.status = status


class RateLimited(ReleaseRadarError):
    """
    HTTP 429 from the Web API

    Attributes:
        retry_after: Advisory wait in seconds from the Retry-After header, if any
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


class RateLimitExceeded(ReleaseRadarError):
    """Rate limiting lasted longer than the retry policy tolerates"""
    pass


class FatalApiError(ReleaseRadarError):
    """
    Non-retryable response from the Web API (4xx other than 401/429)

    Attributes:
        status: HTTP status code of the response
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, details)
        self.status = status


class FatalFetchError(ReleaseRadarError):
    """A page could not be fetched after all retry attempts"""
    pass


class MalformedData(ReleaseRadarError):
    """A catalog record is unusable, e.g. a release without a day-precision date"""
    pass


class PersistenceError(ReleaseRadarError):
    """The local store or update state could not be durably read or written"""
    pass


# Errors that abort a synchronization run while keeping its checkpoint
FATAL_SYNC_ERRORS = (
    AuthError,
    AuthExpired,
    RateLimitExceeded,
    FatalApiError,
    FatalFetchError,
    PersistenceError,
)
