"""
Spotify Web API client for followed artists, releases and playlists

This module is the transport underneath the rate-limited fetcher. It owns the
authenticated spotipy connection, paces requests and translates HTTP failures
into the application's error taxonomy:

    401          -> AuthExpired (caller refreshes credentials once and retries)
    429          -> RateLimited, carrying the Retry-After advisory if present
    5xx          -> TransientNetworkError
    other 4xx    -> FatalApiError
    connection   -> TransientNetworkError (timeouts, resets, DNS failures)

Nothing is retried here; the fetcher's RetryPolicy decides whether and when
a call is re-issued.

spotipy gets a plain requests.Session. Its default session mounts a urllib3
retry adapter that would consume 429 responses and their Retry-After header.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from ..config.settings import Settings, get_settings
from ..exceptions import (
    AuthExpired,
    FatalApiError,
    RateLimited,
    TransientNetworkError,
)
from ..utils.logger import get_logger

# Suppress spotipy's own error logging; failures are reported by the fetcher
logging.getLogger('spotipy.client').setLevel(logging.CRITICAL)


class TokenProvider(Protocol):
    """Source of bearer tokens for the Web API"""

    def access_token(self) -> str:
        ...

    def refresh(self) -> str:
        ...


def parse_retry_after(headers: Optional[Mapping[str, str]]) -> Optional[float]:
    """
    Read the advisory wait from a Retry-After header

    Args:
        headers: Response headers (case-insensitive mapping) or None

    Returns:
        Seconds to wait, or None when absent or not a number
    """
    if not headers:
        return None
    value = headers.get('Retry-After') or headers.get('retry-after')
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def translate_spotify_exception(error: SpotifyException, context: str = "") -> Exception:
    """
    Map a spotipy exception onto the error taxonomy

    Args:
        error: Exception raised by spotipy
        context: Short description of the request for messages

    Returns:
        Exception instance to raise
    """
    status = error.http_status
    label = f"{context}: " if context else ""
    details = {'status': status, 'reason': getattr(error, 'reason', None)}

    if status == 401:
        return AuthExpired(f"{label}access token rejected", details=details)
    if status == 429:
        retry_after = parse_retry_after(getattr(error, 'headers', None))
        return RateLimited(f"{label}rate limited", retry_after=retry_after, details=details)
    if status is not None and status >= 500:
        return TransientNetworkError(f"{label}server error {status}", details=details, status=status)
    return FatalApiError(f"{label}request failed with status {status}: {error.msg}", status=status, details=details)


class SpotifyClient:
    """
    Paced Spotify Web API client

    The spotipy connection is created lazily and rebuilt whenever the token
    provider hands out a different access token.

    Args:
        auth: Token provider with access_token() and refresh()
        settings: Application settings
        sleep: Sleep function used for request pacing
        clock: Monotonic clock used for request pacing
    """

    def __init__(
        self,
        auth: Optional[TokenProvider] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        if auth is None:
            from ..config.auth import get_auth
            auth = get_auth()
        self.auth = auth
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)
        self._sleep = sleep
        self._clock = clock
        self._client: Optional[spotipy.Spotify] = None
        self._client_token: Optional[str] = None
        self._user_id: Optional[str] = None

        self.last_request_time: Optional[float] = None
        self.min_request_interval = float(self.settings.network.min_request_interval)

    @property
    def client(self) -> spotipy.Spotify:
        """Authenticated spotipy client for the current access token"""
        token = self.auth.access_token()
        if self._client is None or token != self._client_token:
            self._client = spotipy.Spotify(
                auth=token,
                requests_session=requests.Session(),
                requests_timeout=self.settings.network.request_timeout
            )
            self._client_token = token
        return self._client

    def refresh_auth(self) -> None:
        """Force a token refresh; the next request uses the new token"""
        self.logger.debug("Refreshing Spotify access token")
        self.auth.refresh()
        self._client = None

    def _rate_limit(self) -> None:
        """Keep at least min_request_interval seconds between requests"""
        now = self._clock()
        if self.last_request_time is not None:
            elapsed = now - self.last_request_time
            if elapsed < self.min_request_interval:
                self._sleep(self.min_request_interval - elapsed)
                now = self._clock()
        self.last_request_time = now

    def _make_request(self, method: str, *args, **kwargs) -> Any:
        """
        Issue one paced API call and translate failures

        Args:
            method: Name of the spotipy.Spotify method to call
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method

        Returns:
            Decoded JSON response

        Raises:
            AuthExpired, RateLimited, TransientNetworkError, FatalApiError
        """
        self._rate_limit()
        func = getattr(self.client, method)
        try:
            return func(*args, **kwargs)
        except SpotifyException as e:
            raise translate_spotify_exception(e, context=method)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientNetworkError(f"{method}: network error: {e}")
        except requests.exceptions.RequestException as e:
            raise TransientNetworkError(f"{method}: request error: {e}")

    def followed_artists(self, limit: int = 50, after: Optional[str] = None) -> Dict[str, Any]:
        """One page of followed artists (cursor-paginated by artist id)"""
        return self._make_request('current_user_followed_artists', limit=limit, after=after)

    def followed_artist_count(self) -> int:
        """Total number of followed artists as reported by Spotify"""
        response = self._make_request('current_user_followed_artists', limit=1)
        return int((response or {}).get('artists', {}).get('total') or 0)

    def artist_albums(self, artist_id: str, include_groups: str, limit: int = 50) -> Dict[str, Any]:
        """First page of an artist's releases filtered by release group"""
        return self._make_request(
            'artist_albums',
            artist_id,
            include_groups=include_groups,
            limit=limit
        )

    def next_page(self, url: str) -> Dict[str, Any]:
        """Follow a `next` URL returned by a paginated endpoint"""
        return self._make_request('next', {'next': url})

    def current_user(self) -> Dict[str, Any]:
        return self._make_request('current_user')

    def current_user_id(self) -> str:
        if not self._user_id:
            self._user_id = self.current_user()['id']
        return self._user_id

    def current_user_playlists(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return self._make_request('current_user_playlists', limit=limit, offset=offset)

    def albums(self, album_ids: List[str]) -> Dict[str, Any]:
        """Full album objects (with first tracks page) for up to 20 ids"""
        return self._make_request('albums', album_ids)

    def create_playlist(self, name: str, public: bool = False, description: str = "") -> Dict[str, Any]:
        return self._make_request(
            'user_playlist_create',
            self.current_user_id(),
            name,
            public=public,
            description=description
        )

    def add_tracks(self, playlist_id: str, track_uris: List[str]) -> Dict[str, Any]:
        """Append up to 100 tracks to a playlist"""
        return self._make_request('playlist_add_items', playlist_id, track_uris)


_client_instance: Optional[SpotifyClient] = None


def get_spotify_client() -> SpotifyClient:
    """
    Get the global Spotify client instance

    Returns:
        Shared SpotifyClient, created on first access
    """
    global _client_instance
    if not _client_instance:
        _client_instance = SpotifyClient()
    return _client_instance


def reset_spotify_client() -> None:
    """Drop the global client so the next access builds a fresh one"""
    global _client_instance
    _client_instance = None
