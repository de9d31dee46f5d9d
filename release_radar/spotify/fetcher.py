"""
Rate-limited, cursor-driven fetching of paginated Spotify resources

The fetcher wraps calls made through SpotifyClient with an explicit
RetryPolicy:

- RateLimited: wait for the server's Retry-After when it is within the cap
  (two minutes by default) and retry the same request. Without an advisory
  value an increasing backoff per consecutive hit is used. An advisory wait
  above the cap, or too many consecutive hits, raises RateLimitExceeded.
- TransientNetworkError (connection problems, 5xx): retry a few times with
  short exponential backoff, then raise FatalFetchError naming the page.
  Pages are never skipped.
- Anything else (AuthExpired, FatalApiError) propagates immediately.

Pagination is driven only by the cursor each page returns, never by counting
offsets; the remote collections can grow between calls. fetch_all() is a
lazy generator that can be restarted from any cursor the caller saved.

Sleeping is injected so retry behaviour can be tested without real delays.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..config.settings import Settings
from ..exceptions import (
    FatalFetchError,
    RateLimited,
    RateLimitExceeded,
    TransientNetworkError,
)
from ..utils.logger import get_logger
from .models import ReleaseKinds

Sleep = Callable[[float], None]


@dataclass
class RetryPolicy:
    """
    Retry and backoff parameters

    Attributes:
        max_attempts: Total attempts for transient failures before giving up
        max_rate_limit_attempts: Consecutive rate-limit hits tolerated per request
        base_delay: First transient backoff delay in seconds
        rate_limit_base_delay: First rate-limit backoff delay when no Retry-After is given
        multiplier: Growth factor between consecutive delays
        max_delay: Cap for every delay, including honoured Retry-After values
    """
    max_attempts: int = 3
    max_rate_limit_attempts: int = 5
    base_delay: float = 1.0
    rate_limit_base_delay: float = 5.0
    multiplier: float = 2.0
    max_delay: float = 120.0

    @classmethod
    def from_settings(cls, settings: Settings) -> 'RetryPolicy':
        network = settings.network
        return cls(
            max_attempts=int(network.max_retries),
            max_rate_limit_attempts=int(network.max_rate_limit_attempts),
            base_delay=float(network.retry_delay),
            max_delay=float(network.max_retry_after),
        )

    def backoff(self, attempt: int, base: Optional[float] = None) -> float:
        """Delay before retry number `attempt` (1-based), capped at max_delay"""
        start = self.base_delay if base is None else base
        return min(self.max_delay, start * self.multiplier ** max(0, attempt - 1))

    def rate_limit_delay(self, hits: int, retry_after: Optional[float]) -> float:
        """
        Delay after the given number of consecutive rate-limit hits

        Raises:
            RateLimitExceeded: When the hit count or the advisory wait exceeds the policy
        """
        if hits > self.max_rate_limit_attempts:
            raise RateLimitExceeded(
                f"Still rate limited after {hits - 1} retries",
                details={'hits': hits}
            )
        if retry_after is not None:
            if retry_after > self.max_delay:
                raise RateLimitExceeded(
                    f"Server asked to wait {retry_after:.0f}s, more than the {self.max_delay:.0f}s limit",
                    details={'retry_after': retry_after}
                )
            return retry_after
        return self.backoff(hits, base=self.rate_limit_base_delay)


@dataclass
class Page:
    """One page of a paginated resource"""
    items: List[Dict[str, Any]]
    next_cursor: Optional[str] = None
    total: Optional[int] = None
    cursor: Optional[str] = None


class Resource(ABC):
    """A paginated remote collection"""

    name = "resource"

    @abstractmethod
    def request(self, client, cursor: Optional[str]) -> Dict[str, Any]:
        """Issue the request for the page starting at cursor (None for the first page)"""

    @abstractmethod
    def parse(self, response: Dict[str, Any]) -> Page:
        """Extract items and the continuation cursor from a response"""


class FollowedArtists(Resource):
    """Artists followed by the current user; the cursor is the last artist id"""

    name = "followed artists"

    def __init__(self, limit: int = 50):
        self.limit = limit

    def request(self, client, cursor: Optional[str]) -> Dict[str, Any]:
        return client.followed_artists(limit=self.limit, after=cursor)

    def parse(self, response: Dict[str, Any]) -> Page:
        block = response.get('artists') or {}
        items = [item for item in block.get('items') or [] if item]
        next_cursor = None
        if block.get('next'):
            next_cursor = (block.get('cursors') or {}).get('after')
        return Page(items=items, next_cursor=next_cursor, total=block.get('total'))


class ArtistReleases(Resource):
    """Releases of one artist filtered by kind; the cursor is the `next` URL"""

    def __init__(self, artist_id: str, kinds: ReleaseKinds, limit: int = 50):
        self.artist_id = artist_id
        self.kinds = kinds
        self.limit = limit
        self.name = f"releases of {artist_id}"

    def request(self, client, cursor: Optional[str]) -> Dict[str, Any]:
        if cursor:
            return client.next_page(cursor)
        return client.artist_albums(self.artist_id, include_groups=self.kinds.include_groups, limit=self.limit)

    def parse(self, response: Dict[str, Any]) -> Page:
        items = [item for item in response.get('items') or [] if item]
        return Page(items=items, next_cursor=response.get('next'), total=response.get('total'))


class Pacer:
    """
    Fixed pause between chunks of processed items

    Call before_item() before handling each item; it sleeps once every
    `every` items, never before the first one.
    """

    def __init__(self, every: int, pause: float, sleep: Sleep = time.sleep):
        self.every = every
        self.pause = pause
        self.count = 0
        self._sleep = sleep
        self.logger = get_logger(__name__)

    def before_item(self) -> bool:
        paused = False
        if self.count and self.every > 0 and self.pause > 0 and self.count % self.every == 0:
            self.logger.debug(f"Pausing {self.pause}s after {self.count} items")
            self._sleep(self.pause)
            paused = True
        self.count += 1
        return paused


class Fetcher:
    """
    Executes remote calls under a RetryPolicy and walks paginated resources

    Args:
        client: SpotifyClient (or any object the resources know how to call)
        policy: Retry policy, defaults to RetryPolicy()
        sleep: Sleep function used for backoff
    """

    def __init__(self, client, policy: Optional[RetryPolicy] = None, sleep: Sleep = time.sleep):
        self.client = client
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.logger = get_logger(__name__)

    def execute(
        self,
        func: Callable[..., Any],
        *args,
        description: str = "request",
        retry_transient: bool = True,
        **kwargs
    ) -> Any:
        """
        Run one remote call, recovering rate limits and transient failures

        A rate-limited request was not applied by the server and is always
        retried. Writes that are not idempotent pass retry_transient=False.

        Args:
            func: Callable performing the request
            description: Human-readable label used in logs and errors
            retry_transient: Retry transient failures (False fails on the first one)

        Returns:
            Whatever func returns

        Raises:
            RateLimitExceeded: Rate limited beyond the policy
            FatalFetchError: Transient failures persisted past max_attempts, or
                any transient failure when retry_transient is False
            AuthExpired, FatalApiError: Propagated unchanged
        """
        failures = 0
        rate_hits = 0

        while True:
            try:
                return func(*args, **kwargs)
            except RateLimited as e:
                rate_hits += 1
                delay = self.policy.rate_limit_delay(rate_hits, e.retry_after)
                self.logger.warning(f"Rate limited on {description}, waiting {delay:.0f}s")
                self._sleep(delay)
            except TransientNetworkError as e:
                failures += 1
                if not retry_transient or failures >= self.policy.max_attempts:
                    raise FatalFetchError(
                        f"{description} failed after {failures} attempts: {e}",
                        details={'description': description, 'status': e.status}
                    ) from e
                delay = self.policy.backoff(failures)
                self.logger.debug(f"Transient error on {description} ({e}), retry in {delay:.1f}s")
                self._sleep(delay)

    def page(self, resource: Resource, cursor: Optional[str] = None) -> Page:
        """
        Fetch a single page

        Args:
            resource: Paginated resource
            cursor: Continuation cursor, None for the first page

        Returns:
            Page with items and the cursor of the following page (None at the end)
        """
        description = f"{resource.name} page {cursor or 'start'}"
        response = self.execute(resource.request, self.client, cursor, description=description)
        if not isinstance(response, dict):
            raise FatalFetchError(
                f"{description}: unexpected empty response",
                details={'cursor': cursor}
            )
        page = resource.parse(response)
        page.cursor = cursor
        return page

    def fetch_all(self, resource: Resource, cursor: Optional[str] = None) -> Iterator[Page]:
        """
        Lazily yield every page from cursor to the end

        Restart by passing the next_cursor of the last page you handled.
        """
        current = cursor
        while True:
            page = self.page(resource, current)
            yield page

            if not page.next_cursor:
                return
            if page.next_cursor == current:
                raise FatalFetchError(
                    f"{resource.name}: pagination did not advance past {current}",
                    details={'cursor': current}
                )
            current = page.next_cursor

    def fetch_items(self, resource: Resource, cursor: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        """Items of every page from cursor to the end"""
        for page in self.fetch_all(resource, cursor):
            yield from page.items
