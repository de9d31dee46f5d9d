"""
Synchronization engine for followed artists and their releases

ReleaseRadar is the API the command line talks to. It drives the fetcher
against Spotify, writes snapshots into the local store and records progress
through the update state machine, so an interrupted or failed run picks up
where it stopped.

Artist sync walks the followed-artists cursor. Each page is written artist
by artist, then the cursor and the ids seen so far are checkpointed. Artists
no longer followed are pruned only once the whole pass has completed.

Release sync walks the cached artists in name order. Each artist's releases
are fetched completely, filtered (day-precision dates, selected kinds),
merged with what is cached for that artist and written before the artist is
marked processed. A fixed pause is taken after every chunk of artists.

Release records carry no timestamps, so two runs against an unchanged
catalog leave identical release snapshots.
"""

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..config.settings import Settings, get_settings
from ..exceptions import AuthExpired, FATAL_SYNC_ERRORS, MalformedData, ReleaseRadarError
from ..spotify.fetcher import ArtistReleases, FollowedArtists, Fetcher, Pacer, RetryPolicy
from ..spotify.models import Artist, Release, ReleaseKinds, utc_now_iso
from ..utils.calendar import ReleaseWeek, parse_date_or_today, weeks_back
from ..utils.logger import create_operation_logger, get_logger
from .aggregator import WeeklyAggregator, sorted_for_display
from .state import OperationKind, UpdateState, UpdateStateMachine, UpdateStatus
from .store import ARTISTS, RELEASES, Store


@dataclass
class SyncResult:
    """
    Outcome of one sync run

    Attributes:
        kind: Operation kind
        status: COMPLETED or FAILED
        processed: Items handled in this pass (including resumed ones)
        total: Total items, when known
        added: New artists or releases written
        removed: Artists pruned after a complete pass
        skipped: Releases dropped at ingestion (imprecise dates, other kinds)
        stage: Where a failed run stopped
        error: Error message of a failed run
    """
    kind: OperationKind
    status: UpdateStatus
    processed: int = 0
    total: Optional[int] = None
    added: int = 0
    removed: int = 0
    skipped: int = 0
    stage: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == UpdateStatus.COMPLETED


@dataclass
class WeekInfo:
    """Release weeks around a date"""
    anchor: date
    weeks: List[ReleaseWeek] = field(default_factory=list)

    @property
    def current(self) -> ReleaseWeek:
        return self.weeks[0]


@dataclass
class CacheInfo:
    """Summary of what is cached locally"""
    artist_count: int
    release_count: int
    states: List[UpdateState] = field(default_factory=list)


class ReleaseRadar:
    """
    Sync followed artists and releases into a store and read them back by week

    Args:
        store: Store for artists, releases and update state
        client: SpotifyClient, created on first remote call when omitted
        settings: Application settings
        fetcher: Fetcher to use instead of one built from client and settings
        sleep: Sleep function for backoff and pacing
        today: Callable returning today's date, for defaulted dates
        now: Callable returning the snapshot timestamp for artist records
    """

    def __init__(
        self,
        store: Store,
        client=None,
        settings: Optional[Settings] = None,
        fetcher: Optional[Fetcher] = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
        now: Callable[[], str] = utc_now_iso
    ):
        self.store = store
        self.settings = settings or get_settings()
        self._client = client
        self._fetcher = fetcher
        self._sleep = sleep
        self._today = today
        self._now = now
        self.states = UpdateStateMachine(store)
        self.aggregator = WeeklyAggregator(store)
        self.logger = get_logger(__name__)

    @property
    def client(self):
        if self._client is None:
            from ..spotify.client import get_spotify_client
            self._client = get_spotify_client()
        return self._client

    @property
    def fetcher(self) -> Fetcher:
        if self._fetcher is None:
            self._fetcher = Fetcher(
                self.client,
                policy=RetryPolicy.from_settings(self.settings),
                sleep=self._sleep
            )
        return self._fetcher

    def _with_auth_retry(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run func, refreshing credentials once if the token is rejected"""
        try:
            return func(*args, **kwargs)
        except AuthExpired:
            self.logger.info("Access token rejected, refreshing and retrying")
            self.client.refresh_auth()
            return func(*args, **kwargs)

    def _fail(self, state: UpdateState, result: SyncResult, stage: str, error: ReleaseRadarError,
              operation) -> SyncResult:
        self.states.finish(state, UpdateStatus.FAILED, stage=stage)
        operation.error(f"stopped at {stage}: {error.message}", error)
        result.status = UpdateStatus.FAILED
        result.stage = stage
        result.error = error.message
        result.processed = len(state.processed)
        return result

    def _abort(self, state: UpdateState, stage: str, error: Exception) -> None:
        """Record where a run stopped on an unexpected error before it propagates"""
        self.logger.error(f"{state.key} update stopped at {stage}: {error}")
        self.states.finish(state, UpdateStatus.FAILED, stage=stage)

    # Artist sync

    def sync_artists(self, force: bool = False) -> SyncResult:
        """
        Mirror the followed artists into the store

        Args:
            force: Ignore any checkpoint and start a fresh pass

        Returns:
            SyncResult of the run
        """
        state = self.states.begin_or_resume(OperationKind.ARTISTS, force=force)
        result = SyncResult(kind=OperationKind.ARTISTS, status=UpdateStatus.IN_PROGRESS, total=state.total)
        operation = create_operation_logger(__name__, "Artist update")
        operation.start("Updating followed artists...")

        resource = FollowedArtists(limit=self.settings.sync.artist_page_size)
        known = set(self.store.keys(ARTISTS))
        snapshot = self._now()
        refreshed = False

        try:
            while True:
                try:
                    for page in self.fetcher.fetch_all(resource, state.cursor):
                        refreshed = False
                        seen = []
                        for item in page.items:
                            try:
                                artist = Artist.from_spotify_data(item, cached_at=snapshot)
                            except MalformedData as e:
                                self.logger.debug(f"Skipping followed artist: {e}")
                                continue
                            self.store.put(ARTISTS, artist.id, artist.to_dict())
                            if artist.id not in known and artist.id not in state.processed:
                                result.added += 1
                            seen.append(artist.id)

                        self.states.checkpoint(
                            state,
                            cursor=page.next_cursor,
                            processed=seen,
                            total=page.total,
                            advance_cursor=True
                        )
                        operation.progress(
                            f"{len(state.processed)} artists",
                            current=len(state.processed),
                            total=max(state.total or 0, len(state.processed))
                        )
                    break
                except AuthExpired:
                    if refreshed:
                        raise
                    self.logger.info("Access token rejected, refreshing and retrying")
                    self.client.refresh_auth()
                    refreshed = True

            result.removed = self._prune_artists(state.processed)
        except FATAL_SYNC_ERRORS as e:
            stage = f"page after cursor {state.cursor}" if state.cursor else "first page"
            return self._fail(state, result, stage, e, operation)
        except Exception as e:
            self._abort(state, f"page after cursor {state.cursor}" if state.cursor else "first page", e)
            raise
        finally:
            operation.close()

        result.processed = len(state.processed)
        result.total = state.total if state.total is not None else result.processed
        self.states.finish(state, UpdateStatus.COMPLETED)
        result.status = UpdateStatus.COMPLETED
        operation.complete(
            f"Artists updated: {result.processed} followed, {result.added} new, {result.removed} removed"
        )
        return result

    def _prune_artists(self, seen: Set[str]) -> int:
        """Keep exactly the artists seen in a complete pass"""
        current = self.store.get_all(ARTISTS)
        kept = {artist_id: value for artist_id, value in current.items() if artist_id in seen}
        removed = len(current) - len(kept)
        if removed:
            self.store.replace_all(ARTISTS, kept)
            self.logger.debug(f"Pruned {removed} artists no longer followed")
        return removed

    def cached_artists(self) -> List[Artist]:
        """Cached artists sorted by name, then id"""
        artists = [Artist.from_dict(data) for data in self.store.get_all(ARTISTS).values()]
        return sorted(artists, key=lambda a: (a.name.lower(), a.id))

    # Release sync

    def sync_releases(self, kinds: Optional[ReleaseKinds] = None, force: bool = False) -> SyncResult:
        """
        Fetch the releases of every cached artist

        Args:
            kinds: Release kinds to fetch, album only when omitted
            force: Clear the release cache and discard the checkpoints of every kind selection

        Returns:
            SyncResult of the run
        """
        kinds = kinds or ReleaseKinds.default()
        artists = self.cached_artists()
        if not artists:
            message = "No cached artists. Run 'release-radar artists update' first."
            self.logger.error(message)
            return SyncResult(
                kind=OperationKind.RELEASES,
                status=UpdateStatus.FAILED,
                total=0,
                stage="artists",
                error=message
            )

        if force:
            # every kind selection shares the release cache
            self.states.discard(OperationKind.RELEASES)
        state = self.states.begin_or_resume(OperationKind.RELEASES, force=force, release_kinds=kinds)
        if force:
            self.store.clear(RELEASES)
        self.states.checkpoint(state, total=len(artists))

        result = SyncResult(kind=OperationKind.RELEASES, status=UpdateStatus.IN_PROGRESS, total=len(artists))
        operation = create_operation_logger(__name__, f"Release update ({kinds})")
        operation.start(f"Updating {kinds} releases for {len(artists)} artists...")

        pacer = Pacer(self.settings.sync.chunk_size, self.settings.sync.chunk_pause, sleep=self._sleep)
        current: Optional[Artist] = None

        try:
            for artist in artists:
                if artist.id in state.processed:
                    continue
                current = artist
                pacer.before_item()

                added, skipped = self._sync_artist_releases(artist, kinds)
                result.added += added
                result.skipped += skipped

                self.states.checkpoint(state, processed=[artist.id])
                operation.progress(artist.name, current=len(state.processed), total=len(artists))
        except FATAL_SYNC_ERRORS as e:
            stage = f"artist {current.id} ({current.name})" if current else "release update"
            return self._fail(state, result, stage, e, operation)
        except Exception as e:
            self._abort(state, f"artist {current.id} ({current.name})" if current else "release update", e)
            raise
        finally:
            operation.close()

        result.processed = len(state.processed)
        self.states.finish(state, UpdateStatus.COMPLETED)
        result.status = UpdateStatus.COMPLETED
        operation.complete(
            f"Releases updated: {result.processed} artists, {result.added} new releases"
        )
        return result

    def _fetch_artist_items(self, artist: Artist, kinds: ReleaseKinds) -> List[Dict[str, Any]]:
        resource = ArtistReleases(artist.id, kinds, limit=self.settings.sync.release_page_size)
        return self._with_auth_retry(lambda: list(self.fetcher.fetch_items(resource)))

    def _sync_artist_releases(self, artist: Artist, kinds: ReleaseKinds) -> Tuple[int, int]:
        """
        Fetch, filter, merge and store the releases of one artist

        Returns:
            Tuple of (new release count, skipped item count)
        """
        fetched: Dict[str, Release] = {}
        skipped = 0
        for item in self._fetch_artist_items(artist, kinds):
            try:
                release = Release.from_spotify_data(item, artist.id)
            except MalformedData as e:
                self.logger.debug(f"Skipping release of {artist.name}: {e}")
                skipped += 1
                continue
            if release.kind not in kinds:
                skipped += 1
                continue
            fetched[release.id] = release

        cached = self.store.get(RELEASES, artist.id) or {}
        merged = {data['id']: data for data in cached.get('releases', [])}
        added = sum(1 for release_id in fetched if release_id not in merged)
        for release_id, release in fetched.items():
            merged[release_id] = release.to_dict()

        ordered = sorted(merged.values(), key=lambda data: (data['release_date'], data['id']))
        self.store.put(RELEASES, artist.id, {'releases': ordered})
        return added, skipped

    # Read side

    def week_info(self, day: Optional[date] = None, previous_weeks: int = 0) -> WeekInfo:
        """Release week containing day (today by default) and the weeks before it"""
        anchor = day or self._today()
        return WeekInfo(anchor=anchor, weeks=weeks_back(anchor, previous_weeks))

    def releases_for_display(
        self,
        day: Optional[date] = None,
        previous_weeks: int = 0,
        kinds: Optional[ReleaseKinds] = None
    ) -> List[Tuple[ReleaseWeek, List[Release]]]:
        """Releases per week, most recent week first, each week sorted for display"""
        anchor = day or self._today()
        return [
            (week, sorted_for_display(releases))
            for week, releases in self.aggregator.releases_for_weeks(anchor, previous_weeks, kinds)
        ]

    def cache_info(self) -> CacheInfo:
        release_ids = set()
        for record in self.store.get_all(RELEASES).values():
            release_ids.update(data['id'] for data in record.get('releases', []))
        return CacheInfo(
            artist_count=self.store.count(ARTISTS),
            release_count=len(release_ids),
            states=self.states.all_states()
        )

    def remote_artist_count(self) -> int:
        """Number of followed artists according to Spotify"""
        return self._with_auth_retry(
            self.fetcher.execute,
            self.client.followed_artist_count,
            description="followed artist count"
        )

    def parse_anchor(self, value: Optional[str]) -> date:
        return parse_date_or_today(value, clock=self._today)
