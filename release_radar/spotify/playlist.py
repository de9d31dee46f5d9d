"""
Weekly playlist creation from cached releases

For every selected kind and every requested week a playlist named after the
template ("Weekly Picks {week}/{year} ({kind})" by default) is created with
the first track of each release. Weeks that already have a playlist of that
name, or that have no releases, are skipped. Deleting a playlist by hand is
the way to have it rebuilt.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Set

from ..config.settings import Settings, get_settings
from ..sync.aggregator import WeeklyAggregator, sorted_for_display
from ..utils.calendar import ReleaseWeek
from ..utils.helpers import chunked
from ..utils.logger import get_logger
from .fetcher import Fetcher
from .models import Release, ReleaseKind, ReleaseKinds

ALBUM_BATCH_SIZE = 20
TRACK_BATCH_SIZE = 100
PLAYLIST_PAGE_SIZE = 50


@dataclass
class PlaylistOutcome:
    """
    Result for one playlist

    Attributes:
        name: Playlist name
        status: "created", "exists" or "empty"
        track_count: Tracks added (0 unless created)
        week: Release week the playlist covers
        kind: Release kind the playlist covers
    """
    name: str
    status: str
    track_count: int = 0
    week: Optional[ReleaseWeek] = None
    kind: Optional[ReleaseKind] = None


class PlaylistBuilder:
    """
    Create weekly playlists on the user's account

    Args:
        client: SpotifyClient
        fetcher: Fetcher used to run every remote call under the retry policy
        aggregator: Read path over the cached releases
        settings: Application settings
    """

    def __init__(self, client, fetcher: Fetcher, aggregator: WeeklyAggregator, settings: Optional[Settings] = None):
        self.client = client
        self.fetcher = fetcher
        self.aggregator = aggregator
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

    def playlist_name(self, week: ReleaseWeek, kind: ReleaseKind) -> str:
        return self.settings.playlist.name_template.format(week=week.week, year=week.year, kind=kind.value)

    def existing_playlist_names(self) -> Set[str]:
        """Names of every playlist in the user's library"""
        names = set()
        offset = 0
        while True:
            response = self.fetcher.execute(
                self.client.current_user_playlists,
                limit=PLAYLIST_PAGE_SIZE,
                offset=offset,
                description=f"user playlists at {offset}"
            ) or {}
            items = [item for item in response.get('items') or [] if item]
            names.update(item.get('name', '') for item in items)
            if not response.get('next') or not items:
                return names
            offset += len(items)

    def track_uris(self, releases: List[Release]) -> List[str]:
        """First track(s) of every release, in release order"""
        per_release = max(1, int(self.settings.playlist.tracks_per_release))
        uris = []
        for chunk in chunked([release.id for release in releases], ALBUM_BATCH_SIZE):
            response = self.fetcher.execute(
                self.client.albums,
                chunk,
                description=f"albums {chunk[0]}.."
            ) or {}
            for album in response.get('albums') or []:
                if not album:
                    continue
                tracks = (album.get('tracks') or {}).get('items') or []
                uris.extend(track['uri'] for track in tracks[:per_release] if track and track.get('uri'))
        return uris

    def _create(self, name: str, week: ReleaseWeek, uris: List[str]) -> Dict[str, Any]:
        summary = f"Releases from {week.start.isoformat()} to {week.end.isoformat()}"
        playlist = self.fetcher.execute(
            lambda: self.client.create_playlist(name, public=self.settings.playlist.public, description=summary),
            description=f"create playlist {name}",
            retry_transient=False
        )
        for chunk in chunked(uris, TRACK_BATCH_SIZE):
            self.fetcher.execute(
                self.client.add_tracks,
                playlist['id'],
                chunk,
                description=f"add tracks to {name}",
                retry_transient=False
            )
        return playlist

    def build(self, anchor: date, previous_weeks: int = 0, kinds: Optional[ReleaseKinds] = None) -> List[PlaylistOutcome]:
        """
        Create the missing playlists for each kind and week

        Args:
            anchor: Date inside the most recent week
            previous_weeks: Number of earlier weeks to include
            kinds: Kinds to build playlists for, album only when omitted

        Returns:
            One PlaylistOutcome per kind and week
        """
        kinds = kinds or ReleaseKinds.default()
        existing = self.existing_playlist_names()
        outcomes = []

        for kind in kinds:
            for week, releases in self.aggregator.releases_for_weeks(anchor, previous_weeks, ReleaseKinds([kind])):
                name = self.playlist_name(week, kind)

                if name in existing:
                    self.logger.console_info(f"Playlist {name} already exists")
                    outcomes.append(PlaylistOutcome(name, "exists", week=week, kind=kind))
                    continue

                if not releases:
                    self.logger.console_info(f"No {kind.value} releases for week {week.label}")
                    outcomes.append(PlaylistOutcome(name, "empty", week=week, kind=kind))
                    continue

                self.logger.console_info(f"Creating playlist {name} from {len(releases)} releases...")
                uris = self.track_uris(sorted_for_display(releases))
                self._create(name, week, uris)
                existing.add(name)
                outcomes.append(PlaylistOutcome(name, "created", track_count=len(uris), week=week, kind=kind))

        return outcomes
