"""
Weekly views over the cached releases

A pure read path: nothing here touches the network or writes the store.
The same release can be cached under several owning artists (features,
splits); views are deduplicated by release id.
"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..spotify.models import Release, ReleaseKinds
from ..utils.calendar import ReleaseWeek, weeks_back
from ..utils.logger import get_logger, log_performance
from .store import RELEASES, Store


def sorted_for_display(releases: Iterable[Release]) -> List[Release]:
    """Newest first, then by first artist (case-insensitive), then by title"""
    ordered = sorted(releases, key=lambda r: (r.primary_artist.lower(), r.name.lower(), r.id))
    return sorted(ordered, key=lambda r: r.release_date, reverse=True)


class WeeklyAggregator:
    """
    Group cached releases by release week

    Args:
        store: Store holding per-artist release snapshots
    """

    def __init__(self, store: Store):
        self.store = store
        self.logger = get_logger(__name__)

    @log_performance
    def load_releases(self, kinds: Optional[ReleaseKinds] = None) -> Dict[str, Release]:
        """
        Every cached release, deduplicated by id

        Args:
            kinds: Restrict to these kinds, None for every kind

        Returns:
            Mapping of release id to Release
        """
        releases: Dict[str, Release] = {}
        for artist_id, record in self.store.get_all(RELEASES).items():
            for data in record.get('releases', []):
                try:
                    release = Release.from_dict(data)
                except (KeyError, TypeError, ValueError) as e:
                    self.logger.warning(f"Skipping unreadable cached release of {artist_id}: {e}")
                    continue
                if kinds is not None and release.kind not in kinds:
                    continue
                releases.setdefault(release.id, release)
        return releases

    @staticmethod
    def _in_week(releases: Iterable[Release], week: ReleaseWeek) -> Set[Release]:
        return {release for release in releases if week.contains(release.release_date)}

    def releases_for_week(self, year: int, week: int, kinds: Optional[ReleaseKinds] = None) -> Set[Release]:
        """
        Releases dated inside one release week

        Raises:
            ValueError: If the week does not exist in that year
        """
        target = ReleaseWeek.of(year, week)
        return self._in_week(self.load_releases(kinds).values(), target)

    def releases_for_weeks(
        self,
        anchor: date,
        previous_weeks: int,
        kinds: Optional[ReleaseKinds] = None
    ) -> List[Tuple[ReleaseWeek, Set[Release]]]:
        """
        Releases for the week containing anchor and the weeks before it

        Args:
            anchor: Date inside the most recent week
            previous_weeks: Number of earlier weeks to include
            kinds: Restrict to these kinds, None for every kind

        Returns:
            List of (week, releases), most recent week first
        """
        releases = list(self.load_releases(kinds).values())
        return [(week, self._in_week(releases, week)) for week in weeks_back(anchor, previous_weeks)]
