"""Test weekly views over cached releases"""

from datetime import date

import pytest

from release_radar.spotify.models import Release, ReleaseKind, ReleaseKinds
from release_radar.sync.aggregator import WeeklyAggregator, sorted_for_display
from release_radar.sync.store import RELEASES


def release(release_id, day, kind=ReleaseKind.ALBUM, artist_id="a1", name=None, artists=("Artist",)):
    return Release(
        id=release_id,
        artist_id=artist_id,
        kind=kind,
        release_date=day,
        name=name or release_id,
        artists=tuple(artists),
        album_type=kind.value
    )


def cache(store, artist_id, *releases):
    store.put(RELEASES, artist_id, {'releases': [r.to_dict() for r in releases]})


@pytest.fixture
def aggregator(memory_store):
    return WeeklyAggregator(memory_store)


class TestReleasesForWeek:
    """Test selecting the releases of one week"""

    def test_week_boundaries(self, aggregator, memory_store):
        cache(
            memory_store, "a1",
            release("before", date(2023, 12, 29)),
            release("first-day", date(2023, 12, 30)),
            release("last-day", date(2024, 1, 12)),
            release("after", date(2024, 1, 13)),
        )

        week_one = aggregator.releases_for_week(2024, 1)

        assert sorted(r.id for r in week_one) == ["first-day", "last-day"]

    def test_filters_by_kind(self, aggregator, memory_store):
        cache(
            memory_store, "a1",
            release("album", date(2024, 1, 6)),
            release("single", date(2024, 1, 1), kind=ReleaseKind.SINGLE),
        )

        albums = aggregator.releases_for_week(2024, 1, ReleaseKinds.default())
        everything = aggregator.releases_for_week(2024, 1)

        assert [r.id for r in albums] == ["album"]
        assert sorted(r.id for r in everything) == ["album", "single"]

    def test_same_release_under_two_artists_counted_once(self, aggregator, memory_store):
        shared = date(2024, 1, 6)
        cache(memory_store, "a1", release("split", shared, artist_id="a1"))
        cache(memory_store, "a2", release("split", shared, artist_id="a2"))

        assert len(aggregator.releases_for_week(2024, 1)) == 1

    def test_invalid_week_raises(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.releases_for_week(2024, 52)

    def test_unreadable_record_is_skipped(self, aggregator, memory_store):
        memory_store.put(RELEASES, "a1", {'releases': [
            {'id': 'broken', 'kind': 'album'},
            release("ok", date(2024, 1, 6)).to_dict(),
        ]})

        assert [r.id for r in aggregator.releases_for_week(2024, 1)] == ["ok"]


class TestReleasesForWeeks:
    def test_anchor_week_first_then_previous(self, aggregator, memory_store):
        cache(
            memory_store, "a1",
            release("this-week", date(2024, 1, 15)),
            release("last-week", date(2024, 1, 2)),
            release("older", date(2023, 12, 20)),
        )

        weeks = aggregator.releases_for_weeks(date(2024, 1, 15), previous_weeks=2)

        assert [week.label for week, _ in weeks] == ["2/2024", "1/2024", "51/2023"]
        assert [sorted(r.id for r in found) for _, found in weeks] == [["this-week"], ["last-week"], ["older"]]

    def test_empty_cache(self, aggregator):
        weeks = aggregator.releases_for_weeks(date(2024, 1, 15), previous_weeks=0)
        assert len(weeks) == 1
        assert weeks[0][1] == set()


class TestDisplayOrder:
    def test_newest_first_then_artist_then_title(self):
        releases = [
            release("old", date(2024, 1, 1), artists=("Zed",)),
            release("b2", date(2024, 1, 5), name="beta", artists=("bob",)),
            release("b1", date(2024, 1, 5), name="Alpha", artists=("Bob",)),
            release("a1", date(2024, 1, 5), name="Zulu", artists=("alice",)),
        ]

        assert [r.id for r in sorted_for_display(releases)] == ["a1", "b1", "b2", "old"]
