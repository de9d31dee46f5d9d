"""Test weekly playlist creation"""

from datetime import date, timedelta

import pytest

from conftest import FakeSpotify
from release_radar.exceptions import FatalFetchError, RateLimited, TransientNetworkError
from release_radar.spotify.fetcher import Fetcher
from release_radar.spotify.models import Release, ReleaseKind, ReleaseKinds
from release_radar.spotify.playlist import PlaylistBuilder
from release_radar.sync.aggregator import WeeklyAggregator
from release_radar.sync.store import RELEASES
from release_radar.utils.calendar import ReleaseWeek

WEEK_ONE_START = date(2023, 12, 30)


def cache_week_one(store, count, kind=ReleaseKind.ALBUM, tracks=None, client=None):
    releases = []
    for i in range(count):
        release_id = f"{kind.value}-{i:02d}"
        releases.append(Release(
            id=release_id,
            artist_id="a1",
            kind=kind,
            release_date=WEEK_ONE_START + timedelta(days=i % 14),
            name=f"Release {i:02d}",
            artists=("Artist",),
            album_type=kind.value
        ).to_dict())
        if client is not None:
            client.tracks[release_id] = [f"spotify:track:{release_id}-{n}" for n in range(tracks or 1)]
    record = store.get(RELEASES, "a1") or {'releases': []}
    record['releases'].extend(releases)
    store.put(RELEASES, "a1", record)


@pytest.fixture
def client():
    return FakeSpotify()


@pytest.fixture
def builder(client, memory_store, settings, fake_sleep):
    return PlaylistBuilder(client, Fetcher(client, sleep=fake_sleep), WeeklyAggregator(memory_store), settings)


class TestNaming:
    def test_default_template(self, builder):
        assert builder.playlist_name(ReleaseWeek.of(2024, 1), ReleaseKind.ALBUM) == "Weekly Picks 1/2024 (album)"

    def test_uses_the_weeks_own_year(self, builder):
        assert builder.playlist_name(ReleaseWeek.of(2023, 51), ReleaseKind.SINGLE) == "Weekly Picks 51/2023 (single)"


class TestBuild:
    """Test which playlists get created"""

    def test_creates_playlist_with_first_track_of_each_release(self, builder, client, memory_store):
        cache_week_one(memory_store, 3, tracks=2, client=client)

        outcomes = builder.build(date(2024, 1, 10))

        assert [(o.name, o.status, o.track_count) for o in outcomes] == [("Weekly Picks 1/2024 (album)", "created", 3)]
        assert client.playlists[0]['public'] is False
        assert sorted(client.added["pl1"]) == [f"spotify:track:album-{i:02d}-0" for i in range(3)]

    def test_existing_playlist_is_skipped(self, builder, client, memory_store):
        cache_week_one(memory_store, 3, client=client)
        client.playlists.append({'id': 'old', 'name': "Weekly Picks 1/2024 (album)"})

        outcomes = builder.build(date(2024, 1, 10))

        assert [o.status for o in outcomes] == ["exists"]
        assert client.calls_to('create_playlist') == []

    def test_week_without_releases_is_skipped(self, builder, client, memory_store):
        cache_week_one(memory_store, 2, client=client)

        outcomes = builder.build(date(2024, 1, 15), previous_weeks=1)

        assert [(o.week.label, o.status) for o in outcomes] == [("2/2024", "empty"), ("1/2024", "created")]
        assert len(client.calls_to('create_playlist')) == 1

    def test_one_playlist_per_kind(self, builder, client, memory_store):
        cache_week_one(memory_store, 2, client=client)
        cache_week_one(memory_store, 1, kind=ReleaseKind.SINGLE, client=client)

        outcomes = builder.build(date(2024, 1, 10), kinds=ReleaseKinds.parse("album,single"))

        assert [(o.kind, o.track_count) for o in outcomes] == [(ReleaseKind.ALBUM, 2), (ReleaseKind.SINGLE, 1)]
        assert [p['name'] for p in client.playlists] == [
            "Weekly Picks 1/2024 (album)",
            "Weekly Picks 1/2024 (single)",
        ]

    def test_second_run_creates_nothing(self, builder, client, memory_store):
        cache_week_one(memory_store, 2, client=client)
        builder.build(date(2024, 1, 10))

        outcomes = builder.build(date(2024, 1, 10))

        assert [o.status for o in outcomes] == ["exists"]
        assert len(client.playlists) == 1


class TestBatching:
    def test_albums_requested_in_batches_of_twenty(self, builder, client, memory_store):
        cache_week_one(memory_store, 25, client=client)

        builder.build(date(2024, 1, 10))

        assert [len(call[1]) for call in client.calls_to('albums')] == [20, 5]

    def test_tracks_added_in_batches_of_hundred(self, builder, client, memory_store, settings):
        settings.playlist.tracks_per_release = 5
        cache_week_one(memory_store, 25, tracks=5, client=client)

        outcomes = builder.build(date(2024, 1, 10))

        assert outcomes[0].track_count == 125
        assert [call[2] for call in client.calls_to('add_tracks')] == [100, 25]

    def test_existing_names_are_paged(self, builder, client):
        client.playlists.extend({'id': f"p{i}", 'name': f"List {i}"} for i in range(120))

        names = builder.existing_playlist_names()

        assert len(names) == 120
        assert [call[1] for call in client.calls_to('current_user_playlists')] == [0, 50, 100]


class TestWrites:
    """Playlist writes are not repeated after a transient failure"""

    def test_create_is_not_retried_on_server_error(self, builder, client, memory_store):
        cache_week_one(memory_store, 2, client=client)
        client.fail('create_playlist', TransientNetworkError("502", status=502))

        with pytest.raises(FatalFetchError, match="create playlist"):
            builder.build(date(2024, 1, 10))
        assert len(client.calls_to('create_playlist')) == 1

    def test_add_tracks_is_not_retried_on_server_error(self, builder, client, memory_store):
        cache_week_one(memory_store, 2, client=client)
        client.fail('add_tracks', TransientNetworkError("timeout"))

        with pytest.raises(FatalFetchError, match="add tracks"):
            builder.build(date(2024, 1, 10))
        assert len(client.calls_to('add_tracks')) == 1
        assert client.added == {}

    def test_rate_limited_create_is_retried(self, builder, client, memory_store, fake_sleep):
        cache_week_one(memory_store, 2, client=client)
        client.fail('create_playlist', RateLimited("slow down", retry_after=3))

        outcomes = builder.build(date(2024, 1, 10))

        assert [o.status for o in outcomes] == ["created"]
        assert len(client.playlists) == 1
        assert fake_sleep.calls == [3]
