"""Test data models"""

from datetime import date

import pytest

from conftest import make_album, make_artist
from release_radar.exceptions import MalformedData
from release_radar.spotify.models import (
    Artist,
    CacheToken,
    Release,
    ReleaseKind,
    ReleaseKinds,
    parse_release_date,
)


class TestReleaseKinds:
    """Test release kind selection parsing"""

    def test_parse_normalizes_and_orders(self):
        kinds = ReleaseKinds.parse(" Single , album,Appears-On")
        assert list(kinds) == [ReleaseKind.ALBUM, ReleaseKind.SINGLE, ReleaseKind.APPEARS_ON]
        assert str(kinds) == "album,single,appears_on"
        assert kinds.include_groups == "album,single,appears_on"
        assert kinds.key == "album-single-appears_on"

    def test_all_expands_to_every_kind(self):
        assert ReleaseKinds.parse("all") == ReleaseKinds.all()
        assert str(ReleaseKinds.parse("album,all")) == "album,single,appears_on,compilation"

    def test_default_is_album(self):
        assert str(ReleaseKinds.default()) == "album"
        assert ReleaseKind.ALBUM in ReleaseKinds.default()
        assert ReleaseKind.SINGLE not in ReleaseKinds.default()

    def test_duplicates_collapse(self):
        assert len(ReleaseKinds.parse("album,ALBUM")) == 1

    def test_parse_errors(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            ReleaseKinds.parse("  ")
        with pytest.raises(ValueError, match="empty segment"):
            ReleaseKinds.parse("album,,single")
        with pytest.raises(ValueError, match="invalid value 'ep'"):
            ReleaseKinds.parse("album,ep")

    def test_empty_selection_rejected(self):
        with pytest.raises(ValueError):
            ReleaseKinds([])


class TestReleaseDates:
    """Test the day precision rule"""

    def test_day_precision_is_parsed(self):
        assert parse_release_date("2023-10-15", "day") == date(2023, 10, 15)

    def test_precision_inferred_when_missing(self):
        assert parse_release_date("2023-10-15", None) == date(2023, 10, 15)
        with pytest.raises(MalformedData):
            parse_release_date("2023-10", None)

    @pytest.mark.parametrize("value,precision", [
        ("2023-10", "month"),
        ("2023", "year"),
        ("", "day"),
        (None, "day"),
        ("2023-13-40", "day"),
    ])
    def test_unusable_dates_raise(self, value, precision):
        with pytest.raises(MalformedData):
            parse_release_date(value, precision)


class TestRelease:
    """Test Release model"""

    def test_from_spotify_data(self):
        data = make_album("r1", "Kid A", "2000-10-02", artists=("Radiohead", "Guest"))
        release = Release.from_spotify_data(data, "a1")
        assert release.id == "r1"
        assert release.artist_id == "a1"
        assert release.kind == ReleaseKind.ALBUM
        assert release.release_date == date(2000, 10, 2)
        assert release.primary_artist == "Radiohead"
        assert release.all_artists == "Radiohead, Guest"

    def test_album_group_wins_over_album_type(self):
        data = make_album("r2", "Feature", "2023-05-05", group="appears_on")
        assert Release.from_spotify_data(data, "a1").kind == ReleaseKind.APPEARS_ON

    def test_album_type_used_without_group(self):
        data = make_album("r3", "Single", "2023-05-05", group="single")
        del data['album_group']
        assert Release.from_spotify_data(data, "a1").kind == ReleaseKind.SINGLE

    def test_month_precision_is_rejected(self):
        data = make_album("r4", "Old", "2023-10", precision="month")
        with pytest.raises(MalformedData):
            Release.from_spotify_data(data, "a1")

    def test_dict_round_trip(self):
        release = Release.from_spotify_data(make_album("r5", "X", "2024-01-06", artists=("A", "B")), "a1")
        assert Release.from_dict(release.to_dict()) == release


class TestArtist:
    """Test Artist model"""

    def test_from_spotify_data_and_round_trip(self):
        artist = Artist.from_spotify_data(make_artist("a1", "Radiohead", ["rock"]), cached_at="2024-01-01T00:00:00+00:00")
        assert artist.genres == ["rock"]
        assert Artist.from_dict(artist.to_dict()) == artist

    def test_missing_id(self):
        with pytest.raises(MalformedData):
            Artist.from_spotify_data({'name': 'Nobody'})


class TestCacheToken:
    """Test token record"""

    def test_expiry_with_buffer(self):
        token = CacheToken(access_token="a", refresh_token="r", expires_at=1000)
        assert not token.is_expired(buffer_seconds=0, now=999)
        assert token.is_expired(buffer_seconds=300, now=800)
        assert token.is_expired(now=1000)

    def test_refresh_response_keeps_previous_refresh_token(self):
        previous = CacheToken(access_token="old", refresh_token="keep", expires_at=0, scope="user-follow-read")
        token = CacheToken.from_token_response({'access_token': 'new', 'expires_in': 3600}, previous=previous, now=100)
        assert token.access_token == "new"
        assert token.refresh_token == "keep"
        assert token.expires_at == 3700
        assert token.scope == "user-follow-read"

    def test_from_dict_requires_fields(self):
        with pytest.raises(MalformedData):
            CacheToken.from_dict({'access_token': 'a'})
        token = CacheToken(access_token="a", refresh_token="r", expires_at=5, scope="s")
        assert CacheToken.from_dict(token.to_dict()) == token
