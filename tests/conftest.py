"""Test configuration and fixtures"""

import logging
import logging.handlers
import tempfile
from datetime import date
from pathlib import Path

import pytest

from release_radar.config import settings as settings_module
from release_radar.config.settings import Settings
from release_radar.spotify import client as client_module
from release_radar.config import auth as auth_module
from release_radar.sync.store import MemoryStore
from release_radar.utils.logger import ProgressHandler


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep settings, tokens and caches away from the real home directory"""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("RELEASE_RADAR_DATA_DIR", str(tmp_path / "data"))
    for name in ("SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "SPOTIFY_REDIRECT_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    settings_module._settings = None
    client_module.reset_spotify_client()
    auth_module.reset_auth()
    yield
    settings_module._settings = None
    client_module.reset_spotify_client()
    auth_module.reset_auth()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        if isinstance(handler, (ProgressHandler, logging.handlers.RotatingFileHandler)):
            handler.close()
            root_logger.removeHandler(handler)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def settings():
    """Settings with defaults and no pacing pause"""
    test_settings = Settings(create_directories=False)
    test_settings.spotify.client_id = "test-client-id"
    test_settings.sync.chunk_pause = 0
    test_settings.network.min_request_interval = 0
    return test_settings


class FakeSleep:
    """Records requested sleeps instead of sleeping"""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def total(self):
        return sum(self.calls)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


class FakeClock:
    """Settable date for calendar defaults"""

    def __init__(self, today=date(2024, 1, 10)):
        self.today = today

    def __call__(self):
        return self.today


@pytest.fixture
def fake_clock():
    return FakeClock()


def make_artist(artist_id, name, genres=None):
    return {'id': artist_id, 'name': name, 'genres': list(genres or []), 'type': 'artist'}


def make_album(album_id, name, release_date, group="album", artists=("Artist",), precision="day"):
    return {
        'id': album_id,
        'name': name,
        'album_group': group,
        'album_type': 'compilation' if group == 'compilation' else ('single' if group == 'single' else 'album'),
        'release_date': release_date,
        'release_date_precision': precision,
        'artists': [{'name': artist} for artist in artists],
    }


class FakeSpotify:
    """
    In-memory stand-in for SpotifyClient

    Serves followed artists with an `after` cursor, artist releases filtered
    by include_groups with `next` URLs, and a small playlist library.
    Errors queued with fail() are raised before the matching call is served;
    a queued None lets that call through.
    """

    def __init__(self, artists=None, releases=None, album_page_size=None):
        self.artists = list(artists or [])
        self.releases = {key: list(value) for key, value in (releases or {}).items()}
        self.album_page_size = album_page_size
        self.failures = {}
        self.calls = []
        self.refreshes = 0
        self.playlists = []
        self.tracks = {}
        self.added = {}

    def fail(self, method, *errors):
        self.failures.setdefault(method, []).extend(errors)

    def calls_to(self, method):
        return [call for call in self.calls if call[0] == method]

    def _enter(self, method, *args):
        self.calls.append((method,) + args)
        queue = self.failures.get(method)
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error

    def refresh_auth(self):
        self.refreshes += 1

    def followed_artists(self, limit=50, after=None):
        self._enter('followed_artists', after)
        start = 0
        if after:
            start = [artist['id'] for artist in self.artists].index(after) + 1
        items = self.artists[start:start + limit]
        has_more = start + limit < len(self.artists)
        return {
            'artists': {
                'items': items,
                'next': 'https://api.spotify.com/v1/me/following?after=x' if has_more else None,
                'cursors': {'after': items[-1]['id'] if items else None},
                'total': len(self.artists),
                'limit': limit,
            }
        }

    def followed_artist_count(self):
        self._enter('followed_artist_count')
        return len(self.artists)

    def _albums_page(self, artist_id, include_groups, offset, limit):
        groups = include_groups.split(',')
        items = [album for album in self.releases.get(artist_id, []) if album['album_group'] in groups]
        page = items[offset:offset + limit]
        has_more = offset + limit < len(items)
        next_url = f"fake://albums/{artist_id}/{include_groups}/{offset + limit}/{limit}" if has_more else None
        return {'items': page, 'next': next_url, 'total': len(items), 'offset': offset, 'limit': limit}

    def artist_albums(self, artist_id, include_groups, limit=50):
        self._enter('artist_albums', artist_id, include_groups)
        return self._albums_page(artist_id, include_groups, 0, self.album_page_size or limit)

    def next_page(self, url):
        self._enter('next_page', url)
        artist_id, include_groups, offset, limit = url[len("fake://albums/"):].split('/')
        return self._albums_page(artist_id, include_groups, int(offset), int(limit))

    def current_user_playlists(self, limit=50, offset=0):
        self._enter('current_user_playlists', offset)
        page = self.playlists[offset:offset + limit]
        has_more = offset + limit < len(self.playlists)
        return {'items': page, 'next': 'more' if has_more else None, 'total': len(self.playlists)}

    def albums(self, album_ids):
        self._enter('albums', tuple(album_ids))
        return {
            'albums': [
                {'id': album_id, 'tracks': {'items': [{'uri': uri} for uri in self.tracks.get(album_id, [])]}}
                for album_id in album_ids
            ]
        }

    def create_playlist(self, name, public=False, description=""):
        self._enter('create_playlist', name)
        playlist = {'id': f"pl{len(self.playlists) + 1}", 'name': name, 'public': public}
        self.playlists.append(playlist)
        return playlist

    def add_tracks(self, playlist_id, track_uris):
        self._enter('add_tracks', playlist_id, len(track_uris))
        self.added.setdefault(playlist_id, []).extend(track_uris)
        return {'snapshot_id': 'snap'}


@pytest.fixture
def fake_spotify():
    return FakeSpotify()
