"""
Spotify integration package
Web API client, rate-limited fetching, data models and weekly playlists
"""

from .client import get_spotify_client, reset_spotify_client, SpotifyClient, TokenProvider
from .fetcher import Fetcher, RetryPolicy, Page, FollowedArtists, ArtistReleases, Pacer
from .models import (
    Artist,
    Release,
    ReleaseKind,
    ReleaseKinds,
    CacheToken
)
from .playlist import PlaylistBuilder, PlaylistOutcome

__all__ = [
    # Client
    'get_spotify_client',
    'reset_spotify_client',
    'SpotifyClient',
    'TokenProvider',

    # Fetching
    'Fetcher',
    'RetryPolicy',
    'Page',
    'FollowedArtists',
    'ArtistReleases',
    'Pacer',

    # Models
    'Artist',
    'Release',
    'ReleaseKind',
    'ReleaseKinds',
    'CacheToken',

    # Playlists
    'PlaylistBuilder',
    'PlaylistOutcome'
]
