"""
Release Radar: weekly new releases of the artists you follow on Spotify

Release Radar keeps a local, resumable mirror of the artists a Spotify user
follows and of their releases, groups the releases into Saturday-to-Friday
release weeks and can turn a week into a playlist.

Packages:
- config: settings loaded from YAML and environment, PKCE authorization
- spotify: Web API client, rate-limited fetcher, data models, playlists
- sync: local store, update state machine, synchronization engine, weekly views
- utils: release week calendar, logging, small helpers

Long-running updates checkpoint their progress after every durably stored
page or artist, so an interrupted `artists update` or `releases update`
resumes where it stopped.
"""

__version__ = "0.4.0"

__author__ = "Release Radar Contributors"

__description__ = "Track new releases of followed Spotify artists by release week"

__all__ = [
    "__version__",
    "__author__",
    "__description__"
]
