"""
Configuration package
Settings management and Spotify authorization
"""

from .settings import get_settings, reload_settings, Settings
from .auth import get_auth, reset_auth, SpotifyAuth

__all__ = [
    # Settings management
    'get_settings',
    'reload_settings',
    'Settings',

    # Spotify authorization
    'get_auth',
    'reset_auth',
    'SpotifyAuth'
]
