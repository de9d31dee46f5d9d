"""
Configuration management for Release Radar

This module loads application settings from YAML files and environment
variables. Settings are grouped into dataclass sections:
- Spotify API credentials, scopes and token handling
- Local storage location for caches and update state
- Synchronization pacing and page sizes
- Network retry and rate limit policy
- Playlist naming
- Logging output

Sensitive values (client id and secret) should come from environment
variables or a .env file rather than the YAML file.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()

APP_DIR_NAME = ".release-radar"


@dataclass
class SpotifyConfig:
    """
    Spotify API configuration and authentication settings

    The PKCE flow only needs the client id; client_secret is accepted for
    applications registered as confidential clients.
    """
    client_id: str = ""
    client_secret: str = ""
    redirect_url: str = "http://127.0.0.1:8888/callback"
    scope: str = "user-follow-read playlist-read-private playlist-modify-private playlist-modify-public"
    token_refresh_buffer: int = 300  # seconds before expiry to refresh


@dataclass
class StorageConfig:
    """Where caches, update state and tokens are stored"""
    data_directory: str = f"~/{APP_DIR_NAME}/"


@dataclass
class SyncConfig:
    """
    Synchronization behaviour

    chunk_pause is the pause in seconds after every chunk_size artists during
    a release update, keeping the sustained request rate below the API limit.
    """
    artist_page_size: int = 50
    release_page_size: int = 50
    chunk_size: int = 20
    chunk_pause: float = 30.0
    default_release_types: str = "album"


@dataclass
class NetworkConfig:
    """
    Network and retry configuration

    max_retry_after is the longest advisory Retry-After we honour; anything
    longer aborts the run instead of sleeping.
    """
    request_timeout: int = 30
    min_request_interval: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0
    max_rate_limit_attempts: int = 5
    max_retry_after: float = 120.0


@dataclass
class PlaylistConfig:
    """Weekly playlist naming and visibility"""
    name_template: str = "Weekly Picks {week}/{year} ({kind})"
    public: bool = False
    tracks_per_release: int = 1


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    Console output shows only user-facing messages; the optional log file
    receives full detail with rotation.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


class Settings:
    """
    Main settings class that manages all configuration

    Loads configuration from the first YAML file found, overrides it with
    environment variables and creates the data directory.
    """

    def __init__(self, config_path: Optional[str] = None, create_directories: bool = True):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
            create_directories: Create the config and data directories
        """
        self.config_path = config_path
        self.config_dir = Path.home() / APP_DIR_NAME
        self.loaded_from: Optional[Path] = None

        self.spotify = SpotifyConfig()
        self.storage = StorageConfig()
        self.sync = SyncConfig()
        self.network = NetworkConfig()
        self.playlist = PlaylistConfig()
        self.logging = LoggingConfig()

        self._load_config()
        self._load_environment_variables()
        if create_directories:
            self._create_directories()

    def _sections(self) -> Dict[str, Any]:
        return {
            'spotify': self.spotify,
            'storage': self.storage,
            'sync': self.sync,
            'network': self.network,
            'playlist': self.playlist,
            'logging': self.logging,
        }

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches the explicit path, the user config directory and the working
        directory, in that order. The first readable file wins.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    self.loaded_from = Path(path)
                    break
                except (OSError, yaml.YAMLError) as e:
                    print(f"Warning: Failed to load config from {path}: {e}")

        self._apply_config(config_data)

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only keys that exist on the matching dataclass are applied; unknown
        sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        if not isinstance(config_data, dict):
            return

        config_mapping = self._sections()
        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """Environment variables take precedence over file-based configuration"""
        env_mappings = {
            'SPOTIFY_CLIENT_ID': lambda v: setattr(self.spotify, 'client_id', v),
            'SPOTIFY_CLIENT_SECRET': lambda v: setattr(self.spotify, 'client_secret', v),
            'SPOTIFY_REDIRECT_URL': lambda v: setattr(self.spotify, 'redirect_url', v),
            'RELEASE_RADAR_DATA_DIR': lambda v: setattr(self.storage, 'data_directory', v),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                setter(value)

    def _create_directories(self) -> None:
        """Create the config and data directories, warning on failure"""
        for directory in [self.config_dir, self.get_data_directory()]:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                print(f"Warning: Failed to create directory {directory}: {e}")

    def get_data_directory(self) -> Path:
        """Expanded data directory path"""
        return Path(self.storage.data_directory).expanduser()

    def get_cache_directory(self) -> Path:
        """Root directory of the local store"""
        return self.get_data_directory() / "cache"

    def get_config_directory(self) -> Path:
        return self.config_dir

    def get_default_release_kinds(self):
        """Parsed default release kinds for release updates and listings"""
        from ..spotify.models import ReleaseKinds
        return ReleaseKinds.parse(self.sync.default_release_types)

    def save_config(self, path: Optional[str] = None) -> Path:
        """
        Save current configuration to file

        Credentials are blanked before writing.

        Args:
            path: Custom path to save config, defaults to user config directory

        Returns:
            Path the configuration was written to
        """
        target = Path(path) if path else self.get_config_directory() / "config.yaml"

        config_data = {name: asdict(section) for name, section in self._sections().items()}
        config_data['spotify']['client_id'] = ""
        config_data['spotify']['client_secret'] = ""

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f, default_flow_style=False, indent=2)
        return target

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Returns:
            List of error messages, empty when the configuration is usable
        """
        errors = []

        if not self.spotify.client_id:
            errors.append("Spotify client_id is required (set SPOTIFY_CLIENT_ID)")

        if self.sync.chunk_size < 1:
            errors.append(f"sync.chunk_size must be positive: {self.sync.chunk_size}")

        if self.sync.chunk_pause < 0:
            errors.append(f"sync.chunk_pause cannot be negative: {self.sync.chunk_pause}")

        if not 1 <= self.sync.artist_page_size <= 50:
            errors.append(f"sync.artist_page_size must be 1-50: {self.sync.artist_page_size}")

        if not 1 <= self.sync.release_page_size <= 50:
            errors.append(f"sync.release_page_size must be 1-50: {self.sync.release_page_size}")

        if self.network.max_retries < 1:
            errors.append(f"network.max_retries must be at least 1: {self.network.max_retries}")

        if self.network.max_retry_after <= 0:
            errors.append(f"network.max_retry_after must be positive: {self.network.max_retry_after}")

        try:
            self.get_default_release_kinds()
        except ValueError as e:
            errors.append(f"sync.default_release_types: {e}")

        for placeholder in ("{week}", "{year}", "{kind}"):
            if placeholder not in self.playlist.name_template:
                errors.append(f"playlist.name_template must contain {placeholder}")

        return errors

    def __str__(self) -> str:
        sections = [
            f"Data: {self.storage.data_directory}",
            f"Types: {self.sync.default_release_types}",
            f"Chunk: {self.sync.chunk_size} artists / {self.sync.chunk_pause}s pause",
        ]
        return f"Settings({', '.join(sections)})"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance

    The instance is created on first access and shared afterwards.

    Returns:
        The global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global _settings
    _settings = Settings(config_path)
    return _settings
