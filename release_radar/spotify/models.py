"""
Data models for followed artists, their releases and cached credentials

The models are plain dataclasses built from Spotify Web API payloads with
`from_spotify_data()` and persisted through `to_dict()` / `from_dict()`.
Round-tripping through the dictionary form preserves every field, which the
local store relies on.

Ingestion rules live here as well: a release is only usable when its date has
day precision. Anything else raises MalformedData so the synchronization
engine can log and skip it.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from ..exceptions import MalformedData


class ReleaseKind(Enum):
    """
    Release groups understood by the artist albums endpoint

    Declaration order is the canonical display order.
    """
    ALBUM = "album"
    SINGLE = "single"
    APPEARS_ON = "appears_on"
    COMPILATION = "compilation"

    @property
    def order(self) -> int:
        return list(ReleaseKind).index(self)

    def __str__(self) -> str:
        return self.value


ALLOWED_KIND_VALUES = ["album", "single", "appears_on", "compilation", "all"]


class ReleaseKinds:
    """
    Validated, non-empty selection of release kinds

    Iteration follows ReleaseKind declaration order, so "single,album" and
    "album,single" have the same string form.
    """

    def __init__(self, kinds: Iterable[ReleaseKind]):
        selected = frozenset(kinds)
        if not selected:
            raise ValueError("no valid kinds provided to --type")
        self._kinds: FrozenSet[ReleaseKind] = selected

    @classmethod
    def default(cls) -> 'ReleaseKinds':
        return cls([ReleaseKind.ALBUM])

    @classmethod
    def all(cls) -> 'ReleaseKinds':
        return cls(list(ReleaseKind))

    @classmethod
    def parse(cls, text: str) -> 'ReleaseKinds':
        """
        Parse a comma separated list of kinds

        Args:
            text: Input such as "album,single", "Appears-On" or "all"

        Returns:
            ReleaseKinds selection

        Raises:
            ValueError: On empty input, empty segments or unknown kinds
        """
        if text is None or not text.strip():
            raise ValueError("value for --type cannot be empty")

        selected = set()
        for raw in text.split(','):
            part = raw.strip()
            if not part:
                raise ValueError("malformed --type: empty segment between commas")

            normalized = part.lower().replace('-', '_')
            if normalized == "all":
                selected.update(ReleaseKind)
                continue

            try:
                selected.add(ReleaseKind(normalized))
            except ValueError:
                allowed = ", ".join(ALLOWED_KIND_VALUES)
                raise ValueError(f"invalid value '{part}' for --type (allowed: {allowed})")

        return cls(selected)

    @property
    def include_groups(self) -> str:
        """Value for the include_groups query parameter"""
        return ",".join(kind.value for kind in self)

    @property
    def key(self) -> str:
        """Filesystem-safe identifier of this selection"""
        return "-".join(kind.value for kind in self)

    def __iter__(self) -> Iterator[ReleaseKind]:
        return iter(sorted(self._kinds, key=lambda kind: kind.order))

    def __contains__(self, kind: object) -> bool:
        return kind in self._kinds

    def __len__(self) -> int:
        return len(self._kinds)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReleaseKinds):
            return NotImplemented
        return self._kinds == other._kinds

    def __hash__(self) -> int:
        return hash(self._kinds)

    def __str__(self) -> str:
        return ",".join(kind.value for kind in self)

    def __repr__(self) -> str:
        return f"ReleaseKinds({str(self)!r})"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@dataclass
class Artist:
    """
    Followed artist as cached locally

    Attributes:
        id: Spotify artist ID, the cache key
        name: Display name
        genres: Genre tags reported by Spotify
        cached_at: ISO timestamp of the snapshot this record came from
    """
    id: str
    name: str
    genres: List[str] = field(default_factory=list)
    cached_at: str = ""

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any], cached_at: Optional[str] = None) -> 'Artist':
        """
        Build an artist from a followed-artists item

        Raises:
            MalformedData: If the item has no id
        """
        artist_id = data.get('id')
        if not artist_id:
            raise MalformedData("Artist record without id", details={'data': data})
        return cls(
            id=artist_id,
            name=data.get('name') or 'Unknown Artist',
            genres=list(data.get('genres') or []),
            cached_at=cached_at or utc_now_iso()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'genres': list(self.genres),
            'cached_at': self.cached_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Artist':
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            genres=list(data.get('genres', [])),
            cached_at=data.get('cached_at', '')
        )


def parse_release_date(value: Optional[str], precision: Optional[str]) -> date:
    """
    Parse a catalog release date that must have day precision

    Args:
        value: Date string from the API ("2023-10-15", "2023-10" or "2023")
        precision: Reported precision ("day", "month", "year") or None

    Returns:
        Parsed date

    Raises:
        MalformedData: For missing, unparseable or non-day-precision dates
    """
    if not value:
        raise MalformedData("Release has no release date")

    if precision is None:
        # infer from the shape of the value
        precision = {1: 'year', 2: 'month', 3: 'day'}.get(len(value.split('-')), 'unknown')

    if precision != 'day':
        raise MalformedData(
            f"Release date '{value}' has {precision} precision",
            details={'release_date': value, 'precision': precision}
        )

    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise MalformedData(f"Unparseable release date '{value}'", details={'release_date': value})


@dataclass(frozen=True)
class Release:
    """
    Release cached under one owning artist

    Attributes:
        id: Spotify album ID
        artist_id: ID of the followed artist this record was fetched for
        kind: Release group (album, single, appears_on, compilation)
        release_date: Day-precision release date
        name: Release title
        artists: Names of all credited artists, in catalog order
        album_type: Raw album_type reported by the catalog
    """
    id: str
    artist_id: str
    kind: ReleaseKind
    release_date: date
    name: str
    artists: Tuple[str, ...] = ()
    album_type: str = ""

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any], artist_id: str) -> 'Release':
        """
        Build a release from an artist albums item

        The release group comes from `album_group` when present (it
        distinguishes appears_on), falling back to `album_type`.

        Raises:
            MalformedData: If the id, kind or day-precision date is missing
        """
        release_id = data.get('id')
        if not release_id:
            raise MalformedData("Release record without id", details={'artist_id': artist_id})

        group = (data.get('album_group') or data.get('album_type') or '').lower()
        try:
            kind = ReleaseKind(group)
        except ValueError:
            raise MalformedData(
                f"Unknown release group '{group}' for {release_id}",
                details={'release_id': release_id}
            )

        release_date = parse_release_date(data.get('release_date'), data.get('release_date_precision'))

        return cls(
            id=release_id,
            artist_id=artist_id,
            kind=kind,
            release_date=release_date,
            name=data.get('name') or 'Unknown Release',
            artists=tuple(a.get('name', '') for a in data.get('artists') or []),
            album_type=data.get('album_type') or group
        )

    @property
    def primary_artist(self) -> str:
        return self.artists[0] if self.artists else ""

    @property
    def all_artists(self) -> str:
        return ", ".join(self.artists)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'artist_id': self.artist_id,
            'kind': self.kind.value,
            'release_date': self.release_date.isoformat(),
            'name': self.name,
            'artists': list(self.artists),
            'album_type': self.album_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Release':
        return cls(
            id=data['id'],
            artist_id=data['artist_id'],
            kind=ReleaseKind(data['kind']),
            release_date=date.fromisoformat(data['release_date']),
            name=data.get('name', ''),
            artists=tuple(data.get('artists', [])),
            album_type=data.get('album_type', '')
        )


@dataclass
class CacheToken:
    """
    OAuth token record

    Attributes:
        access_token: Bearer token for Web API calls
        refresh_token: Token used to obtain a new access token
        expires_at: Expiry instant in epoch seconds
        token_type: Usually "Bearer"
        scope: Granted scopes
    """
    access_token: str
    refresh_token: str
    expires_at: int
    token_type: str = "Bearer"
    scope: str = ""

    def is_expired(self, buffer_seconds: int = 0, now: Optional[float] = None) -> bool:
        """True when the token expires within buffer_seconds of now"""
        current = time.time() if now is None else now
        return current >= self.expires_at - buffer_seconds

    @classmethod
    def from_token_response(
        cls,
        data: Dict[str, Any],
        previous: Optional['CacheToken'] = None,
        now: Optional[float] = None
    ) -> 'CacheToken':
        """
        Build a token from an accounts service response

        Spotify may omit the refresh token on refresh; the previous one is kept then.
        """
        issued = int(time.time() if now is None else now)
        refresh_token = data.get('refresh_token') or (previous.refresh_token if previous else '')
        return cls(
            access_token=data['access_token'],
            refresh_token=refresh_token,
            expires_at=issued + int(data.get('expires_in', 3600)),
            token_type=data.get('token_type', 'Bearer'),
            scope=data.get('scope', previous.scope if previous else '')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'access_token': self.access_token,
            'refresh_token': self.refresh_token,
            'expires_at': self.expires_at,
            'token_type': self.token_type,
            'scope': self.scope,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheToken':
        required = ['access_token', 'refresh_token', 'expires_at']
        missing = [name for name in required if name not in data]
        if missing:
            raise MalformedData(f"Token record missing fields: {', '.join(missing)}")
        return cls(
            access_token=data['access_token'],
            refresh_token=data['refresh_token'],
            expires_at=int(data['expires_at']),
            token_type=data.get('token_type', 'Bearer'),
            scope=data.get('scope', '')
        )
