"""
Local key-value store for cached artists, releases, update state and tokens

Records are grouped by kind (artists, releases, state, token) and addressed by
a key inside that kind. Values are JSON-compatible dictionaries.

FileStore keeps one JSON file per record:

    <root>/artists/<artist_id>.json
    <root>/releases/<artist_id>.json
    <root>/state/<state_key>.json
    <root>/token/spotify.json

Every write goes to a temporary file in the target directory, is flushed and
fsynced, then atomically renamed over the destination. A crash therefore
leaves either the previous record or the new one, never a partial file.
replace_all() builds a complete new kind directory and swaps it in by rename;
an interrupted swap is recovered the next time the store is opened.

The store holds no merge logic. Callers read a snapshot, compute the new one
and write it back.
"""

import json
import os
import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import PersistenceError
from ..utils.logger import get_logger

ARTISTS = "artists"
RELEASES = "releases"
STATE = "state"
TOKEN = "token"

_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.-]*$')
_BACKUP_SUFFIX = ".previous"
_STAGING_MARKER = ".staging-"


def _check_name(name: str, what: str) -> str:
    if not isinstance(name, str) or not _NAME_PATTERN.match(name):
        raise PersistenceError(f"Invalid store {what}: {name!r}", details={what: name})
    return name


class Store(ABC):
    """Contract shared by the file-backed and in-memory stores"""

    @abstractmethod
    def get(self, kind: str, key: str) -> Optional[Dict[str, Any]]:
        """Return the record or None when absent"""

    @abstractmethod
    def put(self, kind: str, key: str, value: Dict[str, Any]) -> None:
        """Atomically create or replace one record"""

    @abstractmethod
    def replace_all(self, kind: str, values: Dict[str, Dict[str, Any]]) -> None:
        """Atomically replace every record of a kind with the given mapping"""

    @abstractmethod
    def clear(self, kind: str) -> None:
        """Remove every record of a kind"""

    @abstractmethod
    def delete(self, kind: str, key: str) -> None:
        """Remove one record if present"""

    @abstractmethod
    def keys(self, kind: str) -> List[str]:
        """Sorted keys of a kind"""

    def get_all(self, kind: str) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every record of a kind"""
        result = {}
        for key in self.keys(kind):
            value = self.get(kind, key)
            if value is not None:
                result[key] = value
        return result

    def count(self, kind: str) -> int:
        return len(self.keys(kind))


class FileStore(Store):
    """
    JSON file store with atomic replace-on-write

    Args:
        root: Directory holding one subdirectory per kind
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self.logger = get_logger(__name__)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create store directory {self.root}: {e}")
        self._recover()

    def _kind_dir(self, kind: str) -> Path:
        return self.root / _check_name(kind, 'kind')

    def _path(self, kind: str, key: str) -> Path:
        return self._kind_dir(kind) / f"{_check_name(key, 'key')}.json"

    def _recover(self) -> None:
        """Finish or roll back a replace_all swap interrupted by a crash"""
        try:
            entries = list(self.root.iterdir())
        except OSError as e:
            raise PersistenceError(f"Cannot read store directory {self.root}: {e}")

        for entry in entries:
            name = entry.name
            if not entry.is_dir() or not name.startswith('.'):
                continue

            if _STAGING_MARKER in name:
                shutil.rmtree(entry, ignore_errors=True)
                continue

            if name.endswith(_BACKUP_SUFFIX):
                kind = name[1:-len(_BACKUP_SUFFIX)]
                target = self.root / kind
                if target.exists():
                    shutil.rmtree(entry, ignore_errors=True)
                else:
                    self.logger.warning(f"Restoring {kind} cache after interrupted write")
                    os.rename(entry, target)

    def _write_json(self, path: Path, value: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(value, f, indent=2, sort_keys=True, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def get(self, kind: str, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(kind, key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(
                f"Failed to read {kind}/{key}: {e}",
                details={'path': str(path)}
            )

    def put(self, kind: str, key: str, value: Dict[str, Any]) -> None:
        path = self._path(kind, key)
        try:
            self._write_json(path, value)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(
                f"Failed to write {kind}/{key}: {e}",
                details={'path': str(path)}
            )

    def replace_all(self, kind: str, values: Dict[str, Dict[str, Any]]) -> None:
        target = self._kind_dir(kind)
        backup = self.root / f".{kind}{_BACKUP_SUFFIX}"

        try:
            staging = Path(tempfile.mkdtemp(dir=self.root, prefix=f".{kind}{_STAGING_MARKER}"))
        except OSError as e:
            raise PersistenceError(f"Failed to stage {kind}: {e}")

        try:
            for key, value in values.items():
                self._write_json(staging / f"{_check_name(key, 'key')}.json", value)

            if backup.exists():
                shutil.rmtree(backup)
            if target.exists():
                os.rename(target, backup)
            os.rename(staging, target)
        except (OSError, TypeError, ValueError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise PersistenceError(f"Failed to replace {kind}: {e}", details={'kind': kind})
        except PersistenceError:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        shutil.rmtree(backup, ignore_errors=True)
        self.logger.debug(f"Replaced {kind} with {len(values)} records")

    def clear(self, kind: str) -> None:
        target = self._kind_dir(kind)
        if not target.exists():
            return
        trash = self.root / f".{kind}{_STAGING_MARKER}cleared"
        try:
            if trash.exists():
                shutil.rmtree(trash)
            os.rename(target, trash)
            shutil.rmtree(trash)
        except OSError as e:
            raise PersistenceError(f"Failed to clear {kind}: {e}", details={'kind': kind})

    def delete(self, kind: str, key: str) -> None:
        path = self._path(kind, key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise PersistenceError(f"Failed to delete {kind}/{key}: {e}")

    def keys(self, kind: str) -> List[str]:
        directory = self._kind_dir(kind)
        if not directory.exists():
            return []
        try:
            return sorted(
                path.stem for path in directory.glob('*.json')
                if not path.name.startswith('.')
            )
        except OSError as e:
            raise PersistenceError(f"Failed to list {kind}: {e}")


class MemoryStore(Store):
    """
    In-memory store with the same contract as FileStore

    Values are kept as serialized JSON, so callers get the same round-trip
    fidelity (and the same failures on non-JSON values) as with files.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, str]] = {}

    @staticmethod
    def _encode(kind: str, key: str, value: Dict[str, Any]) -> str:
        try:
            return json.dumps(value, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {kind}/{key}: {e}")

    def get(self, kind: str, key: str) -> Optional[Dict[str, Any]]:
        _check_name(kind, 'kind')
        _check_name(key, 'key')
        raw = self._data.get(kind, {}).get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, kind: str, key: str, value: Dict[str, Any]) -> None:
        _check_name(kind, 'kind')
        _check_name(key, 'key')
        self._data.setdefault(kind, {})[key] = self._encode(kind, key, value)

    def replace_all(self, kind: str, values: Dict[str, Dict[str, Any]]) -> None:
        _check_name(kind, 'kind')
        encoded = {
            _check_name(key, 'key'): self._encode(kind, key, value)
            for key, value in values.items()
        }
        self._data[kind] = encoded

    def clear(self, kind: str) -> None:
        _check_name(kind, 'kind')
        self._data.pop(kind, None)

    def delete(self, kind: str, key: str) -> None:
        self._data.get(kind, {}).pop(key, None)

    def keys(self, kind: str) -> List[str]:
        _check_name(kind, 'kind')
        return sorted(self._data.get(kind, {}))


def open_store(root: Optional[Path] = None) -> FileStore:
    """Open the file store under the configured cache directory"""
    if root is None:
        from ..config.settings import get_settings
        root = get_settings().get_cache_directory()
    return FileStore(root)
