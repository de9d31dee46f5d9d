"""
Persisted progress records for long-running update operations

Each bulk operation (artist sync, release sync per selected kind set) keeps
one UpdateState in the store:

    Absent ──> InProgress ──> Completed
                    │
                    └──────> Failed

A run without force resumes an InProgress (interrupted) or Failed record from
its checkpoint, and starts cold from Absent or Completed. force always starts
cold with the cursor reset and the processed set emptied.

checkpoint() must only be called after the chunk it describes has been
durably written to the store. The processed set is then always a subset of
what the store holds, so a crash between fetch and write costs a re-fetch
rather than lost data.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..exceptions import PersistenceError
from ..spotify.models import ReleaseKinds
from ..utils.logger import get_logger
from .store import STATE, Store


class OperationKind(Enum):
    """Bulk operations that keep an update state"""
    ARTISTS = "artists"
    RELEASES = "releases"


class UpdateStatus(Enum):
    """
    Update state lifecycle

    IN_PROGRESS: run started or interrupted, resumable
    COMPLETED: last run finished, next run starts a fresh pass
    FAILED: last run aborted, next run resumes from the checkpoint
    """
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class UpdateState:
    """
    Checkpoint of one bulk operation

    Attributes:
        kind: Operation kind
        cursor: Continuation cursor of the next page to fetch (artist sync)
        processed: Identifiers already durably handled in this pass
        total: Total item count last reported or computed
        started_at: When this pass started
        status: Lifecycle status
        release_kinds: Selected release kinds (release sync only)
        updated_at: Time of the last checkpoint
        finished_at: Time the pass completed or failed
        stage: Where a failed pass stopped, for reporting
    """
    kind: OperationKind
    started_at: datetime
    status: UpdateStatus = UpdateStatus.IN_PROGRESS
    cursor: Optional[str] = None
    processed: Set[str] = field(default_factory=set)
    total: Optional[int] = None
    release_kinds: Optional[str] = None
    updated_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stage: Optional[str] = None

    @property
    def key(self) -> str:
        return state_key(self.kind, self.release_kinds)

    @property
    def is_resumable(self) -> bool:
        return self.status in (UpdateStatus.IN_PROGRESS, UpdateStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'cursor': self.cursor,
            'processed': sorted(self.processed),
            'total': self.total,
            'started_at': self.started_at.isoformat(),
            'status': self.status.value,
            'release_kinds': self.release_kinds,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'stage': self.stage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UpdateState':
        def parse(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return cls(
            kind=OperationKind(data['kind']),
            cursor=data.get('cursor'),
            processed=set(data.get('processed') or []),
            total=data.get('total'),
            started_at=parse(data['started_at']),
            status=UpdateStatus(data['status']),
            release_kinds=data.get('release_kinds'),
            updated_at=parse(data.get('updated_at')),
            finished_at=parse(data.get('finished_at')),
            stage=data.get('stage'),
        )


def state_key(kind: OperationKind, release_kinds: Optional[str] = None) -> str:
    """Store key of the update state for an operation and kind selection"""
    if kind == OperationKind.RELEASES and release_kinds:
        return f"{kind.value}_{ReleaseKinds.parse(release_kinds).key}"
    return kind.value


class UpdateStateMachine:
    """
    Begin, checkpoint and finish update states stored in a Store

    Args:
        store: Store holding the state records
        clock: Callable returning the current UTC datetime
    """

    def __init__(self, store: Store, clock: Callable[[], datetime] = _now):
        self.store = store
        self._clock = clock
        self.logger = get_logger(__name__)

    def load(self, kind: OperationKind, release_kinds: Optional[ReleaseKinds] = None) -> Optional[UpdateState]:
        """Stored state for an operation, or None"""
        key = state_key(kind, str(release_kinds) if release_kinds else None)
        data = self.store.get(STATE, key)
        if data is None:
            return None
        try:
            return UpdateState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Corrupt update state {key}: {e}", details={'key': key})

    def all_states(self) -> List[UpdateState]:
        states = []
        for key in self.store.keys(STATE):
            data = self.store.get(STATE, key)
            if data:
                try:
                    states.append(UpdateState.from_dict(data))
                except (KeyError, TypeError, ValueError):
                    self.logger.warning(f"Ignoring unreadable update state {key}")
        return states

    def discard(self, kind: OperationKind) -> List[str]:
        """
        Delete every stored state of an operation, across all kind selections

        Returns:
            Keys of the deleted states
        """
        prefix = f"{kind.value}_"
        keys = [key for key in self.store.keys(STATE) if key == kind.value or key.startswith(prefix)]
        for key in keys:
            self.store.delete(STATE, key)
        if keys:
            self.logger.debug(f"Discarded update states: {', '.join(keys)}")
        return keys

    def _save(self, state: UpdateState) -> None:
        state.updated_at = self._clock()
        self.store.put(STATE, state.key, state.to_dict())

    def begin_or_resume(
        self,
        kind: OperationKind,
        force: bool = False,
        release_kinds: Optional[ReleaseKinds] = None
    ) -> UpdateState:
        """
        Start a new pass or resume an unfinished one

        Args:
            kind: Operation kind
            force: Discard any stored checkpoint
            release_kinds: Kind selection for release sync

        Returns:
            The state now marked IN_PROGRESS and persisted
        """
        existing = None if force else self.load(kind, release_kinds)

        if existing is not None and existing.is_resumable:
            self.logger.info(
                f"Resuming {kind.value} update from checkpoint "
                f"({len(existing.processed)} processed, status {existing.status.value})"
            )
            existing.status = UpdateStatus.IN_PROGRESS
            existing.finished_at = None
            existing.stage = None
            self._save(existing)
            return existing

        if force:
            self.logger.info(f"Forced {kind.value} update, discarding checkpoint")

        state = UpdateState(
            kind=kind,
            started_at=self._clock(),
            release_kinds=str(release_kinds) if release_kinds else None,
        )
        self._save(state)
        return state

    def checkpoint(
        self,
        state: UpdateState,
        cursor: Optional[str] = None,
        processed: Iterable[str] = (),
        total: Optional[int] = None,
        advance_cursor: bool = False
    ) -> None:
        """
        Record progress after a chunk has been durably stored

        Args:
            state: State being advanced
            cursor: New continuation cursor (applied when advance_cursor is True)
            processed: Identifiers handled in this chunk
            total: Updated total count, if known
            advance_cursor: Whether cursor should replace the stored cursor
        """
        if advance_cursor:
            state.cursor = cursor
        state.processed.update(processed)
        if total is not None:
            state.total = total
        self._save(state)

    def finish(self, state: UpdateState, outcome: UpdateStatus, stage: Optional[str] = None) -> None:
        """
        Close a pass

        COMPLETED resets the checkpoint (cursor and processed set) so the next
        run starts fresh. FAILED keeps the checkpoint and records the stage.
        """
        if outcome == UpdateStatus.IN_PROGRESS:
            raise ValueError("finish() needs a terminal outcome")

        state.status = outcome
        state.finished_at = self._clock()
        if outcome == UpdateStatus.COMPLETED:
            state.cursor = None
            state.processed = set()
            state.stage = None
        else:
            state.stage = stage
        self._save(state)
