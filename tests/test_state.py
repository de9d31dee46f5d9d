"""Test the update state machine"""

from datetime import datetime, timedelta, timezone

import pytest

from release_radar.exceptions import PersistenceError
from release_radar.spotify.models import ReleaseKinds
from release_radar.sync.state import (
    OperationKind,
    UpdateState,
    UpdateStateMachine,
    UpdateStatus,
    state_key,
)
from release_radar.sync.store import STATE


class TickingClock:
    """Returns a later datetime on every call"""

    def __init__(self):
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def machine(memory_store):
    return UpdateStateMachine(memory_store, clock=TickingClock())


class TestLifecycle:
    """Test begin, checkpoint and finish"""

    def test_cold_start_from_absent(self, machine, memory_store):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        assert state.status == UpdateStatus.IN_PROGRESS
        assert state.cursor is None
        assert state.processed == set()
        assert memory_store.get(STATE, "artists")['status'] == "in_progress"

    def test_checkpoint_persists(self, machine):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        machine.checkpoint(state, cursor="a2", processed=["a1", "a2"], total=5, advance_cursor=True)

        loaded = machine.load(OperationKind.ARTISTS)
        assert loaded.cursor == "a2"
        assert loaded.processed == {"a1", "a2"}
        assert loaded.total == 5

    def test_checkpoint_without_advance_keeps_cursor(self, machine):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        machine.checkpoint(state, cursor="a2", advance_cursor=True)
        machine.checkpoint(state, processed=["a3"])
        assert machine.load(OperationKind.ARTISTS).cursor == "a2"

    def test_interrupted_run_resumes(self, machine):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        machine.checkpoint(state, cursor="a2", processed=["a1", "a2"], advance_cursor=True)

        resumed = machine.begin_or_resume(OperationKind.ARTISTS)
        assert resumed.cursor == "a2"
        assert resumed.processed == {"a1", "a2"}
        assert resumed.started_at == state.started_at

    def test_failed_run_resumes_with_stage_cleared(self, machine):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        machine.checkpoint(state, processed=["a1"])
        machine.finish(state, UpdateStatus.FAILED, stage="page after cursor a1")

        failed = machine.load(OperationKind.ARTISTS)
        assert failed.status == UpdateStatus.FAILED
        assert failed.stage == "page after cursor a1"
        assert failed.processed == {"a1"}

        resumed = machine.begin_or_resume(OperationKind.ARTISTS)
        assert resumed.status == UpdateStatus.IN_PROGRESS
        assert resumed.processed == {"a1"}
        assert resumed.stage is None

    def test_completed_run_resets_checkpoint(self, machine):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        machine.checkpoint(state, cursor="a9", processed=["a1"], total=1, advance_cursor=True)
        machine.finish(state, UpdateStatus.COMPLETED)

        completed = machine.load(OperationKind.ARTISTS)
        assert completed.status == UpdateStatus.COMPLETED
        assert completed.cursor is None
        assert completed.processed == set()
        assert completed.total == 1
        assert completed.finished_at is not None

        fresh = machine.begin_or_resume(OperationKind.ARTISTS)
        assert fresh.started_at > completed.started_at

    def test_force_discards_checkpoint(self, machine):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        machine.checkpoint(state, cursor="a2", processed=["a1", "a2"], advance_cursor=True)

        forced = machine.begin_or_resume(OperationKind.ARTISTS, force=True)
        assert forced.cursor is None
        assert forced.processed == set()
        assert machine.load(OperationKind.ARTISTS).processed == set()

    def test_finish_needs_terminal_outcome(self, machine):
        state = machine.begin_or_resume(OperationKind.ARTISTS)
        with pytest.raises(ValueError):
            machine.finish(state, UpdateStatus.IN_PROGRESS)


class TestReleaseStates:
    """Release states are kept per kind selection"""

    def test_state_key(self):
        assert state_key(OperationKind.ARTISTS) == "artists"
        assert state_key(OperationKind.RELEASES, "single,album") == "releases_album-single"

    def test_kind_selections_are_independent(self, machine):
        albums = machine.begin_or_resume(OperationKind.RELEASES, release_kinds=ReleaseKinds.parse("album"))
        machine.checkpoint(albums, processed=["a1"])

        singles = machine.begin_or_resume(OperationKind.RELEASES, release_kinds=ReleaseKinds.parse("album,single"))
        assert singles.processed == set()
        assert singles.key == "releases_album-single"
        assert machine.load(OperationKind.RELEASES, ReleaseKinds.parse("album")).processed == {"a1"}

    def test_all_states(self, machine):
        machine.begin_or_resume(OperationKind.ARTISTS)
        machine.begin_or_resume(OperationKind.RELEASES, release_kinds=ReleaseKinds.default())
        assert sorted(state.key for state in machine.all_states()) == ["artists", "releases_album"]

    def test_discard_removes_every_kind_selection(self, machine, memory_store):
        machine.begin_or_resume(OperationKind.ARTISTS)
        machine.begin_or_resume(OperationKind.RELEASES, release_kinds=ReleaseKinds.parse("album"))
        machine.begin_or_resume(OperationKind.RELEASES, release_kinds=ReleaseKinds.parse("album,single"))

        discarded = machine.discard(OperationKind.RELEASES)

        assert discarded == ["releases_album", "releases_album-single"]
        assert memory_store.keys(STATE) == ["artists"]


class TestSerialization:
    def test_round_trip_preserves_every_field(self):
        state = UpdateState(
            kind=OperationKind.RELEASES,
            started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            status=UpdateStatus.FAILED,
            cursor="c",
            processed={"a", "b"},
            total=3,
            release_kinds="album,single",
            updated_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
            finished_at=datetime(2024, 1, 3, tzinfo=timezone.utc),
            stage="artist a (A)",
        )
        assert UpdateState.from_dict(state.to_dict()) == state

    def test_corrupt_state_raises(self, machine, memory_store):
        memory_store.put(STATE, "artists", {'kind': 'artists'})
        with pytest.raises(PersistenceError):
            machine.load(OperationKind.ARTISTS)
