"""
Synchronization package
Local store, resumable update state, sync engine and weekly views
"""

from .store import Store, FileStore, MemoryStore, open_store, ARTISTS, RELEASES, STATE, TOKEN
from .state import OperationKind, UpdateStatus, UpdateState, UpdateStateMachine
from .aggregator import WeeklyAggregator, sorted_for_display
from .engine import ReleaseRadar, SyncResult, WeekInfo, CacheInfo

__all__ = [
    # Store
    'Store',
    'FileStore',
    'MemoryStore',
    'open_store',
    'ARTISTS',
    'RELEASES',
    'STATE',
    'TOKEN',

    # Update state
    'OperationKind',
    'UpdateStatus',
    'UpdateState',
    'UpdateStateMachine',

    # Engine and views
    'WeeklyAggregator',
    'sorted_for_display',
    'ReleaseRadar',
    'SyncResult',
    'WeekInfo',
    'CacheInfo'
]
