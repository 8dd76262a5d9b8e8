"""
State machine for the sync engine lifecycle.

Valid transitions and what triggers them are defined here; the engine
refuses any transition missing from the table.
"""

from enum import Enum
from typing import Dict, Tuple


class SyncState(str, Enum):
    """Lifecycle state of the sync engine."""
    IDLE = "idle"            # No session
    LOADING = "loading"      # Bulk-load (initial, retry or refresh) in flight
    LIVE = "live"            # Mirrors loaded, subscriptions delivering
    SUSPENDED = "suspended"  # Retry budget exhausted; waits for a manual refresh


# Valid transitions: (from_state, to_state) -> trigger
_TRANSITIONS: Dict[Tuple[SyncState, SyncState], str] = {
    (SyncState.IDLE, SyncState.LOADING): "session acquired",
    (SyncState.LOADING, SyncState.LOADING): "retry",
    (SyncState.LOADING, SyncState.LIVE): "all bulk-loads joined",
    (SyncState.LOADING, SyncState.SUSPENDED): "retry budget exhausted",
    (SyncState.LIVE, SyncState.LOADING): "refresh requested",
    (SyncState.LIVE, SyncState.SUSPENDED): "resubscribe budget exhausted",
    (SyncState.SUSPENDED, SyncState.LOADING): "refresh requested",
    # Session loss from any state
    (SyncState.IDLE, SyncState.IDLE): "session lost",
    (SyncState.LOADING, SyncState.IDLE): "session lost",
    (SyncState.LIVE, SyncState.IDLE): "session lost",
    (SyncState.SUSPENDED, SyncState.IDLE): "session lost",
}


def transition_trigger(from_state: SyncState, to_state: SyncState) -> str:
    """Describe what causes from_state -> to_state."""
    try:
        return _TRANSITIONS[(from_state, to_state)]
    except KeyError:
        raise ValueError(f"Invalid transition: {from_state.value} -> {to_state.value}") from None
