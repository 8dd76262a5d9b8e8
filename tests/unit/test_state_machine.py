"""Unit tests for the sync lifecycle state machine."""

import pytest

from client_portal.orchestration.state_machine import SyncState, transition_trigger


class TestSyncStateMachine:
    """Tests for the transition table."""
    
    @pytest.mark.parametrize("from_state,to_state,trigger", [
        (SyncState.IDLE, SyncState.LOADING, "session acquired"),
        (SyncState.LOADING, SyncState.LIVE, "all bulk-loads joined"),
        (SyncState.LOADING, SyncState.LOADING, "retry"),
        (SyncState.LOADING, SyncState.SUSPENDED, "retry budget exhausted"),
        (SyncState.LIVE, SyncState.LOADING, "refresh requested"),
        (SyncState.SUSPENDED, SyncState.LOADING, "refresh requested"),
    ])
    def test_lifecycle_transitions_allowed(self, from_state, to_state, trigger):
        assert transition_trigger(from_state, to_state) == trigger
    
    @pytest.mark.parametrize("from_state", list(SyncState))
    def test_session_loss_from_any_state(self, from_state):
        """Every state can fall back to IDLE."""
        assert transition_trigger(from_state, SyncState.IDLE) == "session lost"
    
    @pytest.mark.parametrize("from_state,to_state", [
        (SyncState.IDLE, SyncState.LIVE),
        (SyncState.IDLE, SyncState.SUSPENDED),
        (SyncState.SUSPENDED, SyncState.LIVE),
        (SyncState.LIVE, SyncState.LIVE),
    ])
    def test_invalid_transitions_rejected(self, from_state, to_state):
        with pytest.raises(ValueError, match="Invalid transition"):
            transition_trigger(from_state, to_state)
