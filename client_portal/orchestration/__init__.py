"""
Orchestration - sync engine lifecycle states and transitions.
"""

from client_portal.orchestration.state_machine import SyncState, transition_trigger

__all__ = ["SyncState", "transition_trigger"]
