"""
Change events and subscription channels.
"""

from client_portal.kernel.events.event_types import ALL_EVENTS, ChangeEvent, ChangeKind, matches_filter
from client_portal.kernel.events.channel import EventChannel

__all__ = [
    "ALL_EVENTS",
    "ChangeEvent",
    "ChangeKind",
    "matches_filter",
    "EventChannel",
]
