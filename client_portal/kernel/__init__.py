"""
Kernel Layer

Foundational pieces every other layer builds on:
- Error taxonomy
- Identity (session model, session store, auth service)
- Change events and per-subscription channels

Architectural invariants:
- Session state is owned exclusively by the SessionStore
- Every async result is stamped with the session generation it belongs to
"""

from client_portal.kernel.errors import (
    PortalError,
    ValidationError,
    AuthError,
    DataError,
    SubscriptionError,
)

__all__ = [
    "PortalError",
    "ValidationError",
    "AuthError",
    "DataError",
    "SubscriptionError",
]
