"""
Identity Core - Session tracking and authentication flows.
"""

from client_portal.kernel.identity.session import (
    AuthEvent,
    ExternalChange,
    LoginSucceeded,
    LogoutRequested,
    RegisterSucceeded,
    Session,
    SessionState,
)
from client_portal.kernel.identity.session_store import SessionStore
from client_portal.kernel.identity.auth_service import AuthService

__all__ = [
    "AuthEvent",
    "ExternalChange",
    "LoginSucceeded",
    "LogoutRequested",
    "RegisterSucceeded",
    "Session",
    "SessionState",
    "SessionStore",
    "AuthService",
]
