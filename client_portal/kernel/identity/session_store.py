"""
Session store: the single owner of the current authentication session.
"""

from typing import Callable, List, Optional

from client_portal.kernel.errors import AuthError
from client_portal.kernel.identity.session import (
    AuthEvent,
    ExternalChange,
    LoginSucceeded,
    LogoutRequested,
    RegisterSucceeded,
    Session,
    SessionState,
)
from client_portal.logging_config import get_logger

logger = get_logger(__name__)

# listener(previous, current, generation)
SessionListener = Callable[[Optional[Session], Optional[Session], int], None]


def _same_identity(a: Optional[Session], b: Optional[Session]) -> bool:
    if a is None or b is None:
        return a is b
    return a.user_id == b.user_id


class SessionStore:
    """
    Holds the current session (or none) and its generation.
    
    The generation is bumped whenever the identity changes (sign-in,
    sign-out, switch of user), never on a token refresh for the same user.
    Listeners are notified synchronously, after the state is updated.
    """
    
    def __init__(self):
        self._session: Optional[Session] = None
        self._generation = 0
        self._listeners: List[SessionListener] = []
    
    def current(self) -> Optional[Session]:
        """Return the active session, or None when absent."""
        return self._session
    
    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self._session is not None else SessionState.ABSENT
    
    @property
    def generation(self) -> int:
        return self._generation
    
    def require_user_id(self) -> str:
        """Return the active user's id or raise AuthError."""
        if self._session is None:
            raise AuthError("Not signed in")
        return self._session.user_id
    
    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)
        
        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        
        return unsubscribe
    
    def transition(self, event: AuthEvent) -> Optional[Session]:
        """
        Apply an authentication event and return the resulting session.
        
        Every event is accepted from every state:
        - LoginSucceeded installs the event's session
        - RegisterSucceeded leaves the session untouched (verification pending)
        - LogoutRequested always yields no session
        - ExternalChange overwrites unconditionally
        """
        previous = self._session
        if isinstance(event, LoginSucceeded):
            current: Optional[Session] = event.session
        elif isinstance(event, RegisterSucceeded):
            current = previous
        elif isinstance(event, LogoutRequested):
            current = None
        elif isinstance(event, ExternalChange):
            current = event.session
        else:
            raise TypeError(f"Unknown auth event: {type(event).__name__}")
        
        if current == previous:
            return current
        
        self._session = current
        if not _same_identity(previous, current):
            self._generation += 1
        
        logger.info(
            "Session transition",
            extra={
                "event": type(event).__name__,
                "state": self.state.value,
                "session_generation": self._generation,
            },
        )
        
        for listener in list(self._listeners):
            listener(previous, current, self._generation)
        
        return current
