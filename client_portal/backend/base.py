"""
Collaborator contract: auth, collection query/mutate and change streams.

Implementations raise AuthError, DataError or SubscriptionError instead of
returning error values. Collections are addressed by logical name
("projects", "assets", "feedback"); mapping to storage tables is the
implementation's business.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from client_portal.kernel.events.channel import EventChannel
from client_portal.kernel.events.event_types import ALL_EVENTS
from client_portal.kernel.identity.session import Session
from client_portal.schemas.records import RecordId

SessionCallback = Callable[[Optional[Session]], None]


class PortalBackend(ABC):
    """External data/auth/realtime backend consumed by the portal core."""
    
    # Auth
    
    @abstractmethod
    async def get_session(self) -> Optional[Session]:
        """Return the collaborator's current session, if any."""
    
    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """Sign in with a password."""
    
    @abstractmethod
    async def sign_up(self, email: str, password: str) -> None:
        """Create an account; verification is delivered out of band."""
    
    @abstractmethod
    async def sign_out(self) -> None:
        """End the collaborator-side session."""
    
    @abstractmethod
    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Register for external session changes (refresh, revocation).
        
        The callback fires at most once per actual change. Returns a
        callable that unregisters it.
        """
    
    # Collections
    
    @abstractmethod
    async def select_all(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        """Fetch every visible record of a collection."""
    
    @abstractmethod
    async def insert(self, collection: str, record: Dict[str, Any]) -> None:
        """Insert a record; the collaborator assigns its id."""
    
    @abstractmethod
    async def delete_by_id(self, collection: str, record_id: RecordId) -> None:
        """Delete a record by id."""
    
    # Change streams
    
    @abstractmethod
    async def subscribe(self, collection: str, event_filter: str = ALL_EVENTS) -> EventChannel:
        """
        Open a change subscription.
        
        Events are delivered at least once, in order within the returned
        channel, until unsubscribe() is called.
        """
    
    @abstractmethod
    async def unsubscribe(self, channel: EventChannel) -> None:
        """Close a subscription opened by subscribe()."""
    
    async def aclose(self) -> None:
        """Release transport resources."""
