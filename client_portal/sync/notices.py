"""
NoticeBoard - the single user-visible notification slot.

Latest notice wins; earlier ones are replaced, never queued.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from client_portal.kernel.errors import PortalError
from client_portal.logging_config import get_logger

logger = get_logger(__name__)


class NoticeKind(str, Enum):
    """Severity of a notice."""
    ERROR = "error"
    INFO = "info"


class Notice(BaseModel):
    """A message shown to the user."""
    
    kind: NoticeKind
    message: str
    category: Optional[str] = None
    posted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


NoticeListener = Callable[[Optional[Notice]], None]


class NoticeBoard:
    """Holds the current notice and notifies listeners on every change."""
    
    def __init__(self):
        self._current: Optional[Notice] = None
        self._listeners: List[NoticeListener] = []
    
    @property
    def current(self) -> Optional[Notice]:
        return self._current
    
    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        self._listeners.append(listener)
        
        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        
        return unsubscribe
    
    def report(self, error: PortalError) -> Notice:
        """Post an error notice, replacing whatever was shown."""
        logger.warning(
            "Surfacing %s error: %s", error.category, error.message,
            extra={"category": error.category},
        )
        return self._post(Notice(kind=NoticeKind.ERROR, message=error.message, category=error.category))
    
    def inform(self, message: str) -> Notice:
        """Post an informational notice."""
        return self._post(Notice(kind=NoticeKind.INFO, message=message))
    
    def dismiss(self) -> None:
        if self._current is not None:
            self._current = None
            self._notify()
    
    def _post(self, notice: Notice) -> Notice:
        self._current = notice
        self._notify()
        return notice
    
    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._current)
