"""
ChangeReconciler - applies change events to collection mirrors.

Insert and Update become upsert, Delete becomes remove. Both are
idempotent, so duplicate delivery from the transport cannot corrupt a
mirror. Events for unknown collections are ignored.
"""

from typing import Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from client_portal.kernel.errors import SubscriptionError
from client_portal.kernel.events.event_types import ChangeEvent, ChangeKind
from client_portal.logging_config import get_logger
from client_portal.sync.mirror import CollectionMirror

logger = get_logger(__name__)


class ChangeReconciler:
    """Translate one ChangeEvent into exactly one mirror call."""
    
    def __init__(self, mirrors: Mapping[str, CollectionMirror]):
        self._mirrors = mirrors
        self.owner_id: Optional[str] = None
    
    def apply(self, event: ChangeEvent) -> bool:
        """
        Apply an event to its mirror.
        
        Returns:
            True if a mirror was touched, False if the event was ignored
            
        Raises:
            SubscriptionError: If the event's record does not fit the
                collection's schema
        """
        mirror = self._mirrors.get(event.collection)
        if mirror is None:
            logger.debug("Ignoring event for unknown collection %s", event.collection)
            return False
        
        if event.kind == ChangeKind.DELETE:
            mirror.remove(event.record_id)
            return True
        
        try:
            record = mirror.model.model_validate(event.record)
        except PydanticValidationError as e:
            raise SubscriptionError(
                f"Malformed {event.kind.value} event for {event.collection}: {e.error_count()} error(s)"
            ) from e
        
        # Records of another user never enter the mirror, even from a stale stream
        if self.owner_id is not None and record.user_id is not None and record.user_id != self.owner_id:
            logger.warning(
                "Dropping foreign record",
                extra={"collection": event.collection, "record_id": str(record.id)},
            )
            return False
        
        mirror.upsert(record)
        return True
