"""
Definitions of the collections the portal mirrors.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple, Type

from client_portal.kernel.events.event_types import ALL_EVENTS, ChangeKind
from client_portal.schemas.records import Asset, FeedbackItem, PortalRecord, Project
from client_portal.sync.mirror import CollectionMirror

PROJECTS = "projects"
ASSETS = "assets"
FEEDBACK = "feedback"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class CollectionSpec:
    """How one collection is loaded, ordered and subscribed to."""
    
    name: str
    model: Type[PortalRecord]
    event_filter: str = ALL_EVENTS
    order_by: Optional[str] = None
    descending: bool = False
    
    def create_mirror(self) -> CollectionMirror:
        if self.order_by is None:
            return CollectionMirror(self.name, self.model)
        field = self.order_by
        return CollectionMirror(
            self.name,
            self.model,
            sort_key=lambda record: getattr(record, field, None) or _EPOCH,
            descending=self.descending,
        )


DEFAULT_COLLECTIONS: Tuple[CollectionSpec, ...] = (
    CollectionSpec(PROJECTS, Project),
    CollectionSpec(ASSETS, Asset),
    # Feedback is append-only from the portal's point of view, newest first
    CollectionSpec(
        FEEDBACK,
        FeedbackItem,
        event_filter=ChangeKind.INSERT.value,
        order_by="created_at",
        descending=True,
    ),
)
