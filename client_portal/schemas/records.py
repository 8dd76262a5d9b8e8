"""
Record schemas for the server-owned collections.

Records are frozen so mirror snapshots can be handed out without copying.
Unknown columns are kept (extra="allow") so new server fields survive a
round trip through the mirror.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

RecordId = Union[int, str]


class PortalRecord(BaseModel):
    """Base record: a collaborator-assigned id and the owning user."""
    
    model_config = ConfigDict(frozen=True, extra="allow")
    
    id: RecordId
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    
    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)
    
    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Project(PortalRecord):
    """A client project."""
    
    name: str
    status: str = "active"


class Asset(PortalRecord):
    """A digital asset; `type` is the user-supplied kind."""
    
    type: str
    value: Dict[str, Any] = {}


class FeedbackItem(PortalRecord):
    """A freeform feedback entry."""
    
    text: str
