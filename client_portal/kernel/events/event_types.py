"""
Change event definitions using Pydantic for validation.

A ChangeEvent is a tagged variant over Insert(record), Update(record) and
Delete(id), addressed to a logical collection name.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from client_portal.schemas.records import RecordId


class ChangeKind(str, Enum):
    """Kind of change delivered on a subscription."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


# Event filters accepted by subscribe(); "*" matches every kind
ALL_EVENTS = "*"


class ChangeEvent(BaseModel):
    """A single change delivered by the collaborator's change stream."""
    
    model_config = ConfigDict(frozen=True)
    
    collection: str
    kind: ChangeKind
    record: Optional[Dict[str, Any]] = None
    record_id: Optional[RecordId] = None
    
    @model_validator(mode="after")
    def check_payload(self) -> "ChangeEvent":
        if self.kind == ChangeKind.DELETE:
            if self.record_id is None:
                raise ValueError("delete events require record_id")
        elif self.record is None:
            raise ValueError(f"{self.kind.value} events require a record")
        return self
    
    @classmethod
    def insert(cls, collection: str, record: Dict[str, Any]) -> "ChangeEvent":
        return cls(collection=collection, kind=ChangeKind.INSERT, record=record)
    
    @classmethod
    def update(cls, collection: str, record: Dict[str, Any]) -> "ChangeEvent":
        return cls(collection=collection, kind=ChangeKind.UPDATE, record=record)
    
    @classmethod
    def delete(cls, collection: str, record_id: RecordId) -> "ChangeEvent":
        return cls(collection=collection, kind=ChangeKind.DELETE, record_id=record_id)


def matches_filter(event_filter: str, kind: ChangeKind) -> bool:
    """Check whether a subscription filter ("*", "insert", ...) admits kind."""
    return event_filter == ALL_EVENTS or event_filter.lower() == kind.value
