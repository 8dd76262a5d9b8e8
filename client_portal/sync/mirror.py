"""
CollectionMirror - in-memory mirror of one server collection.
"""

from typing import Any, Callable, Dict, Generic, Iterable, Optional, Tuple, Type, TypeVar

from client_portal.schemas.records import PortalRecord, RecordId

T = TypeVar("T", bound=PortalRecord)


class CollectionMirror(Generic[T]):
    """
    Mapping from record id to record, with an ordered snapshot view.
    
    Without a sort key the snapshot follows insertion order (a record that
    is removed and re-inserted moves to the end; overwriting keeps its slot).
    Reads hand out deep copies: records are frozen, and nested containers
    (asset values, extra columns) are copied so callers cannot reach the
    mirrored state through them.
    """
    
    def __init__(
        self,
        name: str,
        model: Type[T],
        sort_key: Optional[Callable[[T], Any]] = None,
        descending: bool = False,
    ):
        self.name = name
        self.model = model
        self._sort_key = sort_key
        self._descending = descending
        self._records: Dict[RecordId, T] = {}
    
    def replace_all(self, records: Iterable[T]) -> None:
        """Discard prior content and install the new set."""
        fresh: Dict[RecordId, T] = {}
        for record in records:
            fresh[record.id] = record
        self._records = fresh
    
    def upsert(self, record: T) -> None:
        """Insert if absent, else overwrite the whole record."""
        self._records[record.id] = record
    
    def remove(self, record_id: RecordId) -> bool:
        """Remove by id. Returns False (and does nothing) when absent."""
        return self._records.pop(record_id, None) is not None
    
    def clear(self) -> None:
        self._records = {}
    
    def get(self, record_id: RecordId) -> Optional[T]:
        record = self._records.get(record_id)
        return None if record is None else record.model_copy(deep=True)
    
    def snapshot(self) -> Tuple[T, ...]:
        """Return the current ordered view."""
        records = list(self._records.values())
        if self._sort_key is not None:
            # sorted() is stable, so ties keep insertion order
            records = sorted(records, key=self._sort_key, reverse=self._descending)
        return tuple(record.model_copy(deep=True) for record in records)
    
    def ids(self) -> Tuple[RecordId, ...]:
        return tuple(self._records)
    
    def __len__(self) -> int:
        return len(self._records)
    
    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records
    
    def __repr__(self) -> str:
        return f"<CollectionMirror {self.name} size={len(self._records)}>"
