"""Unit tests for CollectionMirror."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from client_portal.schemas.records import Asset, FeedbackItem, Project
from client_portal.sync.collections import DEFAULT_COLLECTIONS, FEEDBACK
from client_portal.sync.mirror import CollectionMirror


def _project(record_id, name="P", **extra):
    return Project(id=record_id, name=name, user_id="u1", **extra)


class TestCollectionMirror:
    """Tests for bulk-load, point updates and snapshots."""
    
    def test_replace_all_discards_prior_content(self):
        """replace_all installs exactly the new set."""
        mirror = CollectionMirror("projects", Project)
        mirror.replace_all([_project(1), _project(2)])
        mirror.replace_all([_project(3)])
        
        assert mirror.ids() == (3,)
        assert len(mirror) == 1
    
    def test_upsert_inserts_then_overwrites(self):
        """upsert keys by id; overwriting keeps the record's position."""
        mirror = CollectionMirror("projects", Project)
        mirror.replace_all([_project(1, "A"), _project(2, "B")])
        mirror.upsert(_project(1, "A2"))
        mirror.upsert(_project(3, "C"))
        
        assert [p.name for p in mirror.snapshot()] == ["A2", "B", "C"]
    
    def test_remove_is_idempotent(self):
        """Removing an absent id is a no-op."""
        mirror = CollectionMirror("projects", Project)
        mirror.upsert(_project(1))
        
        assert mirror.remove(1) is True
        assert mirror.remove(1) is False
        assert mirror.snapshot() == ()
    
    def test_remove_then_upsert_does_not_resurrect_fields(self):
        """Re-inserting after a remove takes only the new record's fields."""
        mirror = CollectionMirror("projects", Project)
        mirror.upsert(_project(1, "Old", status="archived", budget=100))
        mirror.remove(1)
        mirror.upsert(_project(1, "New"))
        
        record = mirror.get(1)
        assert record.name == "New"
        assert record.status == "active"
        assert record.model_extra == {}
    
    def test_snapshot_cannot_mutate_mirror(self):
        """Snapshots are tuples of frozen records."""
        mirror = CollectionMirror("projects", Project)
        mirror.upsert(_project(1, "A", tags=["web"]))
        snapshot = mirror.snapshot()
        
        assert isinstance(snapshot, tuple)
        with pytest.raises(PydanticValidationError):
            snapshot[0].name = "changed"
        snapshot[0].tags.append("leaked")
        assert mirror.get(1).name == "A"
        assert mirror.get(1).tags == ["web"]
    
    def test_nested_values_are_copied(self):
        """Mutating an asset value through a read leaves the mirror intact."""
        mirror = CollectionMirror("assets", Asset)
        mirror.upsert(Asset(id=1, type="image", user_id="u1"))
        
        mirror.snapshot()[0].value["injected"] = True
        mirror.get(1).value["injected"] = True
        
        assert mirror.get(1).value == {}
    
    def test_clear(self):
        mirror = CollectionMirror("projects", Project)
        mirror.replace_all([_project(1), _project(2)])
        mirror.clear()
        
        assert len(mirror) == 0
        assert 1 not in mirror


class TestFeedbackOrdering:
    """Feedback snapshots are newest first."""
    
    def test_feedback_sorted_by_created_at_descending(self):
        spec = next(s for s in DEFAULT_COLLECTIONS if s.name == FEEDBACK)
        mirror = spec.create_mirror()
        now = datetime.now(timezone.utc)
        mirror.replace_all([
            FeedbackItem(id=1, text="old", created_at=now - timedelta(hours=2)),
            FeedbackItem(id=2, text="new", created_at=now),
        ])
        mirror.upsert(FeedbackItem(id=3, text="middle", created_at=now - timedelta(hours=1)))
        
        assert [f.text for f in mirror.snapshot()] == ["new", "middle", "old"]
    
    def test_naive_timestamps_are_treated_as_utc(self):
        """Naive and aware timestamps can be ordered together."""
        spec = next(s for s in DEFAULT_COLLECTIONS if s.name == FEEDBACK)
        mirror = spec.create_mirror()
        mirror.upsert(FeedbackItem(id=1, text="naive", created_at=datetime(2024, 1, 1, 12, 0)))
        mirror.upsert(FeedbackItem(id=2, text="aware", created_at=datetime(2024, 1, 2, tzinfo=timezone.utc)))
        mirror.upsert(FeedbackItem(id=3, text="undated"))
        
        assert [f.text for f in mirror.snapshot()] == ["aware", "naive", "undated"]
