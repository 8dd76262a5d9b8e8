"""Unit tests for ChangeReconciler."""

import pytest

from client_portal.kernel.errors import SubscriptionError
from client_portal.kernel.events.event_types import ChangeEvent
from client_portal.schemas.records import Asset, Project
from client_portal.sync.mirror import CollectionMirror
from client_portal.sync.reconciler import ChangeReconciler


@pytest.fixture
def mirrors():
    return {
        "projects": CollectionMirror("projects", Project),
        "assets": CollectionMirror("assets", Asset),
    }


@pytest.fixture
def reconciler(mirrors):
    reconciler = ChangeReconciler(mirrors)
    reconciler.owner_id = "u1"
    return reconciler


def _row(record_id, name="P", user_id="u1"):
    return {"id": record_id, "name": name, "status": "active", "user_id": user_id}


class TestChangeReconciler:
    """Tests for event application."""
    
    def test_duplicate_insert_yields_one_record(self, reconciler, mirrors):
        """Applying the same insert twice equals applying it once."""
        event = ChangeEvent.insert("projects", _row(1, "Dup"))
        reconciler.apply(event)
        once = mirrors["projects"].snapshot()
        reconciler.apply(event)
        
        assert mirrors["projects"].snapshot() == once
        assert len(mirrors["projects"]) == 1
        assert mirrors["projects"].get(1).name == "Dup"
    
    def test_duplicate_delete_is_idempotent(self, reconciler, mirrors):
        mirrors["projects"].upsert(Project(**_row(1)))
        event = ChangeEvent.delete("projects", 1)
        
        assert reconciler.apply(event) is True
        assert reconciler.apply(event) is True
        assert mirrors["projects"].snapshot() == ()
    
    def test_update_overwrites_record(self, reconciler, mirrors):
        reconciler.apply(ChangeEvent.insert("projects", _row(1, "Before")))
        reconciler.apply(ChangeEvent.update("projects", _row(1, "After")))
        
        assert mirrors["projects"].get(1).name == "After"
    
    def test_unknown_collection_is_ignored(self, reconciler, mirrors):
        """Events for collections without a mirror are dropped silently."""
        applied = reconciler.apply(ChangeEvent.insert("invoices", {"id": 1}))
        
        assert applied is False
        assert all(len(m) == 0 for m in mirrors.values())
    
    def test_foreign_record_is_dropped(self, reconciler, mirrors):
        """Records owned by another user never enter the mirror."""
        applied = reconciler.apply(ChangeEvent.insert("projects", _row(1, user_id="u2")))
        
        assert applied is False
        assert 1 not in mirrors["projects"]
    
    def test_malformed_record_raises_subscription_error(self, reconciler):
        with pytest.raises(SubscriptionError):
            reconciler.apply(ChangeEvent.insert("projects", {"id": 1}))
    
    def test_delivery_order_matches_fresh_load(self, reconciler, mirrors):
        """Applying a stream in order equals a fresh load of the final state."""
        events = [
            ChangeEvent.insert("projects", _row(1, "A")),
            ChangeEvent.insert("projects", _row(2, "B")),
            ChangeEvent.update("projects", _row(1, "A2")),
            ChangeEvent.delete("projects", 2),
            ChangeEvent.insert("projects", _row(3, "C")),
            ChangeEvent.insert("projects", _row(3, "C")),
        ]
        for event in events:
            reconciler.apply(event)
        
        expected = CollectionMirror("projects", Project)
        expected.replace_all([Project(**_row(1, "A2")), Project(**_row(3, "C"))])
        assert mirrors["projects"].snapshot() == expected.snapshot()


class TestChangeEvent:
    """Tests for ChangeEvent validation."""
    
    def test_delete_requires_id(self):
        with pytest.raises(ValueError):
            ChangeEvent(collection="projects", kind="delete")
    
    def test_insert_requires_record(self):
        with pytest.raises(ValueError):
            ChangeEvent(collection="projects", kind="insert", record_id=1)
