"""Integration tests for the ClientPortal facade."""

import pytest

from client_portal.backend.memory import InMemoryBackend
from client_portal.orchestration.state_machine import SyncState
from client_portal.portal import ClientPortal
from client_portal.sync.collections import PROJECTS


class TestClientPortal:
    """End-to-end flows through the facade."""
    
    @pytest.mark.asyncio
    async def test_sign_in_and_mirror(self, settings):
        backend = InMemoryBackend()
        user_id = backend.add_user("a@b.com", "x")
        backend.seed(PROJECTS, {"id": 1, "name": "Website", "user_id": user_id})
        
        async with ClientPortal(backend, settings) as portal:
            assert not portal.signed_in
            assert portal.subscription_level is None
            
            await portal.auth.login("a@b.com", "x")
            await portal.engine.drain()
            
            assert portal.signed_in
            assert not portal.loading
            assert portal.engine.state == SyncState.LIVE
            assert portal.subscription_level == "Premium"
            assert [p.name for p in portal.projects] == ["Website"]
            assert portal.assets == ()
            assert portal.feedback == ()
            
            await portal.mutations.submit_feedback("Great work")
            await portal.engine.drain()
            assert [f.text for f in portal.feedback] == ["Great work"]
        
        assert backend.open_channels() == []
        assert portal.projects == ()
    
    @pytest.mark.asyncio
    async def test_subscription_level_from_metadata(self, settings):
        backend = InMemoryBackend()
        backend.add_user("a@b.com", "x", subscription_level="Basic")
        
        async with ClientPortal(backend, settings) as portal:
            await portal.auth.login("a@b.com", "x")
            
            assert portal.subscription_level == "Basic"
    
    @pytest.mark.asyncio
    async def test_notice_exposed(self, settings):
        backend = InMemoryBackend()
        
        async with ClientPortal(backend, settings) as portal:
            await portal.auth.register("new@b.com", "pw", "pw")
            
            assert portal.notice.message.startswith("Registration successful")
    
    @pytest.mark.asyncio
    async def test_from_settings_builds_memory_backend(self, settings):
        portal = ClientPortal.from_settings(settings)
        
        assert isinstance(portal.backend, InMemoryBackend)
        await portal.close()
