"""Integration tests for AuthService."""

import pytest

from client_portal.kernel.errors import AuthError, ValidationError
from client_portal.kernel.identity.auth_service import (
    LOGIN_REQUIRED_MESSAGE,
    REGISTER_REQUIRED_MESSAGE,
    REGISTER_SUCCESS_MESSAGE,
)
from client_portal.kernel.identity.session import Session
from client_portal.sync.notices import NoticeKind


class TestLogin:
    """Tests for sign-in."""
    
    @pytest.mark.parametrize("email,password", [("", "x"), ("a@b.com", ""), ("  ", "  ")])
    @pytest.mark.asyncio
    async def test_blank_input_rejected_locally(self, auth, backend, email, password):
        with pytest.raises(ValidationError, match=LOGIN_REQUIRED_MESSAGE):
            await auth.login(email, password)
        
        assert backend.count_calls("sign_in") == 0
    
    @pytest.mark.asyncio
    async def test_malformed_email_rejected(self, auth, backend):
        with pytest.raises(ValidationError) as exc_info:
            await auth.login("not-an-email", "x")
        
        assert exc_info.value.field == "email"
        assert backend.count_calls("sign_in") == 0
    
    @pytest.mark.asyncio
    async def test_wrong_password(self, auth, sessions, notices, credentials):
        email, _ = credentials
        
        with pytest.raises(AuthError):
            await auth.login(email, "wrong")
        
        assert sessions.current() is None
        assert notices.current.message == "Invalid login credentials"
        assert notices.current.category == "auth"
    
    @pytest.mark.asyncio
    async def test_success_installs_session_and_clears_notice(self, auth, sessions, notices, credentials, user_id):
        notices.inform("stale")
        
        session = await auth.login(*credentials)
        
        assert sessions.current() == session
        assert session.user_id == user_id
        assert sessions.generation == 1
        assert notices.current is None


class TestRegister:
    """Tests for account creation."""
    
    @pytest.mark.asyncio
    async def test_mismatched_passwords_rejected(self, auth, backend):
        with pytest.raises(ValidationError, match=REGISTER_REQUIRED_MESSAGE):
            await auth.register("new@b.com", "pw", "other")
        
        assert backend.count_calls("sign_up") == 0
    
    @pytest.mark.asyncio
    async def test_register_requires_verification(self, auth, backend, sessions, notices):
        await auth.register("new@b.com", "pw", "pw")
        
        assert sessions.current() is None
        assert notices.current.kind == NoticeKind.INFO
        assert notices.current.message == REGISTER_SUCCESS_MESSAGE
        
        with pytest.raises(AuthError, match="Email not confirmed"):
            await auth.login("new@b.com", "pw")
        
        backend.verify_email("new@b.com")
        await auth.login("new@b.com", "pw")
        assert sessions.current().email == "new@b.com"
    
    @pytest.mark.asyncio
    async def test_duplicate_registration(self, auth, notices, credentials):
        email, password = credentials
        
        with pytest.raises(AuthError):
            await auth.register(email, password, password)
        
        assert notices.current.message == "User already registered"


class TestLogout:
    """Tests for sign-out."""
    
    @pytest.mark.asyncio
    async def test_logout(self, auth, sessions, credentials):
        await auth.login(*credentials)
        await auth.logout()
        
        assert sessions.current() is None
        assert sessions.generation == 2
    
    @pytest.mark.asyncio
    async def test_logout_failure_still_drops_session(self, auth, backend, sessions, notices, credentials):
        await auth.login(*credentials)
        backend.fail("sign_out", AuthError("network unreachable"))
        
        await auth.logout()
        
        assert sessions.current() is None
        assert notices.current.message == "network unreachable"


class TestBootstrap:
    """Tests for adopting and following the collaborator's session."""
    
    @pytest.mark.asyncio
    async def test_adopts_existing_session(self, auth, backend, sessions):
        existing = Session(access_token="t", user_id="u1")
        backend.change_session(existing)
        
        assert await auth.bootstrap() == existing
        assert sessions.current() == existing
    
    @pytest.mark.asyncio
    async def test_get_session_failure(self, auth, backend, sessions, notices):
        backend.fail("get_session", AuthError("session expired"))
        
        assert await auth.bootstrap() is None
        assert sessions.current() is None
        assert notices.current.category == "auth"
    
    @pytest.mark.asyncio
    async def test_follows_external_changes_until_closed(self, auth, backend, sessions):
        await auth.bootstrap()
        backend.change_session(Session(access_token="t", user_id="u1"))
        assert sessions.current().user_id == "u1"
        
        auth.close()
        backend.change_session(None)
        assert sessions.current().user_id == "u1"
