"""
Pytest fixtures for client portal tests.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from client_portal.backend.memory import InMemoryBackend
from client_portal.config import Settings
from client_portal.gateway.mutations import MutationGateway
from client_portal.kernel.identity.auth_service import AuthService
from client_portal.kernel.identity.session_store import SessionStore
from client_portal.sync.engine import SyncEngine
from client_portal.sync.notices import NoticeBoard


TEST_EMAIL = "a@b.com"
TEST_PASSWORD = "x"


@pytest.fixture
def settings() -> Settings:
    """Settings with the in-memory backend and no backoff delay."""
    return Settings(
        _env_file=None,
        backend="memory",
        sync_backoff_base_seconds=0.0,
        sync_backoff_max_seconds=0.0,
    )


@pytest.fixture
def backend() -> InMemoryBackend:
    """Create an empty in-memory collaborator."""
    return InMemoryBackend()


@pytest.fixture
def user_id(backend: InMemoryBackend) -> str:
    """Create a verified test account and return its id."""
    return backend.add_user(TEST_EMAIL, TEST_PASSWORD)


@pytest.fixture
def sessions() -> SessionStore:
    return SessionStore()


@pytest.fixture
def notices() -> NoticeBoard:
    return NoticeBoard()


@pytest_asyncio.fixture
async def engine(
    backend: InMemoryBackend,
    sessions: SessionStore,
    notices: NoticeBoard,
    settings: Settings,
) -> AsyncGenerator[SyncEngine, None]:
    """Create a started sync engine; stopped after the test."""
    engine = SyncEngine(backend, sessions, notices, settings)
    engine.start()
    yield engine
    await engine.stop()


@pytest.fixture
def auth(backend: InMemoryBackend, sessions: SessionStore, notices: NoticeBoard) -> AuthService:
    return AuthService(backend, sessions, notices)


@pytest.fixture
def gateway(
    backend: InMemoryBackend,
    engine: SyncEngine,
    sessions: SessionStore,
    notices: NoticeBoard,
) -> MutationGateway:
    return MutationGateway(backend, engine, sessions, notices)


@pytest_asyncio.fixture
async def live(engine: SyncEngine, auth: AuthService, user_id: str) -> AsyncGenerator[SyncEngine, None]:
    """Sign the test user in and wait until the engine is live."""
    await auth.bootstrap()
    await auth.login(TEST_EMAIL, TEST_PASSWORD)
    await engine.drain()
    yield engine
    auth.close()


@pytest.fixture
def project_row(user_id: str):
    """Factory for project rows owned by the test user."""
    def make(record_id, name: str = "P1", status: str = "active") -> dict:
        return {"id": record_id, "name": name, "status": status, "user_id": user_id}
    return make


@pytest.fixture
def credentials(user_id: str) -> tuple:
    """Email and password of the verified test account."""
    return TEST_EMAIL, TEST_PASSWORD


@pytest.fixture
def login(auth: AuthService, credentials: tuple):
    """Sign the test user in without waiting for the engine."""
    async def sign_in():
        return await auth.login(*credentials)
    return sign_in
