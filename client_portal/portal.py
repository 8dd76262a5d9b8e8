"""
Client portal facade.

Wires the session store, sync engine, auth service and mutation gateway
around one collaborator. The view layer reads snapshots and the current
notice from here and calls the auth/mutation operations.

Usage:
    async with ClientPortal.from_settings(get_settings()) as portal:
        await portal.auth.login("a@b.com", "secret")
        for project in portal.projects:
            ...
"""

from typing import Optional, Tuple

from client_portal.backend import PortalBackend, create_backend
from client_portal.config import Settings, get_settings
from client_portal.gateway.mutations import MutationGateway
from client_portal.kernel.identity.auth_service import AuthService
from client_portal.kernel.identity.session_store import SessionStore
from client_portal.logging_config import configure_logging, get_logger
from client_portal.orchestration.state_machine import SyncState
from client_portal.schemas.records import Asset, FeedbackItem, Project
from client_portal.sync.collections import ASSETS, FEEDBACK, PROJECTS
from client_portal.sync.engine import SyncEngine
from client_portal.sync.notices import Notice, NoticeBoard

logger = get_logger(__name__)


class ClientPortal:
    """Composition root for the portal core."""
    
    def __init__(self, backend: PortalBackend, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.backend = backend
        self.sessions = SessionStore()
        self.notices = NoticeBoard()
        self.engine = SyncEngine(backend, self.sessions, self.notices, self.settings)
        self.auth = AuthService(backend, self.sessions, self.notices)
        self.mutations = MutationGateway(backend, self.engine, self.sessions, self.notices)
        self._started = False
    
    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ClientPortal":
        settings = settings or get_settings()
        configure_logging(
            log_level=settings.log_level,
            environment=settings.environment,
            debug=settings.debug,
        )
        return cls(create_backend(settings), settings)
    
    async def start(self) -> None:
        """Start following the session and adopt the collaborator's current one."""
        if self._started:
            return
        logger.info("Starting %s v%s", self.settings.project_name, self.settings.version)
        self.engine.start()
        await self.auth.bootstrap()
        self._started = True
    
    async def close(self) -> None:
        """Tear down subscriptions and release the collaborator."""
        self.auth.close()
        await self.engine.stop()
        await self.backend.aclose()
        self._started = False
        logger.info("Portal closed")
    
    async def __aenter__(self) -> "ClientPortal":
        await self.start()
        return self
    
    async def __aexit__(self, *exc_info) -> None:
        await self.close()
    
    # View state
    
    @property
    def signed_in(self) -> bool:
        return self.sessions.current() is not None
    
    @property
    def loading(self) -> bool:
        return self.engine.state == SyncState.LOADING
    
    @property
    def notice(self) -> Optional[Notice]:
        return self.notices.current
    
    @property
    def subscription_level(self) -> Optional[str]:
        session = self.sessions.current()
        if session is None:
            return None
        return session.user_metadata.get("subscription_level") or self.settings.default_subscription_level
    
    @property
    def projects(self) -> Tuple[Project, ...]:
        return self.engine.snapshot(PROJECTS)
    
    @property
    def assets(self) -> Tuple[Asset, ...]:
        return self.engine.snapshot(ASSETS)
    
    @property
    def feedback(self) -> Tuple[FeedbackItem, ...]:
        return self.engine.snapshot(FEEDBACK)
