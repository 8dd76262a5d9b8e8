"""
MutationGateway - create/delete for projects and assets, append for feedback.

Each mutation declares how the mirrors converge afterwards:
- refresh-after-write: the gateway re-runs the bulk-load once the write succeeds
- stream-converges: the live subscription delivers the change; no reload
"""

from enum import Enum
from typing import Any, Dict, Optional

from client_portal.backend.base import PortalBackend
from client_portal.kernel.errors import AuthError, DataError, ValidationError
from client_portal.kernel.identity.session_store import SessionStore
from client_portal.logging_config import get_logger
from client_portal.schemas.records import RecordId
from client_portal.sync.collections import ASSETS, FEEDBACK, PROJECTS
from client_portal.sync.engine import SyncEngine
from client_portal.sync.notices import NoticeBoard

logger = get_logger(__name__)


class ConsistencyPolicy(str, Enum):
    """How mirrors catch up with a successful write."""
    REFRESH_AFTER_WRITE = "refresh-after-write"
    STREAM_CONVERGES = "stream-converges"


MUTATION_POLICIES: Dict[str, ConsistencyPolicy] = {
    "create_project": ConsistencyPolicy.REFRESH_AFTER_WRITE,
    "delete_project": ConsistencyPolicy.REFRESH_AFTER_WRITE,
    "create_asset": ConsistencyPolicy.REFRESH_AFTER_WRITE,
    "delete_asset": ConsistencyPolicy.REFRESH_AFTER_WRITE,
    "submit_feedback": ConsistencyPolicy.STREAM_CONVERGES,
}

DEFAULT_PROJECT_STATUS = "active"


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def _require_id(record_id: Optional[RecordId]) -> RecordId:
    if record_id is None or (isinstance(record_id, str) and not record_id.strip()):
        raise ValidationError("id is required", field="id")
    return record_id


class MutationGateway:
    """
    Uniform write path against the collaborator.
    
    Blank input fails with ValidationError before any network call.
    Collaborator failures are posted to the NoticeBoard, re-raised, and
    leave the mirrors unchanged.
    """
    
    def __init__(
        self,
        backend: PortalBackend,
        engine: SyncEngine,
        sessions: SessionStore,
        notices: NoticeBoard,
    ):
        self.backend = backend
        self.engine = engine
        self.sessions = sessions
        self.notices = notices
    
    async def create_project(self, name: str) -> None:
        """Create a project owned by the active user."""
        name = _require_text(name, "name")
        await self._insert("create_project", PROJECTS, {
            "name": name,
            "status": DEFAULT_PROJECT_STATUS,
        })
    
    async def delete_project(self, project_id: RecordId) -> None:
        """Delete a project by id."""
        await self._delete("delete_project", PROJECTS, _require_id(project_id))
    
    async def create_asset(self, kind: str) -> None:
        """Create an asset of the given kind with an empty value."""
        kind = _require_text(kind, "type")
        await self._insert("create_asset", ASSETS, {"type": kind, "value": {}})
    
    async def delete_asset(self, asset_id: RecordId) -> None:
        """Delete an asset by id."""
        await self._delete("delete_asset", ASSETS, _require_id(asset_id))
    
    async def submit_feedback(self, text: str) -> None:
        """Append a feedback entry; it shows up through the live subscription."""
        # Feedback text is stored verbatim
        if text is None or not text.strip():
            raise ValidationError("text is required", field="text")
        await self._insert("submit_feedback", FEEDBACK, {"text": text})
    
    async def _insert(self, operation: str, collection: str, fields: Dict[str, Any]) -> None:
        user_id = self._user_id()
        record = dict(fields, user_id=user_id)
        try:
            await self.backend.insert(collection, record)
        except DataError as e:
            self.notices.report(e)
            raise
        logger.info("Inserted into %s", collection, extra={"operation": operation})
        await self._converge(operation)
    
    async def _delete(self, operation: str, collection: str, record_id: RecordId) -> None:
        self._user_id()
        try:
            await self.backend.delete_by_id(collection, record_id)
        except DataError as e:
            self.notices.report(e)
            raise
        logger.info("Deleted from %s", collection, extra={"operation": operation, "record_id": str(record_id)})
        await self._converge(operation)
    
    async def _converge(self, operation: str) -> None:
        if MUTATION_POLICIES[operation] == ConsistencyPolicy.REFRESH_AFTER_WRITE:
            await self.engine.refresh()
    
    def _user_id(self) -> str:
        try:
            return self.sessions.require_user_id()
        except AuthError as e:
            self.notices.report(e)
            raise
