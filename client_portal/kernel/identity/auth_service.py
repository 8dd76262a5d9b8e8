"""
Auth service: drives SessionStore transitions from collaborator auth calls.
"""

from typing import TYPE_CHECKING, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from client_portal.kernel.errors import AuthError, ValidationError
from client_portal.kernel.identity.session import (
    ExternalChange,
    LoginSucceeded,
    LogoutRequested,
    RegisterSucceeded,
    Session,
)
from client_portal.kernel.identity.session_store import SessionStore
from client_portal.logging_config import get_logger
from client_portal.schemas.auth import Credentials, Registration

if TYPE_CHECKING:
    from client_portal.backend.base import PortalBackend
    from client_portal.sync.notices import NoticeBoard

logger = get_logger(__name__)

LOGIN_REQUIRED_MESSAGE = "Email and Password are required"
REGISTER_REQUIRED_MESSAGE = "Email, Password, and confirmation are required and must match"
REGISTER_SUCCESS_MESSAGE = "Registration successful. Please check your email for verification."


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def _as_validation_error(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ())) or None
    return ValidationError(first.get("msg", "Invalid input"), field=field)


class AuthService:
    """
    Service for the portal's authentication flows.
    
    Handles bootstrap, login, registration and logout. Failures from the
    collaborator are posted to the NoticeBoard and re-raised; local input
    problems raise ValidationError without touching the collaborator.
    """
    
    def __init__(
        self,
        backend: "PortalBackend",
        sessions: SessionStore,
        notices: "NoticeBoard",
    ):
        self.backend = backend
        self.sessions = sessions
        self.notices = notices
        self._unregister: Optional[Callable[[], None]] = None
    
    async def bootstrap(self) -> Optional[Session]:
        """
        Adopt the collaborator's current session and follow its changes.
        
        Returns:
            The session in effect after bootstrap, or None
        """
        if self._unregister is None:
            self._unregister = self.backend.on_session_change(self._on_external_change)
        
        try:
            session = await self.backend.get_session()
        except AuthError as e:
            self.notices.report(e)
            session = None
        
        return self.sessions.transition(ExternalChange(session=session))
    
    def close(self) -> None:
        """Stop following collaborator session changes."""
        if self._unregister is not None:
            self._unregister()
            self._unregister = None
    
    async def login(self, email: str, password: str) -> Session:
        """
        Sign in with email and password.
        
        Raises:
            ValidationError: If email or password is blank or malformed
            AuthError: If the collaborator rejects the credentials
        """
        if _blank(email) or _blank(password):
            raise ValidationError(LOGIN_REQUIRED_MESSAGE)
        try:
            credentials = Credentials(email=email.strip(), password=password)
        except PydanticValidationError as e:
            raise _as_validation_error(e) from e
        
        try:
            session = await self.backend.sign_in(credentials.email, credentials.password)
        except AuthError as e:
            self.notices.report(e)
            raise
        
        self.sessions.transition(LoginSucceeded(session=session))
        self.notices.dismiss()
        logger.info("Signed in", extra={"user_id": session.user_id})
        return session
    
    async def register(self, email: str, password: str, confirm_password: str) -> None:
        """
        Create an account. The session stays absent until the user verifies
        their email and signs in.
        
        Raises:
            ValidationError: If any field is blank or the passwords differ
            AuthError: If the collaborator rejects the registration
        """
        if _blank(email) or _blank(password) or _blank(confirm_password) or password != confirm_password:
            raise ValidationError(REGISTER_REQUIRED_MESSAGE)
        try:
            registration = Registration(
                email=email.strip(),
                password=password,
                confirm_password=confirm_password,
            )
        except PydanticValidationError as e:
            raise _as_validation_error(e) from e
        
        try:
            await self.backend.sign_up(registration.email, registration.password)
        except AuthError as e:
            self.notices.report(e)
            raise
        
        self.sessions.transition(RegisterSucceeded())
        self.notices.inform(REGISTER_SUCCESS_MESSAGE)
    
    async def logout(self) -> None:
        """
        Sign out. The local session is dropped even when the collaborator
        call fails; the failure is still surfaced.
        """
        try:
            await self.backend.sign_out()
        except AuthError as e:
            self.notices.report(e)
        finally:
            self.sessions.transition(LogoutRequested())
    
    def _on_external_change(self, session: Optional[Session]) -> None:
        self.sessions.transition(ExternalChange(session=session))
