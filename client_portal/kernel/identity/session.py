"""
Session model and authentication transition events.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    """Authentication state tracked by the SessionStore."""
    ABSENT = "absent"
    ACTIVE = "active"


class Session(BaseModel):
    """An authenticated identity context issued by the collaborator."""
    
    model_config = ConfigDict(frozen=True)
    
    access_token: str
    user_id: str
    email: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # Seconds until access token expires
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class LoginSucceeded(BaseModel):
    """Local sign-in returned a session."""
    
    session: Session


class RegisterSucceeded(BaseModel):
    """Sign-up accepted; the account still needs email verification."""


class LogoutRequested(BaseModel):
    """The user asked to sign out."""


class ExternalChange(BaseModel):
    """The collaborator reported a session change (refresh, revocation, ...)."""
    
    session: Optional[Session] = None


AuthEvent = Union[LoginSucceeded, RegisterSucceeded, LogoutRequested, ExternalChange]
