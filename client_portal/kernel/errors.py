"""
Error taxonomy for the portal core.

ValidationError never reaches the collaborator. AuthError, DataError and
SubscriptionError originate from (or concern) the collaborator and are
surfaced through the NoticeBoard.
"""

from typing import Optional


class PortalError(Exception):
    """Base class for all portal errors."""
    
    category = "portal"
    
    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(PortalError):
    """Missing or mismatched required input, detected locally."""
    
    category = "validation"


class AuthError(PortalError):
    """Login, registration or session failure."""
    
    category = "auth"


class DataError(PortalError):
    """Bulk-load or mutation failure reported by the collaborator."""
    
    category = "data"


class SubscriptionError(PortalError):
    """Change-stream open or delivery failure."""
    
    category = "subscription"
