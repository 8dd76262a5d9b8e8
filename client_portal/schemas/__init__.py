"""
Pydantic schemas for records and auth requests.
"""

from client_portal.schemas.records import RecordId, PortalRecord, Project, Asset, FeedbackItem
from client_portal.schemas.auth import Credentials, Registration

__all__ = [
    "RecordId",
    "PortalRecord",
    "Project",
    "Asset",
    "FeedbackItem",
    "Credentials",
    "Registration",
]
