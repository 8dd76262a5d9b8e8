"""
Collaborator implementations.
"""

from client_portal.backend.base import PortalBackend
from client_portal.backend.memory import InMemoryBackend
from client_portal.backend.supabase import SupabaseBackend
from client_portal.config import Settings


def create_backend(settings: Settings) -> PortalBackend:
    """Build the collaborator selected by settings.backend."""
    if settings.backend == "memory":
        return InMemoryBackend()
    if settings.backend == "supabase":
        return SupabaseBackend.from_settings(settings)
    raise ValueError(f"Unknown backend: {settings.backend}")


__all__ = ["PortalBackend", "InMemoryBackend", "SupabaseBackend", "create_backend"]
