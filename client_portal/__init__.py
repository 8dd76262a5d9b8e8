"""
Client portal core: session tracking, collection mirrors kept live from a
change stream, and a mutation gateway with explicit consistency policies.
"""

from client_portal.portal import ClientPortal

__version__ = "1.0.0"

__all__ = ["ClientPortal", "__version__"]
