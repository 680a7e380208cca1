"""
API v1 package.

Contains versioned API routes for the guild verification API.
"""

from gatekeeper.api.v1.routes import router

__all__ = ["router"]
