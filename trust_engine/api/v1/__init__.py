"""
API v1 package.

Contains versioned API routes for the Trust & Verification Engine.
"""

from trust_engine.api.v1.routes import router

__all__ = ["router"]
