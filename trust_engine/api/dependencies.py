"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting the engine and
the calling actor into routes.
"""

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from trust_engine.domain.engine import TrustEngine


def get_engine(request: Request) -> TrustEngine:
    """
    Get the engine from app state.

    The engine is built during app lifespan startup and stored in app.state.
    """
    return request.app.state.engine


# Actor identity header; authentication happens upstream of this service.
actor_header = APIKeyHeader(name="X-Actor-Id", description="Identifier of the calling actor")


def get_actor_id(actor_id: str = Depends(actor_header)) -> str:
    """
    Extract the calling actor from the X-Actor-Id header.

    FastAPI's APIKeyHeader rejects requests without the header.
    """
    return actor_id.strip()
