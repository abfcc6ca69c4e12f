"""
FastAPI dependencies to avoid circular imports
"""
from typing import Optional

from fastapi import Depends, HTTPException

from .services.session_registry import AdvisorSession, SessionRegistry


session_registry: Optional[SessionRegistry] = None

def set_session_registry(registry: Optional[SessionRegistry]):
    global session_registry
    session_registry = registry

async def get_session_registry() -> SessionRegistry:
    """Dependency to get the session registry instance"""
    if session_registry is None:
        raise HTTPException(
            status_code=503,
            detail="Recommendation service not available"
        )
    return session_registry

async def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry)
) -> AdvisorSession:
    try:
        return registry.get(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
