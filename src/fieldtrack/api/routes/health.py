"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/position-source", status_code=status.HTTP_200_OK)
def health_position_source(request: Request) -> dict:
    """Report whether live positions can be read and how many entities are tracked."""
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        return {
            "configured": False,
            "tracked_entities": 0,
            "message": "Position source not configured. Set FIELDTRACK_SUPABASE_URL and FIELDTRACK_SUPABASE_KEY.",
        }
    return {"configured": True, "tracked_entities": len(registry)}
