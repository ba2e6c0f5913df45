"""Tracking endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from ...schemas.tracking import AttachRequest, RouteUpdateModel, TrackingSnapshot
from ...services.tracking.session import TrackingRegistry, TrackingSession

router = APIRouter(prefix="/tracking", tags=["tracking"])

logger = logging.getLogger(__name__)


def _registry(request: Request) -> TrackingRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Position source is not configured.",
        )
    return registry


def _session(request: Request, entity_id: str) -> TrackingSession:
    try:
        return _registry(request).get(entity_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc.args[0])) from exc


@router.post("/{entity_id}", response_model=TrackingSnapshot, status_code=status.HTTP_201_CREATED)
async def attach(entity_id: str, request: Request, payload: AttachRequest | None = None) -> TrackingSnapshot:
    """Start tracking an entity, optionally with its current route."""
    registry = _registry(request)
    route = payload.route.to_domain() if payload and payload.route else None
    try:
        session = await registry.attach(entity_id, route)
    except Exception as exc:
        logger.exception(f"Error attaching {entity_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to start tracking: {str(exc)}",
        ) from exc
    return session.snapshot()


@router.delete("/{entity_id}", status_code=status.HTTP_200_OK)
async def detach(entity_id: str, request: Request) -> dict:
    """Stop tracking an entity and release its channels."""
    if not await _registry(request).detach(entity_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Entity '{entity_id}' is not being tracked",
        )
    return {"success": True, "message": f"Tracking stopped for {entity_id}"}


@router.get("/{entity_id}", response_model=TrackingSnapshot, status_code=status.HTTP_200_OK)
async def snapshot(entity_id: str, request: Request) -> TrackingSnapshot:
    return _session(request, entity_id).snapshot()


@router.put("/{entity_id}/route", response_model=TrackingSnapshot, status_code=status.HTTP_200_OK)
async def update_route(entity_id: str, payload: RouteUpdateModel, request: Request) -> TrackingSnapshot:
    """Supply a newly computed route, e.g. after a recalculation was requested."""
    session = _session(request, entity_id)
    session.apply_route(payload.to_domain())
    return session.snapshot()


@router.post("/{entity_id}/refresh", response_model=TrackingSnapshot, status_code=status.HTTP_200_OK)
async def refresh(entity_id: str, request: Request) -> TrackingSnapshot:
    """Fetch the position immediately, e.g. when the client returns to the foreground."""
    session = _session(request, entity_id)
    await session.feed.on_foreground()
    return session.snapshot()
