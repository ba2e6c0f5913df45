"""Supabase client for the tracking backend."""

import logging

from supabase import AsyncClient, acreate_client

from ..config import settings


async def create_supabase_client() -> AsyncClient | None:
    """Create an async Supabase client.

    Returns:
        AsyncClient instance if configured, None otherwise.
        Note: This does not test the connection - actual queries may fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        return await acreate_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None
