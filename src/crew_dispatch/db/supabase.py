"""Supabase client for the dispatch backend."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client | None:
    """Return the shared Supabase client, or ``None`` when credentials are missing.

    Creating the client does not open a connection, so later queries can
    still fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logger.warning("Supabase credentials not configured (missing DISPATCH_SUPABASE_URL or DISPATCH_SUPABASE_KEY)")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception:
        logger.exception("Failed to create Supabase client for %s", settings.supabase_url)
        return None
