"""
Supabase client for the ledger store and settings lookups.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class SupabaseConnectionError(Exception):
    """The client could not be created or the first query failed."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Shared Supabase client, created on first use.

    Uses the service role key when present: reconciliation writes tally
    sheet columns and inserts reports, which RLS denies to the anon key.
    Worker threads share this client; call
    get_supabase_client.cache_clear() to force a new one.

    Raises:
        SupabaseConnectionError: If the settings table cannot be read
    """
    service_role = bool(settings.supabase_service_key)
    logger.info(
        "connecting_to_supabase",
        url=settings.supabase_url[:30] + "...",
        service_role=service_role,
    )

    try:
        client = create_client(
            settings.supabase_url,
            settings.supabase_service_key or settings.supabase_key,
        )
        client.table("settings").select("key").limit(1).execute()
    except Exception as e:
        logger.error("supabase_connection_failed", error=str(e), error_type=type(e).__name__)
        raise SupabaseConnectionError(f"Failed to connect to Supabase: {e}") from e

    logger.info("supabase_connected", service_role=service_role)
    return client


def check_connection() -> dict:
    """Row counts of the tally and report tables, or the failure."""
    try:
        client = get_supabase_client()
        tallies = client.table("tally_sheets").select("id", count="exact").limit(1).execute()
        reports = client.table("reconciliation_reports").select("id", count="exact").limit(1).execute()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "tally_sheets_count": tallies.count,
        "reconciliation_reports_count": reports.count,
    }
