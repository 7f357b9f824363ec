"""
Supabase client for the import services.

The lookup, dedup, shipment-creation and template services share one
cached client. Failures surface as the app's DatabaseError so routes
report them like any other database failure.
"""

from functools import lru_cache

from supabase import Client, create_client
import structlog

from config.settings import settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

# Catalogs every import resolves against
HEALTH_TABLES = ("departamentos", "localidades")


@lru_cache()
def get_supabase_client() -> Client:
    """
    Shared Supabase client, created on first use.

    Raises:
        DatabaseError: If the client cannot be created (bad URL or key)
    """
    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(
            "supabase_client_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError("connect", str(e)) from e

    # Only the host part; the key never reaches the logs
    logger.info("supabase_client_ready", url=settings.supabase_url.split("//")[-1].split("/")[0])
    return client


def check_connection() -> dict:
    """
    Count the reference catalogs to prove the database is reachable.

    Returns:
        {"status": "healthy", "departments_count": ..., "localities_count": ...}
        or {"status": "unhealthy", "error": ...}
    """
    try:
        client = get_supabase_client()
        counts = {
            table: client.table(table).select("id", count="exact").execute().count
            for table in HEALTH_TABLES
        }
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "departments_count": counts["departamentos"],
        "localities_count": counts["localidades"],
    }
