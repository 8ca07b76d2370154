import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from supabase import create_client, Client
from app.config import settings

logger = logging.getLogger(__name__)

# PostgREST returns at most this many rows per request (db-max-rows)
MAX_ROWS_PER_REQUEST = 1000


class SupabaseClient:
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Users are authenticated by our own JWTs."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or cls.get_client()


def get_supabase() -> Client:
    return SupabaseClient.get_service_client()


def get_optional_supabase() -> Optional[Client]:
    """Client for health checks; None instead of an error when it cannot be created."""
    try:
        return get_supabase()
    except Exception as e:
        logger.error(f"Could not create Supabase client: {e}")
        return None


def select_all(build_query: Callable[[], Any], page_size: int = MAX_ROWS_PER_REQUEST) -> List[Dict[str, Any]]:
    """Read every row of a query, one page at a time.

    `build_query` returns a fresh, ordered query builder for each page since
    builders cannot be reused after execute().
    """
    rows = []
    start = 0
    while True:
        batch = build_query().limit(page_size).offset(start).execute().data or []
        rows.extend(batch)
        if len(batch) < page_size:
            return rows
        start += page_size


def ilike_any(columns: Iterable[str], pattern: str) -> str:
    """or_() filter matching `pattern` against any of `columns`.

    The value is double-quoted so commas, dots and parentheses in a search
    term are not read as filter syntax.
    """
    quoted = '"' + pattern.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return ",".join(f"{column}.ilike.{quoted}" for column in columns)
