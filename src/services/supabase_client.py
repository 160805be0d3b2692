"""Supabase client wrapper with async context manager support."""

import os
from datetime import datetime, timezone
from typing import Any, Optional
from postgrest.exceptions import APIError
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.utils.errors import MarketplaceError, StoreUnavailable
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise StoreUnavailable("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the client reference."""
    global _client
    if _client:
        # supabase-py has no explicit close
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                type=exc_type.__name__
            )
        return False


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def is_unique_violation(error: Exception) -> bool:
    """Check whether a store error is a unique constraint violation."""
    if isinstance(error, APIError) and error.code == UNIQUE_VIOLATION:
        return True
    return "duplicate key" in str(error).lower()


def _apply_filters(
    query,
    filters: Optional[dict[str, Any]] = None,
    in_filters: Optional[dict[str, list]] = None,
    gte: Optional[dict[str, Any]] = None,
    gt: Optional[dict[str, Any]] = None,
    neq: Optional[dict[str, Any]] = None,
):
    """Apply equality, IS NULL, IN and range filters to a PostgREST query."""
    for column, value in (filters or {}).items():
        if value is None:
            query = query.is_(column, "null")
        else:
            query = query.eq(column, value)
    for column, values in (in_filters or {}).items():
        query = query.in_(column, list(values))
    for column, value in (gte or {}).items():
        query = query.gte(column, value)
    for column, value in (gt or {}).items():
        query = query.gt(column, value)
    for column, value in (neq or {}).items():
        query = query.neq(column, value)
    return query


# Generic row operations
async def fetch_one(table: str, filters: dict[str, Any]) -> Optional[dict]:
    """Point lookup. Returns the first matching row or None."""
    async with SupabaseClient() as client:
        try:
            query = _apply_filters(client.table(table).select("*"), filters)
            result = query.limit(1).execute()
            return result.data[0] if result.data else None
        except MarketplaceError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Failed to read {table}: {e}") from e


async def fetch_rows(
    table: str,
    filters: Optional[dict[str, Any]] = None,
    in_filters: Optional[dict[str, list]] = None,
    gte: Optional[dict[str, Any]] = None,
    gt: Optional[dict[str, Any]] = None,
    order_by: Optional[list[str]] = None,
    limit: Optional[int] = None,
    columns: str = "*",
) -> list[dict]:
    """Range read, ascending on each ``order_by`` column."""
    async with SupabaseClient() as client:
        try:
            query = _apply_filters(client.table(table).select(columns), filters, in_filters, gte, gt)
            for column in order_by or []:
                query = query.order(column, desc=False)
            if limit is not None:
                query = query.limit(limit)
            result = query.execute()
            return result.data if result.data else []
        except MarketplaceError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Failed to read {table}: {e}") from e


async def count_rows(
    table: str,
    filters: Optional[dict[str, Any]] = None,
    gte: Optional[dict[str, Any]] = None,
) -> int:
    """Exact row count for a filter."""
    async with SupabaseClient() as client:
        try:
            query = _apply_filters(client.table(table).select("id", count="exact"), filters, gte=gte)
            result = query.execute()
            return result.count or 0
        except MarketplaceError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Failed to count {table}: {e}") from e


async def insert_row(table: str, row: dict) -> dict:
    """Insert a row and return it as stored."""
    async with SupabaseClient() as client:
        try:
            result = client.table(table).insert(row).execute()
            if result.data and len(result.data) > 0:
                return result.data[0]
            raise StoreUnavailable(f"Failed to insert into {table}: no data returned")
        except MarketplaceError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Failed to insert into {table}: {e}") from e


async def insert_or_get(table: str, row: dict, key: dict[str, Any]) -> tuple[dict, bool]:
    """
    Insert a row unless one already exists for its uniqueness key.

    Returns (row, created). A unique violation on insert means a concurrent
    writer got there first; the winner's row is read back and returned.
    """
    existing = await fetch_one(table, key)
    if existing:
        return existing, False

    async with SupabaseClient() as client:
        try:
            result = client.table(table).insert(row).execute()
            if result.data and len(result.data) > 0:
                return result.data[0], True
            raise StoreUnavailable(f"Failed to insert into {table}: no data returned")
        except MarketplaceError:
            raise
        except Exception as e:
            if not is_unique_violation(e):
                raise StoreUnavailable(f"Failed to insert into {table}: {e}") from e
            logger.info("Unique key already taken, returning existing row", table=table)

    existing = await fetch_one(table, key)
    if existing is None:
        raise StoreUnavailable(f"Row in {table} reported as duplicate but not readable")
    return existing, False


async def conditional_update(
    table: str,
    updates: dict,
    filters: dict[str, Any],
    in_filters: Optional[dict[str, list]] = None,
    neq: Optional[dict[str, Any]] = None,
) -> list[dict]:
    """
    Update rows only where every filter still holds.

    Returns the updated rows; an empty list means the precondition no longer
    held (another writer moved the row on).
    """
    async with SupabaseClient() as client:
        try:
            query = _apply_filters(client.table(table).update(updates), filters, in_filters, neq=neq)
            result = query.execute()
            return result.data if result.data else []
        except MarketplaceError:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Failed to update {table}: {e}") from e


# Lookups by id
async def get_listing_by_id(listing_id: str) -> Optional[dict]:
    """Get listing by ID."""
    return await fetch_one("listings", {"id": listing_id})


async def get_user_by_id(user_id: str) -> Optional[dict]:
    """Get user profile by ID."""
    return await fetch_one("users", {"id": user_id})


async def get_match_by_id(match_id: str) -> Optional[dict]:
    """Get match by ID."""
    return await fetch_one("matches", {"id": match_id})


async def get_message_by_id(message_id: str) -> Optional[dict]:
    """Get message by ID."""
    return await fetch_one("messages", {"id": message_id})


async def get_booking_by_id(booking_id: str) -> Optional[dict]:
    """Get booking by ID."""
    return await fetch_one("bookings", {"id": booking_id})
