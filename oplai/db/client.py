"""Supabase client initialization and helper methods."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from oplai.config import get_settings

logger = structlog.get_logger()

UNIQUE_VIOLATION = "23505"


class UniqueViolationError(Exception):
    """Raised when an insert collides with a unique constraint."""

    def __init__(self, table: str, detail: str = "") -> None:
        super().__init__(f"Duplicate row in {table}: {detail}".rstrip(": "))
        self.table = table


@dataclass
class AuthUser:
    """Identity resolved from a Supabase access token."""

    id: str
    email: str | None = None


class SupabaseClient:
    """Wrapper around the Supabase client with convenience methods."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return the created row."""
        try:
            result = self._client.table(table).insert(data).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise UniqueViolationError(table, e.message or "") from e
            raise
        return result.data[0]

    def upsert(
        self, table: str, data: dict[str, Any], on_conflict: str
    ) -> dict[str, Any]:
        """Insert or update on the given conflict columns and return the row."""
        result = self._client.table(table).upsert(data, on_conflict=on_conflict).execute()
        return result.data[0]

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select records with optional filters, ordering, and limit."""
        query = self._client.table(table).select("*")

        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        result = query.execute()
        return result.data

    def select_in(
        self,
        table: str,
        column: str,
        values: list[Any],
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Select records whose column is one of values."""
        if not values:
            return []
        query = self._client.table(table).select("*").in_(column, values)
        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)
        return query.execute().data

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update a record by ID."""
        result = self._client.table(table).update(data).eq("id", id).execute()
        return result.data[0]

    def update_where(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Update every record matching filters."""
        query = self._client.table(table).update(data)
        for key, value in filters.items():
            query = query.eq(key, value)
        return query.execute().data

    def delete(self, table: str, id: str) -> None:
        """Delete a record by ID."""
        self._client.table(table).delete().eq("id", id).execute()

    def delete_in(self, table: str, column: str, values: list[Any]) -> None:
        """Delete every record whose column is one of values."""
        if not values:
            return
        self._client.table(table).delete().in_(column, values).execute()

    def get_user(self, access_token: str) -> AuthUser | None:
        """Resolve an access token to the authenticated user, or None."""
        try:
            response = self._client.auth.get_user(access_token)
        except Exception as e:
            logger.info("supabase.auth_rejected", error=str(e))
            return None
        if not response or not response.user:
            return None
        return AuthUser(id=str(response.user.id), email=response.user.email)


@lru_cache
def get_supabase_client() -> SupabaseClient:
    """Get cached Supabase client instance.

    Uses the service-role key when configured: the server scopes every query
    by user id itself, and token redemption and the public export endpoint
    must read across tenants.
    """
    settings = get_settings()
    key = settings.supabase_service_key or settings.supabase_key
    client = create_client(settings.supabase_url, key)
    logger.info("supabase.connected", url=settings.supabase_url)
    return SupabaseClient(client)
