"""Bearer-token authentication against Supabase Auth."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException

from oplai.db.client import AuthUser, SupabaseClient, get_supabase_client
from oplai.utils.logging import bind_request_context


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    authorization: str | None = Header(default=None),
    db: SupabaseClient = Depends(get_supabase_client),
) -> AuthUser:
    """Resolve the caller from ``Authorization: Bearer <jwt>`` or reject with 401."""
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="No authorization header")
    user = db.get_user(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    bind_request_context(user_id=user.id)
    return user


async def get_optional_user(
    authorization: str | None = Header(default=None),
    db: SupabaseClient = Depends(get_supabase_client),
) -> AuthUser | None:
    """Like ``get_current_user`` but anonymous callers get None instead of 401."""
    token = bearer_token(authorization)
    return db.get_user(token) if token else None
