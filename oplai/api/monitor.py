"""Monitoring and identity endpoints."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from oplai.api.auth import get_current_user
from oplai.api.models import MeResponse, StatsResponse
from oplai.core.monitor import stats_for_user
from oplai.core.playbooks import PlaybookStore, get_playbook_store
from oplai.db.client import AuthUser

router = APIRouter()


@router.get("/monitor/stats", response_model=StatsResponse)
async def monitor_stats(
    user: AuthUser = Depends(get_current_user),
    store: PlaybookStore = Depends(get_playbook_store),
) -> StatsResponse:
    """Question, answer and feedback totals across the caller's playbooks."""
    return StatsResponse(**asdict(stats_for_user(store, user.id)))


@router.get("/me", response_model=MeResponse)
async def me(user: AuthUser = Depends(get_current_user)) -> MeResponse:
    """Identity behind the bearer token. Used by clients to scope local caches."""
    return MeResponse(id=user.id, email=user.email)
