"""Prompt and prompt version endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from oplai.api.auth import get_current_user
from oplai.api.models import PromptCommit, PromptCreate, PromptResponse, PromptVersionResponse
from oplai.core.prompts import PromptManager, get_prompt_manager
from oplai.db.client import AuthUser

router = APIRouter()


@router.post("", response_model=PromptResponse, status_code=201)
async def create_prompt(
    data: PromptCreate,
    user: AuthUser = Depends(get_current_user),
    manager: PromptManager = Depends(get_prompt_manager),
) -> PromptResponse:
    """Create a prompt with its first version."""
    try:
        return PromptResponse(**manager.create_prompt(user.id, data.name, data.type, data.content))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=list[PromptResponse])
async def list_prompts(
    type: str | None = None,
    user: AuthUser = Depends(get_current_user),
    manager: PromptManager = Depends(get_prompt_manager),
) -> list[PromptResponse]:
    return [PromptResponse(**p) for p in manager.list_prompts(user.id, type=type)]


@router.get("/{prompt_id}/versions", response_model=list[PromptVersionResponse])
async def list_versions(
    prompt_id: str,
    limit: int = 50,
    user: AuthUser = Depends(get_current_user),
    manager: PromptManager = Depends(get_prompt_manager),
) -> list[PromptVersionResponse]:
    """Version history, newest first."""
    try:
        manager.get_owned(prompt_id, user.id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [PromptVersionResponse(**v) for v in manager.history(prompt_id, limit=limit)]


@router.post("/{prompt_id}/versions", response_model=PromptVersionResponse, status_code=201)
async def commit_version(
    prompt_id: str,
    data: PromptCommit,
    user: AuthUser = Depends(get_current_user),
    manager: PromptManager = Depends(get_prompt_manager),
) -> PromptVersionResponse:
    try:
        return PromptVersionResponse(**manager.commit(prompt_id, user.id, data.content))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{prompt_id}/activate", response_model=PromptResponse)
async def activate_prompt(
    prompt_id: str,
    user: AuthUser = Depends(get_current_user),
    manager: PromptManager = Depends(get_prompt_manager),
) -> PromptResponse:
    try:
        return PromptResponse(**manager.set_active(prompt_id, user.id))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{prompt_id}", status_code=204)
async def delete_prompt(
    prompt_id: str,
    user: AuthUser = Depends(get_current_user),
    manager: PromptManager = Depends(get_prompt_manager),
) -> None:
    try:
        manager.delete_prompt(prompt_id, user.id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
