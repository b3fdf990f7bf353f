"""Playbook CRUD, question sync and draft reconciliation endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from oplai.api.auth import get_current_user
from oplai.api.models import (
    PlaybookCreate,
    PlaybookDetail,
    PlaybookResponse,
    PlaybookUpdate,
    QuestionsSync,
    ReconcileRequest,
    ReconcileResponse,
)
from oplai.core.playbooks import PlaybookStore, get_playbook_store
from oplai.core.reconcile import Reconciler, get_reconciler
from oplai.db.client import AuthUser, UniqueViolationError
from oplai.utils.security import MAX_CONTENT_SIZE, is_valid_uuid, validate_content_size

router = APIRouter()


def _load(
    store: PlaybookStore, playbook_id: str, user: AuthUser, edit: bool = False
) -> tuple[dict[str, Any], str]:
    """Fetch a playbook the caller may see (or edit), with the caller's role."""
    playbook = store.get_playbook(playbook_id) if is_valid_uuid(playbook_id) else None
    if not playbook:
        raise HTTPException(status_code=404, detail=f"Playbook '{playbook_id}' not found")
    role = store.role_for(playbook, user.id)
    if role is None:
        raise HTTPException(status_code=403, detail="You do not have access to this playbook")
    if edit and role not in ("owner", "editor"):
        raise HTTPException(status_code=403, detail="You cannot edit this playbook")
    return playbook, role


def _check_size(content: str | None) -> None:
    if content is not None and not validate_content_size(content):
        raise HTTPException(
            status_code=413, detail=f"Playbook content exceeds {MAX_CONTENT_SIZE // 1024}KB limit"
        )


@router.post("", response_model=PlaybookResponse, status_code=201)
async def create_playbook(
    data: PlaybookCreate,
    user: AuthUser = Depends(get_current_user),
    store: PlaybookStore = Depends(get_playbook_store),
) -> PlaybookResponse:
    _check_size(data.content)
    try:
        playbook = store.create_playbook(
            user.id, data.title, data.content, str(data.id) if data.id else None
        )
    except UniqueViolationError:
        raise HTTPException(status_code=409, detail=f"Playbook '{data.id}' already exists")
    return PlaybookResponse(**playbook, role="owner")


@router.get("", response_model=list[PlaybookResponse])
async def list_playbooks(
    user: AuthUser = Depends(get_current_user),
    store: PlaybookStore = Depends(get_playbook_store),
) -> list[PlaybookResponse]:
    """Playbooks the caller owns, followed by those shared with them."""
    return [
        PlaybookResponse(**p, role="owner" if str(p["user_id"]) == user.id else "editor")
        for p in store.list_playbooks(user.id)
    ]


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_drafts(
    data: ReconcileRequest,
    user: AuthUser = Depends(get_current_user),
    reconciler: Reconciler = Depends(get_reconciler),
) -> ReconcileResponse:
    """Fold locally cached drafts into the store. Failures are reported, not raised."""
    report = reconciler.reconcile(user.id, data.playbooks)
    return ReconcileResponse(**asdict(report))


@router.get("/{playbook_id}", response_model=PlaybookDetail)
async def get_playbook(
    playbook_id: str,
    user: AuthUser = Depends(get_current_user),
    store: PlaybookStore = Depends(get_playbook_store),
) -> PlaybookDetail:
    playbook, role = _load(store, playbook_id, user)
    return PlaybookDetail(**playbook, role=role, questions=store.load_questions(playbook_id))


@router.put("/{playbook_id}", response_model=PlaybookResponse)
async def update_playbook(
    playbook_id: str,
    data: PlaybookUpdate,
    user: AuthUser = Depends(get_current_user),
    store: PlaybookStore = Depends(get_playbook_store),
) -> PlaybookResponse:
    _, role = _load(store, playbook_id, user, edit=True)
    _check_size(data.content)
    playbook = store.update_playbook(playbook_id, title=data.title, content=data.content)
    return PlaybookResponse(**playbook, role=role)


@router.delete("/{playbook_id}", status_code=204)
async def delete_playbook(
    playbook_id: str,
    user: AuthUser = Depends(get_current_user),
    store: PlaybookStore = Depends(get_playbook_store),
) -> None:
    if not is_valid_uuid(playbook_id):
        raise HTTPException(status_code=404, detail=f"Playbook '{playbook_id}' not found")
    try:
        deleted = store.delete_playbook(playbook_id, user.id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Playbook '{playbook_id}' not found")


@router.put("/{playbook_id}/questions")
async def sync_questions(
    playbook_id: str,
    data: QuestionsSync,
    user: AuthUser = Depends(get_current_user),
    store: PlaybookStore = Depends(get_playbook_store),
) -> dict[str, int]:
    """Replace the playbook's question set with the given list, matched by id."""
    _load(store, playbook_id, user, edit=True)
    return store.sync_questions(playbook_id, user.id, data.questions)
