"""Share-link and collaborator endpoints, nested under a playbook."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from oplai.api.auth import get_current_user
from oplai.api.models import CollaboratorResponse, InviteRequest, ShareCreate, ShareResponse
from oplai.core.sharing import NotFoundError, SharingService, get_sharing_service
from oplai.db.client import AuthUser
from oplai.utils.security import is_valid_uuid

router = APIRouter()


def _require_ids(*ids: str) -> None:
    for value in ids:
        if not is_valid_uuid(value):
            raise HTTPException(status_code=404, detail=f"'{value}' not found")


def _raise_for(e: Exception) -> None:
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PermissionError):
        raise HTTPException(status_code=403, detail=str(e))
    raise HTTPException(status_code=400, detail=str(e))


@router.post("/{playbook_id}/shares", response_model=ShareResponse, status_code=201)
async def create_share(
    playbook_id: str,
    data: ShareCreate | None = None,
    user: AuthUser = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
) -> ShareResponse:
    """Issue a fresh share link. Older links stay valid until deactivated."""
    _require_ids(playbook_id)
    try:
        share = sharing.issue_token(
            playbook_id, user.id, expires_in_days=data.expires_in_days if data else None
        )
    except (ValueError, PermissionError) as e:
        _raise_for(e)
    return ShareResponse(**share)


@router.get("/{playbook_id}/shares/current", response_model=ShareResponse)
async def current_share(
    playbook_id: str,
    user: AuthUser = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
) -> ShareResponse:
    _require_ids(playbook_id)
    try:
        sharing.require_owner(playbook_id, user.id)
    except (ValueError, PermissionError) as e:
        _raise_for(e)
    share = sharing.current_token(playbook_id)
    if not share:
        raise HTTPException(status_code=404, detail="No active share link")
    return ShareResponse(**share)


@router.delete("/{playbook_id}/shares/{share_id}", status_code=204)
async def deactivate_share(
    playbook_id: str,
    share_id: str,
    user: AuthUser = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
) -> None:
    _require_ids(playbook_id, share_id)
    try:
        sharing.deactivate_token(share_id, user.id, playbook_id=playbook_id)
    except (ValueError, PermissionError) as e:
        _raise_for(e)


@router.get("/{playbook_id}/collaborators", response_model=list[CollaboratorResponse])
async def list_collaborators(
    playbook_id: str,
    user: AuthUser = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
) -> list[CollaboratorResponse]:
    _require_ids(playbook_id)
    try:
        sharing.require_owner(playbook_id, user.id)
    except (ValueError, PermissionError) as e:
        _raise_for(e)
    return [CollaboratorResponse(**c) for c in sharing.list_collaborators(playbook_id)]


@router.post("/{playbook_id}/collaborators", response_model=CollaboratorResponse, status_code=201)
async def invite_collaborator(
    playbook_id: str,
    data: InviteRequest,
    user: AuthUser = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
) -> CollaboratorResponse:
    _require_ids(playbook_id)
    try:
        row = sharing.invite_by_email(playbook_id, user.id, data.email)
    except (ValueError, PermissionError) as e:
        _raise_for(e)
    return CollaboratorResponse(**row)


@router.delete("/{playbook_id}/collaborators/{collaborator_id}", status_code=204)
async def remove_collaborator(
    playbook_id: str,
    collaborator_id: str,
    user: AuthUser = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
) -> None:
    _require_ids(playbook_id, collaborator_id)
    try:
        sharing.remove_collaborator(collaborator_id, user.id, playbook_id=playbook_id)
    except (ValueError, PermissionError) as e:
        _raise_for(e)
