"""API endpoint management (owner-scoped)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from oplai.api.auth import get_current_user
from oplai.api.models import EndpointCreate, EndpointResponse, EndpointToggle, EndpointUpdate
from oplai.core.endpoints import ApiEndpointService, EndpointNotFound, get_endpoint_service
from oplai.db.client import AuthUser

router = APIRouter()


@router.get("", response_model=list[EndpointResponse])
async def list_endpoints(
    user: AuthUser = Depends(get_current_user),
    service: ApiEndpointService = Depends(get_endpoint_service),
) -> list[EndpointResponse]:
    """List the caller's endpoints, provisioning the golden one on first use."""
    return [EndpointResponse(**e) for e in service.list_endpoints(user.id)]


@router.post("", response_model=EndpointResponse, status_code=201)
async def create_endpoint(
    data: EndpointCreate,
    user: AuthUser = Depends(get_current_user),
    service: ApiEndpointService = Depends(get_endpoint_service),
) -> EndpointResponse:
    try:
        row = service.create_endpoint(
            user.id, data.name, data.data_points, data.selected_playbooks
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return EndpointResponse(**row)


@router.get("/{endpoint_id}", response_model=EndpointResponse)
async def get_endpoint(
    endpoint_id: str,
    user: AuthUser = Depends(get_current_user),
    service: ApiEndpointService = Depends(get_endpoint_service),
) -> EndpointResponse:
    try:
        return EndpointResponse(**service.get_endpoint(endpoint_id, user.id))
    except EndpointNotFound:
        raise HTTPException(status_code=404, detail=f"Endpoint '{endpoint_id}' not found")


@router.put("/{endpoint_id}", response_model=EndpointResponse)
async def update_endpoint(
    endpoint_id: str,
    data: EndpointUpdate,
    user: AuthUser = Depends(get_current_user),
    service: ApiEndpointService = Depends(get_endpoint_service),
) -> EndpointResponse:
    try:
        row = service.update_endpoint(
            endpoint_id,
            user.id,
            name=data.name,
            data_points=data.data_points,
            selected_playbooks=data.selected_playbooks,
        )
    except EndpointNotFound:
        raise HTTPException(status_code=404, detail=f"Endpoint '{endpoint_id}' not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return EndpointResponse(**row)


@router.post("/{endpoint_id}/active", response_model=EndpointResponse)
async def toggle_endpoint(
    endpoint_id: str,
    data: EndpointToggle,
    user: AuthUser = Depends(get_current_user),
    service: ApiEndpointService = Depends(get_endpoint_service),
) -> EndpointResponse:
    try:
        row = service.set_active(endpoint_id, user.id, data.is_active)
    except EndpointNotFound:
        raise HTTPException(status_code=404, detail=f"Endpoint '{endpoint_id}' not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return EndpointResponse(**row)


@router.delete("/{endpoint_id}", status_code=204)
async def delete_endpoint(
    endpoint_id: str,
    user: AuthUser = Depends(get_current_user),
    service: ApiEndpointService = Depends(get_endpoint_service),
) -> None:
    try:
        service.delete_endpoint(endpoint_id, user.id)
    except EndpointNotFound:
        raise HTTPException(status_code=404, detail=f"Endpoint '{endpoint_id}' not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
