"""Main API router: aggregates all endpoint modules."""

from fastapi import APIRouter

from oplai.api.endpoints import router as endpoints_router
from oplai.api.monitor import router as monitor_router
from oplai.api.playbooks import router as playbooks_router
from oplai.api.presence import router as presence_router
from oplai.api.prompts import router as prompts_router
from oplai.api.sharing import router as sharing_router

api_router = APIRouter()

api_router.include_router(playbooks_router, prefix="/playbooks", tags=["playbooks"])
api_router.include_router(sharing_router, prefix="/playbooks", tags=["sharing"])
api_router.include_router(presence_router, prefix="/playbooks", tags=["presence"])
api_router.include_router(endpoints_router, prefix="/endpoints", tags=["endpoints"])
api_router.include_router(prompts_router, prefix="/prompts", tags=["prompts"])
api_router.include_router(monitor_router, tags=["monitor"])
