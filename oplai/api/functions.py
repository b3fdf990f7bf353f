"""Function-style routes mounted at the application root.

These keep the request and response shapes of the hosted functions the
web client calls: camelCase bodies, and failures reported as
``{"error": message}`` with a status code instead of FastAPI's ``detail``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from oplai.api.auth import get_current_user, get_optional_user
from oplai.api.models import (
    AssistantChatRequest,
    DriveOAuthRequest,
    GenerateQuestionsRequest,
    GetAnswerRequest,
    JoinPlaybookRequest,
    SystemPromptRequest,
)
from oplai.core.assistant import AssistantService, get_assistant_service
from oplai.core.drive import GoogleDriveService, get_drive_service
from oplai.core.endpoints import (
    ApiEndpointService,
    EndpointInactive,
    EndpointNotFound,
    get_endpoint_service,
)
from oplai.core.generation import (
    EmptyDocumentError,
    GatewayError,
    GenerationService,
    get_generation_service,
)
from oplai.core.sharing import SharingService, get_sharing_service
from oplai.db.client import AuthUser

logger = structlog.get_logger()

router = APIRouter()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.get("/api-endpoint")
async def api_endpoint_missing_id() -> JSONResponse:
    return _error("Endpoint ID is required", 400)


@router.get("/api-endpoint/{endpoint_id}", response_model=None)
async def api_endpoint(
    endpoint_id: str,
    service: ApiEndpointService = Depends(get_endpoint_service),
) -> dict[str, Any] | JSONResponse:
    """Public, unauthenticated export of an endpoint's playbook data."""
    try:
        return service.export(endpoint_id)
    except EndpointNotFound:
        return _error("API endpoint not found", 404)
    except EndpointInactive:
        return _error("API endpoint is not active", 403)
    except Exception as e:
        logger.error("endpoint.export_failed", endpoint_id=endpoint_id, error=str(e))
        return _error("Error fetching data", 500)


@router.post("/generate-questions", response_model=None)
async def generate_questions(
    data: GenerateQuestionsRequest,
    user: AuthUser | None = Depends(get_optional_user),
    service: GenerationService = Depends(get_generation_service),
    drive: GoogleDriveService = Depends(get_drive_service),
) -> dict[str, Any] | JSONResponse:
    try:
        documents: list[str] = []
        if data.document_ids and user is not None:
            documents = drive.document_contents(user.id, data.document_ids)
        questions = await service.generate_questions(
            data.document_content,
            custom_system_prompt=data.custom_system_prompt,
            llm_provider=data.llm_provider,
            count=data.count,
            documents=documents,
        )
    except EmptyDocumentError as e:
        return _error(str(e), 400)
    except GatewayError as e:
        return _error(str(e), e.status_code if e.status_code in (402, 429) else 500)
    except Exception as e:
        logger.error("generation.questions_failed", error=str(e))
        return _error(str(e) or "Unknown error", 500)
    return {"questions": questions}


@router.post("/get-answer", response_model=None)
async def get_answer(
    data: GetAnswerRequest,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, Any] | JSONResponse:
    try:
        answer = await service.get_answer(
            data.document_content,
            data.question,
            custom_system_prompt=data.custom_system_prompt,
            llm_provider=data.llm_provider,
        )
    except ValueError as e:
        return _error(str(e), 400)
    except GatewayError as e:
        return _error(str(e), e.status_code if e.status_code in (402, 429) else 500)
    except Exception as e:
        logger.error("generation.answer_failed", error=str(e))
        return _error(str(e) or "Unknown error", 500)
    return {"answer": answer}


@router.post("/generate-system-prompt", response_model=None)
async def generate_system_prompt(
    data: SystemPromptRequest,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, Any] | JSONResponse:
    try:
        prompt = await service.generate_system_prompt(data.type, data.context)
    except GatewayError as e:
        return _error(str(e), e.status_code if e.status_code in (402, 429) else 500)
    return {"prompt": prompt}


@router.post("/join-playbook", response_model=None)
async def join_playbook(
    data: JoinPlaybookRequest,
    user: AuthUser = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
) -> dict[str, Any] | JSONResponse:
    """Redeem a share token for an editor grant on its playbook."""
    try:
        result = sharing.redeem(data.token, user.id)
    except ValueError as e:
        return _error(str(e), 400)
    body: dict[str, Any] = {"success": True, "playbookId": result.playbook_id}
    if result.message:
        body["message"] = result.message
    return body


@router.post("/google-drive-oauth", response_model=None)
async def google_drive_oauth(
    data: DriveOAuthRequest,
    user: AuthUser = Depends(get_current_user),
    drive: GoogleDriveService = Depends(get_drive_service),
) -> dict[str, Any] | JSONResponse:
    try:
        connection = await drive.exchange_code(user.id, data.code, data.redirect_uri)
    except Exception as e:
        logger.error("drive.oauth_failed", user_id=user.id, error=str(e))
        return _error(str(e), 400)
    return {"success": True, "connection": connection}


@router.post("/google-drive-sync", response_model=None)
async def google_drive_sync(
    user: AuthUser = Depends(get_current_user),
    drive: GoogleDriveService = Depends(get_drive_service),
) -> dict[str, Any] | JSONResponse:
    try:
        return await drive.sync(user.id)
    except Exception as e:
        logger.error("drive.sync_failed", user_id=user.id, error=str(e))
        return _error(str(e), 400)


@router.post("/ai-assistant-chat", response_model=None)
async def ai_assistant_chat(
    data: AssistantChatRequest,
    user: AuthUser = Depends(get_current_user),
    assistant: AssistantService = Depends(get_assistant_service),
) -> dict[str, Any] | JSONResponse:
    try:
        response = await assistant.chat(
            user.id,
            data.message,
            [m.model_dump() for m in data.conversation_history],
        )
    except Exception as e:
        logger.error("assistant.chat_failed", user_id=user.id, error=str(e))
        return _error(str(e) or "Unknown error", 500)
    return {"response": response}
