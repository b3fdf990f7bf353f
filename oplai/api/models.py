"""Pydantic request/response models for the API."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from oplai.core.drafts import DraftPlaybook, DraftQuestion
from oplai.core.generation import DEFAULT_QUESTION_COUNT, MAX_QUESTION_COUNT
from oplai.db.models import DataPoints


class _CamelModel(BaseModel):
    """Body shape of the function-style routes, which speak camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Playbooks ---


class PlaybookCreate(BaseModel):
    """Create a playbook. A client-chosen id is kept when given."""

    title: str = Field(..., min_length=1, max_length=500)
    content: str = ""
    id: UUID | None = None


class PlaybookUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    content: str | None = None


class PlaybookResponse(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    content: str | None = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    role: str | None = None


class QuestionResponse(BaseModel):
    id: str
    question: str
    answer: str | None = None
    score: int | None = None
    created_at: datetime | None = None


class PlaybookDetail(PlaybookResponse):
    questions: list[QuestionResponse] = Field(default_factory=list)


class QuestionsSync(BaseModel):
    """The complete question list of a playbook, keyed by question id."""

    questions: list[DraftQuestion]


class ReconcileRequest(BaseModel):
    playbooks: list[DraftPlaybook]


class ReconcileResponse(BaseModel):
    playbooks_inserted: int
    playbooks_updated: int
    questions_inserted: int
    questions_skipped: int
    answers_inserted: int
    failures: list[str]


# --- Sharing ---


class ShareCreate(BaseModel):
    expires_in_days: int | None = Field(default=None, ge=1)


class ShareResponse(BaseModel):
    id: UUID
    token: str
    playbook_id: UUID
    is_active: bool
    expires_at: datetime | None = None
    created_at: datetime | None = None


class InviteRequest(BaseModel):
    email: str


class CollaboratorResponse(BaseModel):
    id: UUID
    playbook_id: UUID
    user_id: UUID
    role: str
    full_name: str | None = None
    email: str | None = None


# --- API endpoints ---


class EndpointCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    data_points: DataPoints | None = None
    selected_playbooks: list[str] = Field(default_factory=list)


class EndpointUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    data_points: DataPoints | None = None
    selected_playbooks: list[str] | None = None


class EndpointToggle(BaseModel):
    is_active: bool


class EndpointResponse(BaseModel):
    id: UUID
    name: str
    is_active: bool
    selected_playbooks: list[str]
    data_points: DataPoints
    created_at: datetime | None = None
    updated_at: datetime | None = None


# --- Prompts ---


class PromptCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: str = Field(..., pattern=r"^(question|answer)$")
    content: str = Field(..., min_length=1)


class PromptCommit(BaseModel):
    content: str = Field(..., min_length=1)


class PromptResponse(BaseModel):
    id: UUID
    name: str
    type: str
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PromptVersionResponse(BaseModel):
    id: UUID
    prompt_id: UUID
    version_number: int
    content: str
    created_at: datetime | None = None


# --- Monitor / identity ---


class StatsResponse(BaseModel):
    total_playbooks: int
    total_questions: int
    answered_questions: int
    pending_questions: int
    average_score: int
    positive_rate: int
    recent_activity: list[dict[str, Any]]


class MeResponse(BaseModel):
    id: str
    email: str | None = None


# --- Function-style routes ---


class GenerateQuestionsRequest(_CamelModel):
    document_content: str = ""
    custom_system_prompt: str | None = None
    llm_provider: str | None = None
    count: int = Field(default=DEFAULT_QUESTION_COUNT, ge=1, le=MAX_QUESTION_COUNT)
    document_ids: list[str] = Field(default_factory=list)


class GetAnswerRequest(_CamelModel):
    document_content: str = ""
    question: str = ""
    custom_system_prompt: str | None = None
    llm_provider: str | None = None


class JoinPlaybookRequest(BaseModel):
    token: str = ""


class DriveOAuthRequest(BaseModel):
    code: str = ""
    redirect_uri: str = ""


class ChatMessage(BaseModel):
    role: str = Field(..., pattern=r"^(user|assistant)$")
    content: str


class AssistantChatRequest(_CamelModel):
    message: str = Field(..., min_length=1)
    conversation_history: list[ChatMessage] = Field(default_factory=list)


class SystemPromptRequest(BaseModel):
    type: str = Field(..., pattern=r"^(question|answer)$")
    context: str | None = None
