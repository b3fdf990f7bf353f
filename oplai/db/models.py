"""Database models / type definitions.

These mirror the Supabase tables for type safety in Python code.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

GOLDEN_ENDPOINT_NAME = "Golden Datasets API"

DATA_POINT_FLAGS = (
    "playbookContent",
    "questions",
    "answers",
    "scores",
    "createdDate",
    "updatedDate",
)


class ShareRow(BaseModel):
    """Row from the playbook_shares table."""

    id: UUID
    token: str
    playbook_id: UUID
    created_by: UUID
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime | None = None

class DataPoints(BaseModel):
    """Which fields an API endpoint exports. Absent flags are off."""

    playbookContent: bool = False
    questions: bool = False
    answers: bool = False
    scores: bool = False
    createdDate: bool = False
    updatedDate: bool = False

class ApiEndpointRow(BaseModel):
    """Row from the api_endpoints table."""

    id: UUID
    user_id: UUID
    name: str
    is_active: bool = False
    selected_playbooks: list[str] = Field(default_factory=list)
    data_points: DataPoints = Field(default_factory=DataPoints)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_golden(self) -> bool:
        return self.name == GOLDEN_ENDPOINT_NAME


def default_data_points() -> DataPoints:
    """Flags a newly created endpoint starts with."""
    return DataPoints(playbookContent=True, questions=True, answers=True, scores=True)
