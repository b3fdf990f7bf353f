"""API endpoints: user-defined, read-only export views over playbook data.

An endpoint is served to anyone who knows its id. Each user has one
"Golden Datasets API" endpoint that is always served, always covers every
playbook the user owns, and can be neither switched off nor deleted.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from oplai.core.playbooks import PlaybookStore
from oplai.db.client import SupabaseClient, get_supabase_client
from oplai.db.models import (
    GOLDEN_ENDPOINT_NAME,
    ApiEndpointRow,
    DATA_POINT_FLAGS,
    DataPoints,
    default_data_points,
)
from oplai.utils.security import is_valid_uuid

logger = structlog.get_logger()


class EndpointNotFound(LookupError):
    pass


class EndpointInactive(PermissionError):
    pass


class ApiEndpointService:
    def __init__(self, db: SupabaseClient) -> None:
        self.db = db
        self.playbooks = PlaybookStore(db)

    # --- Management ---

    def ensure_golden(self, user_id: str) -> dict[str, Any]:
        rows = self.db.select("api_endpoints", filters={"user_id": user_id, "name": GOLDEN_ENDPOINT_NAME})
        if rows:
            return rows[0]
        row = self.db.insert(
            "api_endpoints",
            {
                "user_id": user_id,
                "name": GOLDEN_ENDPOINT_NAME,
                "is_active": True,
                "selected_playbooks": [],
                "data_points": DataPoints(**{flag: True for flag in DATA_POINT_FLAGS}).model_dump(),
            },
        )
        logger.info("endpoint.golden_provisioned", user_id=user_id, endpoint_id=row["id"])
        return row

    def list_endpoints(self, user_id: str) -> list[dict[str, Any]]:
        self.ensure_golden(user_id)
        return self.db.select("api_endpoints", filters={"user_id": user_id}, order_by="created_at")

    def get_endpoint(self, endpoint_id: str, user_id: str) -> dict[str, Any]:
        if not is_valid_uuid(endpoint_id):
            raise EndpointNotFound(endpoint_id)
        rows = self.db.select("api_endpoints", filters={"id": endpoint_id, "user_id": user_id})
        if not rows:
            raise EndpointNotFound(endpoint_id)
        return rows[0]

    def create_endpoint(
        self,
        user_id: str,
        name: str,
        data_points: DataPoints | None = None,
        selected_playbooks: list[str] | None = None,
    ) -> dict[str, Any]:
        name = name.strip()
        if not name:
            raise ValueError("Please enter an API name")
        if name == GOLDEN_ENDPOINT_NAME:
            raise ValueError(f"'{GOLDEN_ENDPOINT_NAME}' is reserved")
        row = self.db.insert(
            "api_endpoints",
            {
                "user_id": user_id,
                "name": name,
                "is_active": False,
                "selected_playbooks": selected_playbooks or [],
                "data_points": (data_points or default_data_points()).model_dump(),
            },
        )
        logger.info("endpoint.created", endpoint_id=row["id"], user_id=user_id)
        return row

    def update_endpoint(
        self,
        endpoint_id: str,
        user_id: str,
        name: str | None = None,
        data_points: DataPoints | None = None,
        selected_playbooks: list[str] | None = None,
    ) -> dict[str, Any]:
        endpoint = ApiEndpointRow.model_validate(self.get_endpoint(endpoint_id, user_id))
        updates: dict[str, Any] = {}
        if name is not None and name != endpoint.name:
            if endpoint.is_golden or name == GOLDEN_ENDPOINT_NAME:
                raise ValueError(f"'{GOLDEN_ENDPOINT_NAME}' cannot be renamed or reused")
            updates["name"] = name
        if data_points is not None:
            updates["data_points"] = data_points.model_dump()
        if selected_playbooks is not None:
            updates["selected_playbooks"] = selected_playbooks
        if not updates:
            return self.get_endpoint(endpoint_id, user_id)
        return self.db.update("api_endpoints", endpoint_id, updates)

    def set_active(self, endpoint_id: str, user_id: str, active: bool) -> dict[str, Any]:
        endpoint = ApiEndpointRow.model_validate(self.get_endpoint(endpoint_id, user_id))
        if endpoint.is_golden and not active:
            raise ValueError(f"'{GOLDEN_ENDPOINT_NAME}' cannot be deactivated")
        row = self.db.update("api_endpoints", endpoint_id, {"is_active": active})
        logger.info("endpoint.toggled", endpoint_id=endpoint_id, active=active)
        return row

    def delete_endpoint(self, endpoint_id: str, user_id: str) -> None:
        endpoint = ApiEndpointRow.model_validate(self.get_endpoint(endpoint_id, user_id))
        if endpoint.is_golden:
            raise ValueError(f"'{GOLDEN_ENDPOINT_NAME}' cannot be deleted")
        self.db.delete("api_endpoints", endpoint_id)
        logger.info("endpoint.deleted", endpoint_id=endpoint_id)

    # --- Serving ---

    def resolve_scope(self, endpoint: ApiEndpointRow) -> list[dict[str, Any]]:
        """Playbooks an endpoint exports.

        Malformed selected ids are dropped. When none survive the endpoint
        falls back to every playbook of its owner.
        """
        owner = str(endpoint.user_id)
        if endpoint.is_golden:
            return self.playbooks.list_owned(owner)

        valid_ids = [pid for pid in endpoint.selected_playbooks if is_valid_uuid(pid)]
        if not valid_ids:
            logger.warning("endpoint.scope_fallback", endpoint_id=str(endpoint.id))
            return self.playbooks.list_owned(owner)
        return self.db.select_in("playbooks", "id", valid_ids, filters={"user_id": owner})

    def build_record(self, playbook: dict[str, Any], points: DataPoints) -> dict[str, Any]:
        record: dict[str, Any] = {"id": str(playbook["id"]), "title": playbook["title"]}
        if points.playbookContent:
            record["content"] = playbook.get("content") or ""

        if points.questions or points.answers or points.scores:
            questions = self.playbooks.load_questions(str(playbook["id"]))
            if points.questions:
                record["questions"] = [q["question"] for q in questions]
            if points.answers:
                record["answers"] = [
                    {"question": q["question"], "answer": q["answer"]}
                    for q in questions
                    if q["answer"]
                ]
            if points.scores:
                record["scores"] = {
                    q["question"]: q["score"] for q in questions if q["score"] is not None
                }

        if points.createdDate:
            record["createdAt"] = playbook.get("created_at")
        if points.updatedDate:
            record["updatedAt"] = playbook.get("updated_at")
        return record

    def export(self, endpoint_id: str) -> dict[str, Any]:
        """Serve an endpoint to an anonymous caller."""
        if not is_valid_uuid(endpoint_id):
            raise EndpointNotFound(endpoint_id)
        rows = self.db.select("api_endpoints", filters={"id": endpoint_id})
        if not rows:
            raise EndpointNotFound(endpoint_id)
        endpoint = ApiEndpointRow.model_validate(rows[0])

        if not endpoint.is_active and not endpoint.is_golden:
            raise EndpointInactive(endpoint_id)

        data = [self.build_record(p, endpoint.data_points) for p in self.resolve_scope(endpoint)]
        logger.info("endpoint.served", endpoint_id=endpoint_id, records=len(data))
        return {
            "success": True,
            "endpoint": {"id": str(endpoint.id), "name": endpoint.name},
            "data": data,
            "total": len(data),
        }


@lru_cache
def get_endpoint_service() -> ApiEndpointService:
    """Get cached endpoint service instance."""
    return ApiEndpointService(get_supabase_client())
