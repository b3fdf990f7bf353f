"""Prompt manager: named system prompts with numbered versions.

Each prompt has a type ("question" or "answer"). A user has at most one
active prompt per type; activating one switches the others of that type off.
Versions are immutable and numbered from 1 upward.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from oplai.db.client import SupabaseClient, get_supabase_client

logger = structlog.get_logger()

PROMPT_TYPES = ("question", "answer")


class PromptManager:
    """Manages prompt lifecycle."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def get_owned(self, prompt_id: str, user_id: str) -> dict[str, Any]:
        rows = self.db.select("prompts", filters={"id": prompt_id, "user_id": user_id})
        if not rows:
            raise ValueError(f"Prompt '{prompt_id}' not found")
        return rows[0]

    def create_prompt(self, user_id: str, name: str, type: str, content: str) -> dict[str, Any]:
        """Create a prompt and its first version.

        The first prompt of a type becomes the active one.
        """
        if type not in PROMPT_TYPES:
            raise ValueError(f"Unknown prompt type '{type}'")
        if not name.strip() or not content.strip():
            raise ValueError("Prompt name and content are required")

        siblings = self.db.select("prompts", filters={"user_id": user_id, "type": type})
        prompt = self.db.insert(
            "prompts",
            {"user_id": user_id, "name": name.strip(), "type": type, "is_active": not siblings},
        )
        self.db.insert(
            "prompt_versions",
            {"prompt_id": prompt["id"], "version_number": 1, "content": content},
        )
        logger.info("prompt.created", prompt_id=prompt["id"], type=type, active=prompt["is_active"])
        return prompt

    def list_prompts(self, user_id: str, type: str | None = None) -> list[dict[str, Any]]:
        filters: dict[str, Any] = {"user_id": user_id}
        if type:
            filters["type"] = type
        return self.db.select("prompts", filters=filters, order_by="created_at", ascending=False)

    def history(self, prompt_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Versions of a prompt, newest first."""
        return self.db.select(
            "prompt_versions",
            filters={"prompt_id": prompt_id},
            order_by="version_number",
            ascending=False,
            limit=limit,
        )

    def commit(self, prompt_id: str, user_id: str, content: str) -> dict[str, Any]:
        """Save new prompt text as the next version."""
        self.get_owned(prompt_id, user_id)
        if not content.strip():
            raise ValueError("Prompt content is required")
        latest = self.history(prompt_id, limit=1)
        next_version = latest[0]["version_number"] + 1 if latest else 1
        version = self.db.insert(
            "prompt_versions",
            {"prompt_id": prompt_id, "version_number": next_version, "content": content},
        )
        logger.info("prompt.committed", prompt_id=prompt_id, version=next_version)
        return version

    def set_active(self, prompt_id: str, user_id: str) -> dict[str, Any]:
        prompt = self.get_owned(prompt_id, user_id)
        for other in self.db.select(
            "prompts", filters={"user_id": user_id, "type": prompt["type"], "is_active": True}
        ):
            if str(other["id"]) != str(prompt_id):
                self.db.update("prompts", str(other["id"]), {"is_active": False})
        updated = self.db.update("prompts", prompt_id, {"is_active": True})
        logger.info("prompt.activated", prompt_id=prompt_id, type=prompt["type"])
        return updated

    def delete_prompt(self, prompt_id: str, user_id: str) -> None:
        self.get_owned(prompt_id, user_id)
        self.db.delete_in("prompt_versions", "prompt_id", [prompt_id])
        self.db.delete("prompts", prompt_id)
        logger.info("prompt.deleted", prompt_id=prompt_id)

    def active_content(self, user_id: str, type: str) -> str | None:
        """Text of the latest version of the active prompt of a type."""
        active = self.db.select("prompts", filters={"user_id": user_id, "type": type, "is_active": True})
        if not active:
            return None
        latest = self.history(str(active[0]["id"]), limit=1)
        return latest[0]["content"] if latest else None


@lru_cache
def get_prompt_manager() -> PromptManager:
    """Get cached prompt manager instance."""
    return PromptManager(get_supabase_client())
