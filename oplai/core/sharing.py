"""Sharing: share tokens and collaborator grants."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import structlog

from oplai.db.client import SupabaseClient, UniqueViolationError, get_supabase_client
from oplai.db.models import ShareRow

logger = structlog.get_logger()

COLLABORATOR_ROLE = "editor"


def new_token() -> str:
    return secrets.token_urlsafe(24)


@dataclass
class JoinResult:
    playbook_id: str
    already_collaborator: bool = False
    message: str | None = None


class NotFoundError(ValueError):
    """A share, collaborator or playbook that does not exist for this caller."""


class SharingService:
    """Issues share tokens, redeems them, and manages collaborators."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def require_owner(self, playbook_id: str, user_id: str) -> dict[str, Any]:
        rows = self.db.select("playbooks", filters={"id": playbook_id})
        if not rows:
            raise NotFoundError(f"Playbook '{playbook_id}' not found")
        if str(rows[0]["user_id"]) != str(user_id):
            raise PermissionError("Only the playbook owner can manage sharing")
        return rows[0]

    # --- Tokens ---

    def issue_token(
        self, playbook_id: str, user_id: str, expires_in_days: int | None = None
    ) -> dict[str, Any]:
        """Create a new active token. Existing tokens stay valid."""
        self.require_owner(playbook_id, user_id)
        expires_at = None
        if expires_in_days is not None:
            expires_at = (datetime.now(timezone.utc) + timedelta(days=expires_in_days)).isoformat()
        share = self.db.insert(
            "playbook_shares",
            {
                "token": new_token(),
                "playbook_id": playbook_id,
                "created_by": user_id,
                "is_active": True,
                "expires_at": expires_at,
            },
        )
        logger.info("share.issued", playbook_id=playbook_id, share_id=share["id"])
        return share

    def current_token(self, playbook_id: str) -> dict[str, Any] | None:
        """The most recently issued active token, if any."""
        rows = self.db.select(
            "playbook_shares",
            filters={"playbook_id": playbook_id, "is_active": True},
            order_by="created_at",
            ascending=False,
            limit=1,
        )
        return rows[0] if rows else None

    def deactivate_token(
        self, share_id: str, user_id: str, playbook_id: str | None = None
    ) -> dict[str, Any]:
        rows = self.db.select("playbook_shares", filters={"id": share_id})
        if not rows or (playbook_id and str(rows[0]["playbook_id"]) != playbook_id):
            raise NotFoundError(f"Share '{share_id}' not found")
        self.require_owner(str(rows[0]["playbook_id"]), user_id)
        updated = self.db.update("playbook_shares", share_id, {"is_active": False})
        logger.info("share.deactivated", share_id=share_id)
        return updated

    def redeem(self, token: str, user_id: str, now: datetime | None = None) -> JoinResult:
        """Turn a share token into an editor grant for ``user_id``."""
        if not token:
            raise ValueError("Token is required")
        rows = self.db.select("playbook_shares", filters={"token": token})
        if not rows:
            logger.info("share.not_found")
            raise ValueError("Invalid share link")
        share = ShareRow.model_validate(rows[0])

        if not share.is_active:
            raise ValueError("Share link is no longer active")
        now = now or datetime.now(timezone.utc)
        if share.expires_at is not None and share.expires_at < now:
            raise ValueError("Share link has expired")

        playbook_id = str(share.playbook_id)
        existing = self.db.select(
            "playbook_collaborators", filters={"playbook_id": playbook_id, "user_id": user_id}
        )
        if existing:
            logger.info("share.already_collaborator", playbook_id=playbook_id, user_id=user_id)
            return JoinResult(playbook_id, already_collaborator=True, message="Already a collaborator")

        try:
            self.db.insert(
                "playbook_collaborators",
                {"playbook_id": playbook_id, "user_id": user_id, "role": COLLABORATOR_ROLE},
            )
        except UniqueViolationError:
            return JoinResult(playbook_id, already_collaborator=True, message="Already a collaborator")
        except Exception as e:
            logger.error("share.grant_failed", playbook_id=playbook_id, error=str(e))
            raise ValueError("Failed to add collaborator") from e

        logger.info("share.redeemed", playbook_id=playbook_id, user_id=user_id)
        return JoinResult(playbook_id)

    # --- Collaborators ---

    def list_collaborators(self, playbook_id: str) -> list[dict[str, Any]]:
        collaborators = self.db.select("playbook_collaborators", filters={"playbook_id": playbook_id})
        profiles = self.db.select_in("profiles", "id", [str(c["user_id"]) for c in collaborators])
        by_id = {str(p["id"]): p for p in profiles}
        return [
            {
                **c,
                "full_name": by_id.get(str(c["user_id"]), {}).get("full_name"),
                "email": by_id.get(str(c["user_id"]), {}).get("email"),
            }
            for c in collaborators
        ]

    def invite_by_email(self, playbook_id: str, owner_id: str, email: str) -> dict[str, Any]:
        self.require_owner(playbook_id, owner_id)
        email = email.strip()
        if not email:
            raise ValueError("Please enter an email address")
        profiles = self.db.select("profiles", filters={"email": email})
        if not profiles:
            raise ValueError("User not found")
        try:
            row = self.db.insert(
                "playbook_collaborators",
                {"playbook_id": playbook_id, "user_id": str(profiles[0]["id"]), "role": COLLABORATOR_ROLE},
            )
        except UniqueViolationError as e:
            raise ValueError("User is already a collaborator") from e
        logger.info("collaborator.invited", playbook_id=playbook_id, user_id=row["user_id"])
        return row

    def remove_collaborator(
        self, collaborator_id: str, owner_id: str, playbook_id: str | None = None
    ) -> None:
        rows = self.db.select("playbook_collaborators", filters={"id": collaborator_id})
        if not rows or (playbook_id and str(rows[0]["playbook_id"]) != playbook_id):
            raise NotFoundError(f"Collaborator '{collaborator_id}' not found")
        self.require_owner(str(rows[0]["playbook_id"]), owner_id)
        self.db.delete("playbook_collaborators", collaborator_id)
        logger.info("collaborator.removed", collaborator_id=collaborator_id)


@lru_cache
def get_sharing_service() -> SharingService:
    """Get cached sharing service instance."""
    return SharingService(get_supabase_client())
