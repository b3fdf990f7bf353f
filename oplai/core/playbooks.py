"""Playbook store: remote CRUD for playbooks and their questions."""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any

import structlog

from oplai.core.drafts import DraftPlaybook, DraftQuestion, Feedback, GeneratedAnswer
from oplai.core.events import publish_event_sync
from oplai.db.client import SupabaseClient, get_supabase_client

logger = structlog.get_logger()


def _to_ms(value: Any) -> int:
    if not value:
        return 0
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return int(value.timestamp() * 1000)


class PlaybookStore:
    """Owns playbooks, questions and answers in the relational store."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    # --- Playbooks ---

    def create_playbook(
        self,
        user_id: str,
        title: str,
        content: str = "",
        playbook_id: str | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {"user_id": user_id, "title": title, "content": content}
        if playbook_id:
            data["id"] = playbook_id
        playbook = self.db.insert("playbooks", data)
        logger.info("playbook.created", playbook_id=playbook["id"], user_id=user_id)
        publish_event_sync(str(playbook["id"]), "created", {"title": title})
        return playbook

    def get_playbook(self, playbook_id: str) -> dict[str, Any] | None:
        results = self.db.select("playbooks", filters={"id": playbook_id})
        return results[0] if results else None

    def owned_ids(self, user_id: str) -> set[str]:
        return {str(p["id"]) for p in self.db.select("playbooks", filters={"user_id": user_id})}

    def list_owned(self, user_id: str) -> list[dict[str, Any]]:
        return self.db.select(
            "playbooks", filters={"user_id": user_id}, order_by="created_at", ascending=False
        )

    def list_playbooks(self, user_id: str) -> list[dict[str, Any]]:
        """Playbooks the user owns plus those shared with them."""
        owned = self.list_owned(user_id)
        memberships = self.db.select("playbook_collaborators", filters={"user_id": user_id})
        owned_ids = {str(p["id"]) for p in owned}
        shared_ids = [
            str(m["playbook_id"]) for m in memberships if str(m["playbook_id"]) not in owned_ids
        ]
        shared = self.db.select_in("playbooks", "id", shared_ids)
        return owned + shared

    def role_for(self, playbook: dict[str, Any], user_id: str) -> str | None:
        """Return "owner", the collaborator role, or None for outsiders."""
        if str(playbook["user_id"]) == str(user_id):
            return "owner"
        rows = self.db.select(
            "playbook_collaborators",
            filters={"playbook_id": str(playbook["id"]), "user_id": user_id},
        )
        return rows[0]["role"] if rows else None

    def update_playbook(
        self,
        playbook_id: str,
        title: str | None = None,
        content: str | None = None,
    ) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        if title is not None:
            updates["title"] = title
        if content is not None:
            updates["content"] = content
        if not updates:
            playbook = self.get_playbook(playbook_id)
            if playbook is None:
                raise ValueError(f"Playbook '{playbook_id}' not found")
            return playbook
        updated = self.db.update("playbooks", playbook_id, updates)
        logger.info("playbook.updated", playbook_id=playbook_id, fields=list(updates))
        publish_event_sync(playbook_id, "updated", {"fields": list(updates)})
        return updated

    def delete_playbook(self, playbook_id: str, user_id: str) -> bool:
        """Delete a playbook and everything hanging off it. Owner only."""
        playbook = self.get_playbook(playbook_id)
        if not playbook:
            return False
        if str(playbook["user_id"]) != str(user_id):
            raise PermissionError("Only the owner can delete a playbook")

        question_ids = [
            str(q["id"]) for q in self.db.select("questions", filters={"playbook_id": playbook_id})
        ]
        self.db.delete_in("answers", "question_id", question_ids)
        self.db.delete_in("questions", "id", question_ids)
        self.db.delete_in("playbook_collaborators", "playbook_id", [playbook_id])
        self.db.delete_in("playbook_shares", "playbook_id", [playbook_id])
        self.db.delete("playbooks", playbook_id)
        logger.info("playbook.deleted", playbook_id=playbook_id, questions=len(question_ids))
        publish_event_sync(playbook_id, "deleted", {})
        return True

    # --- Questions ---

    def latest_answer(self, question_id: str) -> dict[str, Any] | None:
        answers = self.db.select(
            "answers",
            filters={"question_id": question_id},
            order_by="created_at",
            ascending=False,
            limit=1,
        )
        return answers[0] if answers else None

    def load_questions(self, playbook_id: str) -> list[dict[str, Any]]:
        """Questions in creation order, each with its current answer and score."""
        questions = self.db.select(
            "questions", filters={"playbook_id": playbook_id}, order_by="created_at"
        )
        result = []
        for q in questions:
            answer = self.latest_answer(str(q["id"]))
            result.append(
                {
                    "id": str(q["id"]),
                    "question": q["question"],
                    "answer": answer["answer"] if answer else None,
                    "score": answer.get("score") if answer else None,
                    "created_at": q.get("created_at"),
                }
            )
        return result

    def sync_questions(
        self,
        playbook_id: str,
        user_id: str,
        questions: list[DraftQuestion],
    ) -> dict[str, int]:
        """Make the stored question set match ``questions`` by id.

        Removed ids are deleted, unknown ids inserted, known ids have their
        text and current answer/score overwritten.
        """
        existing = self.db.select("questions", filters={"playbook_id": playbook_id})
        existing_ids = {str(q["id"]) for q in existing}
        current_ids = {q.id for q in questions}

        to_delete = [qid for qid in existing_ids if qid not in current_ids]
        self.db.delete_in("answers", "question_id", to_delete)
        self.db.delete_in("questions", "id", to_delete)

        inserted = updated = 0
        for q in questions:
            score = q.feedback.score if q.feedback else None
            if q.id not in existing_ids:
                self.db.insert(
                    "questions",
                    {"id": q.id, "playbook_id": playbook_id, "user_id": user_id, "question": q.question},
                )
                if q.current_answer:
                    self.db.insert(
                        "answers",
                        {
                            "question_id": q.id,
                            "user_id": user_id,
                            "answer": q.current_answer,
                            "score": score,
                        },
                    )
                inserted += 1
                continue

            self.db.update("questions", q.id, {"question": q.question})
            if q.current_answer:
                self._upsert_answer(q.id, user_id, q.current_answer, score)
            updated += 1

        logger.info(
            "playbook.questions_synced",
            playbook_id=playbook_id,
            inserted=inserted,
            updated=updated,
            deleted=len(to_delete),
        )
        return {"inserted": inserted, "updated": updated, "deleted": len(to_delete)}

    def _upsert_answer(self, question_id: str, user_id: str, text: str, score: int | None) -> None:
        if self.db.select("answers", filters={"question_id": question_id}, limit=1):
            self.db.update_where(
                "answers", {"question_id": question_id}, {"answer": text, "score": score}
            )
        else:
            self.db.insert(
                "answers",
                {"question_id": question_id, "user_id": user_id, "answer": text, "score": score},
            )

    def to_draft(self, playbook: dict[str, Any]) -> DraftPlaybook:
        """Build the local draft shape from stored rows.

        Feedback thumbs are derived from the score here, the same way they
        are shown to a reader of the stored data.
        """
        questions = []
        for q in self.load_questions(str(playbook["id"])):
            draft = DraftQuestion(id=q["id"], question=q["question"])
            if q["answer"]:
                draft.answers.append(GeneratedAnswer(text=q["answer"], provider="remote"))
            if q["score"] is not None:
                draft.feedback = Feedback.from_score(q["score"])
            questions.append(draft)
        return DraftPlaybook(
            id=str(playbook["id"]),
            title=playbook["title"],
            content=playbook.get("content") or "",
            created_at=_to_ms(playbook.get("created_at")),
            updated_at=_to_ms(playbook.get("updated_at")),
            questions=questions,
        )


@lru_cache
def get_playbook_store() -> PlaybookStore:
    """Get cached playbook store instance."""
    return PlaybookStore(get_supabase_client())
