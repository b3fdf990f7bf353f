"""Local Draft Store: the on-disk cache of playbooks that have not reached the server yet.

The store is a single JSON object. Draft playbooks live under ``plaibooks``;
a handful of string preference keys sit next to them. Everything the store
holds belongs to one account, so the whole user-scoped set is evicted when
a different user signs in (see ``reconcile_session_owner``).
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

logger = structlog.get_logger()

PLAYBOOKS_KEY = "plaibooks"
LAST_USER_KEY = "last_user_id"
PREFERENCE_KEYS = ("llmProvider", "questionCount", "questionSystemPrompt", "answerSystemPrompt")
USER_SCOPED_KEYS = (PLAYBOOKS_KEY, *PREFERENCE_KEYS)


def _now_ms() -> int:
    return int(time.time() * 1000)


class _DraftModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeneratedAnswer(_DraftModel):
    text: str
    provider: str = "gateway"
    model: str = ""
    timestamp: int = Field(default_factory=_now_ms)


class Feedback(_DraftModel):
    """Reviewer feedback on an answer.

    ``thumbs_up`` and ``score`` are set by different controls and are never
    reconciled with each other, so they can disagree (thumbs up with a score
    of 20). Only a feedback created from a score alone derives its initial
    thumbs from it.
    """

    thumbs_up: bool = False
    score: int | None = Field(default=None, ge=0, le=100)

    @classmethod
    def from_score(cls, score: int) -> Feedback:
        return cls(thumbs_up=score >= 50, score=score)


class DraftQuestion(_DraftModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    question: str
    answers: list[GeneratedAnswer] = Field(default_factory=list)
    feedback: Feedback | None = None

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_answer(cls, data: Any) -> Any:
        """Fold the old single ``answer`` field into ``answers``."""
        if not isinstance(data, dict) or "answer" not in data:
            return data
        data = dict(data)
        legacy = data.pop("answer")
        if legacy:
            answers = list(data.get("answers") or [])
            texts = {a.get("text") if isinstance(a, dict) else a.text for a in answers}
            if legacy not in texts:
                answers.insert(0, {"text": legacy, "provider": "legacy"})
            data["answers"] = answers
        return data

    @property
    def current_answer(self) -> str | None:
        return self.answers[0].text if self.answers else None

    def add_answer(self, text: str, provider: str = "gateway", model: str = "") -> None:
        """Record a new answer; the newest answer is the current one."""
        self.answers.insert(0, GeneratedAnswer(text=text, provider=provider, model=model))

    def set_score(self, score: int) -> None:
        if self.feedback is None:
            self.feedback = Feedback.from_score(score)
        else:
            self.feedback.score = score

    def set_thumbs(self, thumbs_up: bool) -> None:
        if self.feedback is None:
            self.feedback = Feedback(thumbs_up=thumbs_up)
        else:
            self.feedback.thumbs_up = thumbs_up


class DraftPlaybook(_DraftModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    content: str = ""
    created_at: int = Field(default_factory=_now_ms)
    updated_at: int = Field(default_factory=_now_ms)
    published: bool = False
    questions: list[DraftQuestion] = Field(default_factory=list)
    selected_documents: list[str] = Field(default_factory=list)

    def touch(self) -> None:
        self.updated_at = _now_ms()


@dataclass
class SessionDecision:
    should_clear: bool
    new_owner: str


def reconcile_session_owner(last_owner: str | None, new_owner: str) -> SessionDecision:
    """Decide whether cached data from a previous account must be evicted."""
    return SessionDecision(
        should_clear=bool(last_owner) and last_owner != new_owner,
        new_owner=new_owner,
    )


class DraftStore:
    """Persists drafts and preferences as one JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("drafts.load_failed", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2))

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, *keys: str) -> None:
        data = self._load()
        for key in keys:
            data.pop(key, None)
        self._save(data)

    def playbooks(self) -> list[DraftPlaybook]:
        """Return every stored draft, skipping entries that no longer validate."""
        drafts: list[DraftPlaybook] = []
        for raw in self.get(PLAYBOOKS_KEY, []):
            try:
                drafts.append(DraftPlaybook.model_validate(raw))
            except ValidationError as e:
                logger.warning("drafts.invalid_entry", error=str(e))
        return drafts

    def get_playbook(self, playbook_id: str) -> DraftPlaybook | None:
        return next((p for p in self.playbooks() if p.id == playbook_id), None)

    def save_playbook(self, playbook: DraftPlaybook) -> None:
        """Insert the draft, or replace the stored draft with the same id."""
        drafts = self.playbooks()
        for i, existing in enumerate(drafts):
            if existing.id == playbook.id:
                drafts[i] = playbook
                break
        else:
            drafts.append(playbook)
        self._write_playbooks(drafts)

    def delete_playbook(self, playbook_id: str) -> bool:
        drafts = self.playbooks()
        remaining = [p for p in drafts if p.id != playbook_id]
        if len(remaining) == len(drafts):
            return False
        self._write_playbooks(remaining)
        return True

    def _write_playbooks(self, drafts: list[DraftPlaybook]) -> None:
        self.set(PLAYBOOKS_KEY, [p.model_dump(by_alias=True, mode="json") for p in drafts])

    def apply_session_owner(self, user_id: str) -> bool:
        """Record the signed-in user, clearing cached data left by another account.

        Returns True when the cache was cleared.
        """
        decision = reconcile_session_owner(self.get(LAST_USER_KEY), user_id)
        if decision.should_clear:
            self.remove(*USER_SCOPED_KEYS)
            logger.info("drafts.cleared_for_new_owner", user_id=user_id)
        self.set(LAST_USER_KEY, decision.new_owner)
        return decision.should_clear
