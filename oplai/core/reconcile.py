"""One-way reconciliation of local drafts into the remote playbook store.

Local drafts always win for playbook title and content. Questions are
matched by their text, not their id, because drafts created offline have no
remote identity yet: a draft question whose text already exists remotely is
left alone, anything else is inserted with a fresh remote id. Nothing is
ever deleted remotely.

Every remote write stands on its own. A failure is logged and the pass moves
on to the next playbook or question; nothing is rolled back or retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

import structlog

from oplai.core.drafts import DraftPlaybook, DraftQuestion
from oplai.db.client import SupabaseClient, get_supabase_client

logger = structlog.get_logger()


@dataclass
class ReconcileReport:
    playbooks_inserted: int = 0
    playbooks_updated: int = 0
    questions_inserted: int = 0
    questions_skipped: int = 0
    answers_inserted: int = 0
    failures: list[str] = field(default_factory=list)


class Reconciler:
    """Folds a user's local drafts into the remote store."""

    def __init__(self, db: SupabaseClient) -> None:
        self.db = db

    def reconcile(self, user_id: str | None, drafts: list[DraftPlaybook]) -> ReconcileReport:
        report = ReconcileReport()
        if not user_id or not drafts:
            return report

        try:
            remote_ids = {
                str(p["id"]) for p in self.db.select("playbooks", filters={"user_id": user_id})
            }
        except Exception as e:
            logger.warning("reconcile.fetch_failed", user_id=user_id, error=str(e))
            report.failures.append(f"fetch playbooks: {e}")
            return report

        for draft in drafts:
            if not self._sync_playbook(user_id, draft, draft.id in remote_ids, report):
                continue
            if draft.questions:
                self._sync_questions(user_id, draft, report)

        logger.info(
            "reconcile.completed",
            user_id=user_id,
            playbooks_inserted=report.playbooks_inserted,
            playbooks_updated=report.playbooks_updated,
            questions_inserted=report.questions_inserted,
            failures=len(report.failures),
        )
        return report

    def _sync_playbook(
        self, user_id: str, draft: DraftPlaybook, exists: bool, report: ReconcileReport
    ) -> bool:
        """Insert or overwrite one playbook. Returns False if its questions must be skipped."""
        try:
            if exists:
                self.db.update("playbooks", draft.id, {"title": draft.title, "content": draft.content})
                report.playbooks_updated += 1
            else:
                self.db.insert(
                    "playbooks",
                    {"id": draft.id, "user_id": user_id, "title": draft.title, "content": draft.content},
                )
                report.playbooks_inserted += 1
        except Exception as e:
            logger.warning("reconcile.playbook_failed", playbook_id=draft.id, error=str(e))
            report.failures.append(f"playbook {draft.id}: {e}")
            # An update failure leaves the row in place, so its questions can still land.
            return exists
        return True

    def _sync_questions(self, user_id: str, draft: DraftPlaybook, report: ReconcileReport) -> None:
        try:
            existing = self.db.select("questions", filters={"playbook_id": draft.id})
        except Exception as e:
            logger.warning("reconcile.questions_fetch_failed", playbook_id=draft.id, error=str(e))
            report.failures.append(f"questions of {draft.id}: {e}")
            return

        # Text is the match key; duplicate texts collapse onto the last row.
        by_text = {q["question"]: str(q["id"]) for q in existing}

        for question in draft.questions:
            if question.question in by_text:
                report.questions_skipped += 1
                continue
            self._insert_question(user_id, draft.id, question, report)

    def _insert_question(
        self, user_id: str, playbook_id: str, question: DraftQuestion, report: ReconcileReport
    ) -> None:
        try:
            row = self.db.insert(
                "questions",
                {"playbook_id": playbook_id, "user_id": user_id, "question": question.question},
            )
        except Exception as e:
            logger.warning("reconcile.question_failed", playbook_id=playbook_id, error=str(e))
            report.failures.append(f"question {question.id}: {e}")
            return
        report.questions_inserted += 1

        answer = question.current_answer
        if not answer:
            return
        try:
            self.db.insert(
                "answers",
                {
                    "question_id": str(row["id"]),
                    "user_id": user_id,
                    "answer": answer,
                    "score": question.feedback.score if question.feedback else None,
                },
            )
            report.answers_inserted += 1
        except Exception as e:
            logger.warning("reconcile.answer_failed", question_id=str(row["id"]), error=str(e))
            report.failures.append(f"answer for {question.id}: {e}")


@lru_cache
def get_reconciler() -> Reconciler:
    """Get cached reconciler instance."""
    return Reconciler(get_supabase_client())
