"""Aggregate statistics over a user's playbooks."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from oplai.core.drafts import DraftPlaybook
from oplai.core.playbooks import PlaybookStore

RECENT_ACTIVITY_LIMIT = 5


@dataclass
class MonitorStats:
    total_playbooks: int = 0
    total_questions: int = 0
    answered_questions: int = 0
    pending_questions: int = 0
    average_score: int = 0
    positive_rate: int = 0
    recent_activity: list[dict[str, Any]] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_stats(playbooks: list[DraftPlaybook]) -> MonitorStats:
    """Count questions and answers and average the reviewer feedback.

    ``positive_rate`` is the share of questions with feedback whose thumbs
    are up; it is independent of the scores behind ``average_score``.
    """
    total = answered = scored = positive = with_feedback = 0
    score_sum = 0
    activity: list[dict[str, Any]] = []

    for playbook in playbooks:
        for question in playbook.questions:
            total += 1
            if question.current_answer:
                answered += 1
                activity.append(
                    {"playbook_title": playbook.title, "question": question.question, "has_answer": True}
                )
            if question.feedback is not None:
                with_feedback += 1
                if question.feedback.score is not None:
                    score_sum += question.feedback.score
                    scored += 1
                if question.feedback.thumbs_up:
                    positive += 1

    return MonitorStats(
        total_playbooks=len(playbooks),
        total_questions=total,
        answered_questions=answered,
        pending_questions=total - answered,
        average_score=_round_half_up(score_sum / scored) if scored else 0,
        positive_rate=_round_half_up(positive / with_feedback * 100) if with_feedback else 0,
        recent_activity=activity[:RECENT_ACTIVITY_LIMIT],
    )


def stats_for_user(store: PlaybookStore, user_id: str) -> MonitorStats:
    """Stats over every playbook visible to the user in the remote store."""
    return compute_stats([store.to_draft(p) for p in store.list_playbooks(user_id)])
