"""Tests for the local draft store and session-owner eviction."""

from __future__ import annotations

import json

import pytest

from oplai.core.drafts import (
    LAST_USER_KEY,
    PLAYBOOKS_KEY,
    DraftPlaybook,
    DraftQuestion,
    DraftStore,
    Feedback,
    reconcile_session_owner,
)


@pytest.fixture
def store(tmp_path) -> DraftStore:
    return DraftStore(tmp_path / "drafts.json")


class TestReconcileSessionOwner:
    def test_first_sign_in_keeps_cache(self):
        decision = reconcile_session_owner(None, "user-a")
        assert decision.should_clear is False
        assert decision.new_owner == "user-a"

    def test_same_user_keeps_cache(self):
        assert reconcile_session_owner("user-a", "user-a").should_clear is False

    def test_different_user_clears_cache(self):
        decision = reconcile_session_owner("user-a", "user-b")
        assert decision.should_clear is True
        assert decision.new_owner == "user-b"

    def test_empty_previous_owner_is_not_an_owner(self):
        assert reconcile_session_owner("", "user-b").should_clear is False


class TestLegacyAnswerMigration:
    def test_single_answer_becomes_first_generated_answer(self):
        q = DraftQuestion.model_validate({"id": "q1", "question": "Why?", "answer": "Because."})
        assert q.current_answer == "Because."
        assert q.answers[0].provider == "legacy"

    def test_legacy_answer_goes_in_front_of_existing_answers(self):
        q = DraftQuestion.model_validate(
            {
                "question": "Why?",
                "answer": "Old",
                "answers": [{"text": "New", "provider": "openai", "model": "", "timestamp": 1}],
            }
        )
        assert [a.text for a in q.answers] == ["Old", "New"]

    def test_legacy_answer_already_present_is_not_duplicated(self):
        q = DraftQuestion.model_validate(
            {"question": "Why?", "answer": "Same", "answers": [{"text": "Same", "timestamp": 1}]}
        )
        assert len(q.answers) == 1

    def test_empty_legacy_answer_is_dropped(self):
        q = DraftQuestion.model_validate({"question": "Why?", "answer": ""})
        assert q.answers == []
        assert q.current_answer is None


class TestFeedback:
    def test_score_alone_seeds_thumbs(self):
        assert Feedback.from_score(80).thumbs_up is True
        assert Feedback.from_score(49).thumbs_up is False

    def test_score_and_thumbs_are_independent(self):
        q = DraftQuestion(question="Q")
        q.set_thumbs(True)
        q.set_score(20)
        assert q.feedback.thumbs_up is True
        assert q.feedback.score == 20

        q.set_thumbs(False)
        assert q.feedback.score == 20

    def test_score_bounds(self):
        with pytest.raises(ValueError):
            Feedback(score=101)

    def test_newest_answer_is_current(self):
        q = DraftQuestion(question="Q")
        q.add_answer("first")
        q.add_answer("second", provider="anthropic")
        assert q.current_answer == "second"
        assert q.answers[0].provider == "anthropic"


class TestDraftStore:
    def test_empty_store(self, store):
        assert store.playbooks() == []
        assert store.get_playbook("nope") is None

    def test_save_and_load_uses_camel_case_on_disk(self, store):
        draft = DraftPlaybook(title="Intro", content="<p>Hi</p>")
        draft.questions.append(DraftQuestion(question="What is this about?"))
        store.save_playbook(draft)

        raw = json.loads(store.path.read_text())
        entry = raw[PLAYBOOKS_KEY][0]
        assert "createdAt" in entry
        assert "selectedDocuments" in entry

        loaded = store.get_playbook(draft.id)
        assert loaded.title == "Intro"
        assert loaded.questions[0].question == "What is this about?"

    def test_save_replaces_by_id(self, store):
        draft = DraftPlaybook(title="One")
        store.save_playbook(draft)
        draft.title = "Two"
        store.save_playbook(draft)
        assert [p.title for p in store.playbooks()] == ["Two"]

    def test_delete(self, store):
        draft = DraftPlaybook(title="One")
        store.save_playbook(draft)
        assert store.delete_playbook(draft.id) is True
        assert store.delete_playbook(draft.id) is False

    def test_invalid_entries_are_skipped(self, store):
        store.set(PLAYBOOKS_KEY, [{"title": "Good"}, {"content": "no title"}])
        assert [p.title for p in store.playbooks()] == ["Good"]

    def test_corrupt_file_reads_as_empty(self, store):
        store.path.write_text("{not json")
        assert store.playbooks() == []

    def test_legacy_file_is_migrated_on_load(self, store):
        store.path.write_text(
            json.dumps(
                {
                    PLAYBOOKS_KEY: [
                        {
                            "id": "p1",
                            "title": "Old",
                            "questions": [{"id": "q1", "question": "Q?", "answer": "A."}],
                        }
                    ]
                }
            )
        )
        assert store.get_playbook("p1").questions[0].current_answer == "A."


class TestSessionOwner:
    def test_switching_accounts_clears_user_data(self, store):
        store.apply_session_owner("user-a")
        store.save_playbook(DraftPlaybook(title="A's draft"))
        store.set("llmProvider", "openai")
        store.set("questionCount", "5")

        cleared = store.apply_session_owner("user-b")

        assert cleared is True
        assert store.playbooks() == []
        assert store.get("llmProvider") is None
        assert store.get("questionCount") is None
        assert store.get(LAST_USER_KEY) == "user-b"

    def test_same_account_keeps_data(self, store):
        store.apply_session_owner("user-a")
        store.save_playbook(DraftPlaybook(title="Mine"))
        assert store.apply_session_owner("user-a") is False
        assert len(store.playbooks()) == 1

    def test_first_sign_in_adopts_anonymous_drafts(self, store):
        store.save_playbook(DraftPlaybook(title="Offline"))
        assert store.apply_session_owner("user-a") is False
        assert len(store.playbooks()) == 1
