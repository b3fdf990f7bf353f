"""Tests for the playbook store and playbook API routes."""

from __future__ import annotations

import pytest

from oplai.core.drafts import DraftQuestion, Feedback, GeneratedAnswer
from oplai.core.playbooks import PlaybookStore
from tests.conftest import OTHER, OWNER


@pytest.fixture
def store(mock_db) -> PlaybookStore:
    return PlaybookStore(mock_db)


def _q(text, qid=None, answer=None, score=None) -> DraftQuestion:
    q = DraftQuestion(question=text) if qid is None else DraftQuestion(id=qid, question=text)
    if answer:
        q.answers.append(GeneratedAnswer(text=answer))
    if score is not None:
        q.feedback = Feedback.from_score(score)
    return q


class TestPlaybookStore:
    def test_create_and_get(self, store):
        pb = store.create_playbook(OWNER.id, "Intro", "<p>Hi</p>")
        assert store.get_playbook(pb["id"])["title"] == "Intro"

    def test_list_includes_shared(self, store, mock_db):
        mine = store.create_playbook(OWNER.id, "Mine")
        theirs = store.create_playbook(OTHER.id, "Theirs")
        store.create_playbook(OTHER.id, "Private")
        mock_db.insert(
            "playbook_collaborators",
            {"playbook_id": theirs["id"], "user_id": OWNER.id, "role": "editor"},
        )
        titles = [p["title"] for p in store.list_playbooks(OWNER.id)]
        assert titles == ["Mine", "Theirs"]
        assert store.role_for(mine, OWNER.id) == "owner"
        assert store.role_for(theirs, OWNER.id) == "editor"
        assert store.role_for(mine, OTHER.id) is None

    def test_delete_cascades(self, store, mock_db):
        pb = store.create_playbook(OWNER.id, "Intro")
        store.sync_questions(pb["id"], OWNER.id, [_q("Q?", answer="A.")])
        mock_db.insert("playbook_shares", {"playbook_id": pb["id"], "token": "t", "created_by": OWNER.id})

        assert store.delete_playbook(pb["id"], OWNER.id) is True
        for table in ("playbooks", "questions", "answers", "playbook_shares"):
            assert mock_db.rows(table) == []

    def test_delete_is_owner_only(self, store):
        pb = store.create_playbook(OWNER.id, "Intro")
        with pytest.raises(PermissionError):
            store.delete_playbook(pb["id"], OTHER.id)

    def test_load_questions_uses_latest_answer(self, store, mock_db):
        pb = store.create_playbook(OWNER.id, "Intro")
        q = mock_db.insert("questions", {"playbook_id": pb["id"], "user_id": OWNER.id, "question": "Q?"})
        mock_db.insert("answers", {"question_id": q["id"], "user_id": OWNER.id, "answer": "old", "score": 10})
        mock_db.insert("answers", {"question_id": q["id"], "user_id": OWNER.id, "answer": "new", "score": 90})

        loaded = store.load_questions(pb["id"])
        assert loaded[0]["answer"] == "new"
        assert loaded[0]["score"] == 90

    def test_to_draft_derives_thumbs_from_score(self, store):
        pb = store.create_playbook(OWNER.id, "Intro")
        store.sync_questions(pb["id"], OWNER.id, [_q("Good?", answer="Yes", score=80), _q("Bad?", answer="No", score=20)])

        draft = store.to_draft(store.get_playbook(pb["id"]))
        assert [q.feedback.thumbs_up for q in draft.questions] == [True, False]
        assert draft.created_at > 0


class TestSyncQuestions:
    def test_remote_set_matches_list(self, store, mock_db):
        pb = store.create_playbook(OWNER.id, "Intro")
        store.sync_questions(pb["id"], OWNER.id, [_q("A?", qid="a"), _q("B?", qid="b")])

        result = store.sync_questions(pb["id"], OWNER.id, [_q("B edited?", qid="b"), _q("C?", qid="c")])

        assert result == {"inserted": 1, "updated": 1, "deleted": 1}
        rows = {q["id"]: q["question"] for q in mock_db.rows("questions")}
        assert rows == {"b": "B edited?", "c": "C?"}

    def test_answers_of_deleted_questions_go_too(self, store, mock_db):
        pb = store.create_playbook(OWNER.id, "Intro")
        store.sync_questions(pb["id"], OWNER.id, [_q("A?", qid="a", answer="yes")])
        store.sync_questions(pb["id"], OWNER.id, [])
        assert mock_db.rows("answers") == []

    def test_existing_answer_is_overwritten(self, store, mock_db):
        pb = store.create_playbook(OWNER.id, "Intro")
        store.sync_questions(pb["id"], OWNER.id, [_q("A?", qid="a", answer="first", score=40)])
        store.sync_questions(pb["id"], OWNER.id, [_q("A?", qid="a", answer="second", score=0)])

        answers = mock_db.rows("answers")
        assert len(answers) == 1
        assert answers[0]["answer"] == "second"
        assert answers[0]["score"] == 0


class TestPlaybookRoutes:
    def test_create_list_get(self, client):
        resp = client.post("/api/v1/playbooks", json={"title": "Intro", "content": "<p>Hi</p>"})
        assert resp.status_code == 201
        pb = resp.json()
        assert pb["role"] == "owner"

        listed = client.get("/api/v1/playbooks").json()
        assert [p["title"] for p in listed] == ["Intro"]

        detail = client.get(f"/api/v1/playbooks/{pb['id']}").json()
        assert detail["questions"] == []

    def test_duplicate_client_id_conflicts(self, client):
        pid = "33333333-3333-4333-8333-333333333333"
        assert client.post("/api/v1/playbooks", json={"title": "A", "id": pid}).status_code == 201
        assert client.post("/api/v1/playbooks", json={"title": "B", "id": pid}).status_code == 409

    def test_outsider_is_forbidden(self, client, other_client):
        pb = client.post("/api/v1/playbooks", json={"title": "Intro"}).json()
        assert other_client.get(f"/api/v1/playbooks/{pb['id']}").status_code == 403
        assert other_client.put(f"/api/v1/playbooks/{pb['id']}", json={"title": "x"}).status_code == 403
        assert other_client.delete(f"/api/v1/playbooks/{pb['id']}").status_code == 403

    def test_unknown_and_malformed_ids(self, client):
        assert client.get("/api/v1/playbooks/not-a-uuid").status_code == 404
        assert client.get("/api/v1/playbooks/44444444-4444-4444-8444-444444444444").status_code == 404

    def test_update_and_delete(self, client):
        pb = client.post("/api/v1/playbooks", json={"title": "Intro"}).json()
        resp = client.put(f"/api/v1/playbooks/{pb['id']}", json={"content": "<p>New</p>"})
        assert resp.json()["content"] == "<p>New</p>"
        assert client.delete(f"/api/v1/playbooks/{pb['id']}").status_code == 204
        assert client.get(f"/api/v1/playbooks/{pb['id']}").status_code == 404

    def test_put_questions(self, client):
        pb = client.post("/api/v1/playbooks", json={"title": "Intro"}).json()
        resp = client.put(
            f"/api/v1/playbooks/{pb['id']}/questions",
            json={"questions": [{"id": "q1", "question": "What is this about?", "answer": "Onboarding"}]},
        )
        assert resp.status_code == 200
        assert resp.json() == {"inserted": 1, "updated": 0, "deleted": 0}

        detail = client.get(f"/api/v1/playbooks/{pb['id']}").json()
        assert detail["questions"][0]["answer"] == "Onboarding"

    def test_requires_auth(self, anon_client):
        assert anon_client.get("/api/v1/playbooks").status_code == 401

    def test_bad_token(self, anon_client):
        resp = anon_client.get("/api/v1/playbooks", headers={"Authorization": "Bearer forged"})
        assert resp.status_code == 401

    def test_oversized_content_is_rejected(self, client):
        resp = client.post("/api/v1/playbooks", json={"title": "Big", "content": "x" * (1024 * 1024 + 1)})
        assert resp.status_code == 413
