"""Tests for share tokens, joining, and collaborator management."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from oplai.core.playbooks import PlaybookStore
from oplai.core.sharing import NotFoundError, SharingService
from tests.conftest import OTHER, OWNER


@pytest.fixture
def sharing(mock_db) -> SharingService:
    return SharingService(mock_db)


@pytest.fixture
def playbook(mock_db) -> dict:
    return PlaybookStore(mock_db).create_playbook(OWNER.id, "Intro", "<p>Hi</p>")


class TestTokens:
    def test_issue_always_creates_new_token(self, sharing, playbook):
        first = sharing.issue_token(playbook["id"], OWNER.id)
        second = sharing.issue_token(playbook["id"], OWNER.id)
        assert first["token"] != second["token"]
        assert sharing.current_token(playbook["id"])["id"] == second["id"]

    def test_only_owner_issues(self, sharing, playbook):
        with pytest.raises(PermissionError):
            sharing.issue_token(playbook["id"], OTHER.id)

    def test_unknown_playbook(self, sharing):
        with pytest.raises(ValueError):
            sharing.issue_token("missing", OWNER.id)

    def test_deactivated_token_is_not_current(self, sharing, playbook):
        share = sharing.issue_token(playbook["id"], OWNER.id)
        sharing.deactivate_token(share["id"], OWNER.id)
        assert sharing.current_token(playbook["id"]) is None

    def test_deactivate_under_another_playbook(self, sharing, playbook):
        share = sharing.issue_token(playbook["id"], OWNER.id)
        with pytest.raises(NotFoundError):
            sharing.deactivate_token(share["id"], OWNER.id, playbook_id="other-playbook")
        assert sharing.current_token(playbook["id"])["id"] == share["id"]


class TestRedeem:
    def test_redeem_grants_editor(self, sharing, playbook, mock_db):
        share = sharing.issue_token(playbook["id"], OWNER.id)
        result = sharing.redeem(share["token"], OTHER.id)
        assert result.playbook_id == playbook["id"]
        assert result.already_collaborator is False
        grant = mock_db.rows("playbook_collaborators")[0]
        assert grant["user_id"] == OTHER.id
        assert grant["role"] == "editor"

    def test_redeem_twice_reports_existing_grant(self, sharing, playbook, mock_db):
        share = sharing.issue_token(playbook["id"], OWNER.id)
        sharing.redeem(share["token"], OTHER.id)
        result = sharing.redeem(share["token"], OTHER.id)
        assert result.already_collaborator is True
        assert result.message == "Already a collaborator"
        assert len(mock_db.rows("playbook_collaborators")) == 1

    @pytest.mark.parametrize(
        "token, message",
        [("", "Token is required"), ("bogus", "Invalid share link")],
    )
    def test_bad_tokens(self, sharing, token, message):
        with pytest.raises(ValueError, match=message):
            sharing.redeem(token, OTHER.id)

    def test_inactive_token(self, sharing, playbook):
        share = sharing.issue_token(playbook["id"], OWNER.id)
        sharing.deactivate_token(share["id"], OWNER.id)
        with pytest.raises(ValueError, match="no longer active"):
            sharing.redeem(share["token"], OTHER.id)

    def test_expired_token(self, sharing, playbook):
        share = sharing.issue_token(playbook["id"], OWNER.id, expires_in_days=1)
        later = datetime.now(timezone.utc) + timedelta(days=2)
        with pytest.raises(ValueError, match="expired"):
            sharing.redeem(share["token"], OTHER.id, now=later)

    def test_grant_failure(self, sharing, playbook, mock_db):
        share = sharing.issue_token(playbook["id"], OWNER.id)
        mock_db.fail_on.add(("insert", "playbook_collaborators"))
        with pytest.raises(ValueError, match="Failed to add collaborator"):
            sharing.redeem(share["token"], OTHER.id)


class TestCollaborators:
    def test_invite_by_email(self, sharing, playbook):
        row = sharing.invite_by_email(playbook["id"], OWNER.id, "  other@example.com ")
        assert row["user_id"] == OTHER.id
        listed = sharing.list_collaborators(playbook["id"])
        assert listed[0]["email"] == OTHER.email

    def test_invite_errors(self, sharing, playbook):
        with pytest.raises(ValueError, match="enter an email"):
            sharing.invite_by_email(playbook["id"], OWNER.id, " ")
        with pytest.raises(ValueError, match="User not found"):
            sharing.invite_by_email(playbook["id"], OWNER.id, "nobody@example.com")
        sharing.invite_by_email(playbook["id"], OWNER.id, OTHER.email)
        with pytest.raises(ValueError, match="already a collaborator"):
            sharing.invite_by_email(playbook["id"], OWNER.id, OTHER.email)

    def test_invite_is_owner_only(self, sharing, playbook):
        with pytest.raises(PermissionError):
            sharing.invite_by_email(playbook["id"], OTHER.id, OWNER.email)


class TestShareFlow:
    def test_share_join_remove(self, client, other_client):
        """Owner shares, a second user joins and sees the playbook, owner revokes access."""
        pb = client.post("/api/v1/playbooks", json={"title": "Intro"}).json()
        share = client.post(f"/api/v1/playbooks/{pb['id']}/shares", json={}).json()

        joined = other_client.post("/join-playbook", json={"token": share["token"]})
        assert joined.status_code == 200
        assert joined.json() == {"success": True, "playbookId": pb["id"]}

        assert other_client.get(f"/api/v1/playbooks/{pb['id']}").json()["role"] == "editor"
        assert [p["title"] for p in other_client.get("/api/v1/playbooks").json()] == ["Intro"]

        again = other_client.post("/join-playbook", json={"token": share["token"]}).json()
        assert again["message"] == "Already a collaborator"

        collaborators = client.get(f"/api/v1/playbooks/{pb['id']}/collaborators").json()
        assert len(collaborators) == 1
        assert collaborators[0]["email"] == OTHER.email

        removed = client.delete(f"/api/v1/playbooks/{pb['id']}/collaborators/{collaborators[0]['id']}")
        assert removed.status_code == 204
        assert other_client.get(f"/api/v1/playbooks/{pb['id']}").status_code == 403

    def test_join_errors_use_error_body(self, other_client):
        resp = other_client.post("/join-playbook", json={"token": "bogus"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid share link"}

    def test_join_requires_auth(self, anon_client):
        assert anon_client.post("/join-playbook", json={"token": "x"}).status_code == 401

    def test_non_owner_cannot_share(self, client, other_client):
        pb = client.post("/api/v1/playbooks", json={"title": "Intro"}).json()
        assert other_client.post(f"/api/v1/playbooks/{pb['id']}/shares", json={}).status_code == 403

    def test_current_and_revoke(self, client):
        pb = client.post("/api/v1/playbooks", json={"title": "Intro"}).json()
        assert client.get(f"/api/v1/playbooks/{pb['id']}/shares/current").status_code == 404
        share = client.post(f"/api/v1/playbooks/{pb['id']}/shares", json={"expires_in_days": 7}).json()
        assert share["expires_at"] is not None
        assert client.get(f"/api/v1/playbooks/{pb['id']}/shares/current").json()["id"] == share["id"]
        assert client.delete(f"/api/v1/playbooks/{pb['id']}/shares/{share['id']}").status_code == 204
        assert client.get(f"/api/v1/playbooks/{pb['id']}/shares/current").status_code == 404

    def test_ids_must_match_the_playbook_in_the_path(self, client, other_client):
        first = client.post("/api/v1/playbooks", json={"title": "First"}).json()
        second = client.post("/api/v1/playbooks", json={"title": "Second"}).json()
        share = client.post(f"/api/v1/playbooks/{first['id']}/shares", json={}).json()
        other_client.post("/join-playbook", json={"token": share["token"]})
        collaborator = client.get(f"/api/v1/playbooks/{first['id']}/collaborators").json()[0]

        assert client.delete(f"/api/v1/playbooks/{second['id']}/shares/{share['id']}").status_code == 404
        resp = client.delete(f"/api/v1/playbooks/{second['id']}/collaborators/{collaborator['id']}")
        assert resp.status_code == 404

        assert client.get(f"/api/v1/playbooks/{first['id']}/shares/current").json()["id"] == share["id"]
        assert other_client.get(f"/api/v1/playbooks/{first['id']}").json()["role"] == "editor"

    @pytest.mark.parametrize(
        "path",
        [
            "/api/v1/playbooks/not-a-uuid/shares/current",
            "/api/v1/playbooks/not-a-uuid/collaborators",
        ],
    )
    def test_malformed_ids_are_not_found(self, client, path):
        assert client.get(path).status_code == 404

    def test_unknown_playbook_is_not_found(self, client):
        missing = "00000000-0000-0000-0000-000000000000"
        assert client.post(f"/api/v1/playbooks/{missing}/shares", json={}).status_code == 404
