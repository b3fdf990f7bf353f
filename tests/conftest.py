"""Test fixtures: mock Supabase client, fake remote services and shared test data."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient

from oplai.config import Settings
from oplai.db.client import AuthUser, SupabaseClient, UniqueViolationError

OWNER = AuthUser(id="11111111-1111-4111-8111-111111111111", email="owner@example.com")
OTHER = AuthUser(id="22222222-2222-4222-8222-222222222222", email="other@example.com")
TOKENS = {"owner-token": OWNER, "other-token": OTHER}

_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)

# Unique constraints beyond the primary key
_UNIQUE = {
    "playbook_collaborators": ("playbook_id", "user_id"),
    "data_sources": ("user_id", "provider"),
    "synced_files": ("data_source_id", "provider_file_id"),
}


class MockSupabaseClient(SupabaseClient):
    """In-memory mock of the Supabase client for testing.

    Rows get strictly increasing ``created_at`` stamps so ordering by
    creation time is deterministic. Add ``(operation, table)`` pairs to
    ``fail_on`` to make those calls raise.
    """

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._seq = 0
        self.users: dict[str, AuthUser] = dict(TOKENS)
        self.fail_on: set[tuple[str, str]] = set()

    def _stamp(self) -> str:
        self._seq += 1
        return (_EPOCH + timedelta(seconds=self._seq)).isoformat()

    def _check(self, op: str, table: str) -> None:
        if (op, table) in self.fail_on:
            raise RuntimeError(f"{op} on {table} failed")

    def _match(self, row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        return all(row.get(k) == v for k, v in (filters or {}).items())

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self._tables.setdefault(table, [])

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        self._check("insert", table)
        stamp = self._stamp()
        record = {"id": str(uuid4()), "created_at": stamp, "updated_at": stamp, **data}
        record["id"] = str(record["id"])
        existing = self.rows(table)
        if any(r["id"] == record["id"] for r in existing):
            raise UniqueViolationError(table, "id")
        keys = _UNIQUE.get(table)
        if keys and any(all(r.get(k) == record.get(k) for k in keys) for r in existing):
            raise UniqueViolationError(table, ",".join(keys))
        existing.append(record)
        return record

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        self._check("upsert", table)
        keys = on_conflict.split(",")
        for row in self.rows(table):
            if all(row.get(k) == data.get(k) for k in keys):
                row.update(data)
                return row
        return self.insert(table, data)

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check("select", table)
        rows = [r for r in self.rows(table) if self._match(r, filters)]
        if order_by:
            rows = sorted(rows, key=lambda r: r.get(order_by, 0), reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return rows

    def select_in(
        self,
        table: str,
        column: str,
        values: list[Any],
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        self._check("select", table)
        wanted = set(values)
        return [r for r in self.rows(table) if r.get(column) in wanted and self._match(r, filters)]

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        self._check("update", table)
        for row in self.rows(table):
            if row["id"] == id:
                row.update(data)
                row["updated_at"] = self._stamp()
                return row
        raise ValueError(f"Row {id} not found in {table}")

    def update_where(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        self._check("update", table)
        updated = [r for r in self.rows(table) if self._match(r, filters)]
        for row in updated:
            row.update(data)
        return updated

    def delete(self, table: str, id: str) -> None:
        self._check("delete", table)
        self._tables[table] = [r for r in self.rows(table) if r["id"] != id]

    def delete_in(self, table: str, column: str, values: list[Any]) -> None:
        self._check("delete", table)
        wanted = set(values)
        self._tables[table] = [r for r in self.rows(table) if r.get(column) not in wanted]

    def get_user(self, access_token: str) -> AuthUser | None:
        return self.users.get(access_token)


class FakeLLM:
    """Stands in for the chat-completion providers behind ``httpx.MockTransport``."""

    def __init__(self):
        self.reply = '["What is the refund window?", "Who approves refunds?"]'
        self.status = 200
        self.requests: list[dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append({"url": str(request.url), "headers": dict(request.headers), "body": body})
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "nope"})
        if "anthropic" in request.url.host:
            return httpx.Response(200, json={"content": [{"type": "text", "text": self.reply}]})
        return httpx.Response(200, json={"choices": [{"message": {"content": self.reply}}]})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeGoogle:
    """Google OAuth and Drive endpoints behind ``httpx.MockTransport``."""

    def __init__(self):
        self.files: list[dict[str, Any]] = []
        self.contents: dict[str, str] = {}
        self.token_status = 200
        self.calls: list[str] = []
        self.grants: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(f"{request.method} {request.url.path}")
        if request.url.host == "oauth2.googleapis.com":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.grants.append(form["grant_type"])
            if self.token_status != 200:
                return httpx.Response(self.token_status, text="invalid_grant")
            if form["grant_type"] == "refresh_token":
                return httpx.Response(200, json={"access_token": "access-2", "expires_in": 3600})
            return httpx.Response(
                200,
                json={"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600},
            )
        if request.url.path == "/oauth2/v2/userinfo":
            return httpx.Response(
                200,
                json={"id": "g-1", "email": "owner@gmail.com", "name": "Owner", "picture": "https://pic"},
            )
        if request.url.path == "/drive/v3/files":
            return httpx.Response(200, json={"files": self.files})
        file_id = request.url.path.rsplit("/", 1)[-1]
        if file_id in self.contents:
            return httpx.Response(200, text=self.contents[file_id])
        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def mock_db() -> MockSupabaseClient:
    """Fresh mock database for each test, with profiles for both test users."""
    db = MockSupabaseClient()
    db.insert("profiles", {"id": OWNER.id, "email": OWNER.email, "full_name": "Olive Owner"})
    db.insert("profiles", {"id": OTHER.id, "email": OTHER.email, "full_name": None})
    return db


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm_gateway_key="gateway-key",
        openai_api_key="openai-key",
        anthropic_api_key="anthropic-key",
        default_llm_provider="gateway",
        google_client_id="client-id",
        google_client_secret="client-secret",
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def sample_content() -> str:
    """Rich-text playbook body."""
    return (
        "<h1>Refund policy</h1><p>Customers may request a refund within&nbsp;30 days. "
        "Refunds over $500 need manager approval.</p>"
    )


@pytest.fixture
def app(mock_db, settings, fake_llm, fake_google):
    """FastAPI test app with mocked dependencies."""
    from oplai.config import get_settings
    from oplai.core.assistant import AssistantService, get_assistant_service
    from oplai.core.drive import GoogleDriveService, get_drive_service
    from oplai.core.endpoints import ApiEndpointService, get_endpoint_service
    from oplai.core.generation import GenerationService, LLMGateway, get_generation_service
    from oplai.core.playbooks import PlaybookStore, get_playbook_store
    from oplai.core.presence import PresenceHub, get_presence_hub
    from oplai.core.prompts import PromptManager, get_prompt_manager
    from oplai.core.reconcile import Reconciler, get_reconciler
    from oplai.core.sharing import SharingService, get_sharing_service
    from oplai.db.client import get_supabase_client
    from oplai.main import app as _app

    gateway = LLMGateway(settings, transport=fake_llm.transport)
    hub = PresenceHub()

    _app.dependency_overrides[get_settings] = lambda: settings
    _app.dependency_overrides[get_supabase_client] = lambda: mock_db
    _app.dependency_overrides[get_playbook_store] = lambda: PlaybookStore(mock_db)
    _app.dependency_overrides[get_reconciler] = lambda: Reconciler(mock_db)
    _app.dependency_overrides[get_sharing_service] = lambda: SharingService(mock_db)
    _app.dependency_overrides[get_endpoint_service] = lambda: ApiEndpointService(mock_db)
    _app.dependency_overrides[get_prompt_manager] = lambda: PromptManager(mock_db)
    _app.dependency_overrides[get_presence_hub] = lambda: hub
    _app.dependency_overrides[get_generation_service] = lambda: GenerationService(gateway)
    _app.dependency_overrides[get_assistant_service] = lambda: AssistantService(mock_db, gateway)
    _app.dependency_overrides[get_drive_service] = lambda: GoogleDriveService(
        mock_db, settings, transport=fake_google.transport
    )

    yield _app

    _app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client signed in as the owner."""
    c = TestClient(app)
    c.headers["Authorization"] = "Bearer owner-token"
    return c


@pytest.fixture
def other_client(app) -> TestClient:
    """HTTP test client signed in as a second user."""
    c = TestClient(app)
    c.headers["Authorization"] = "Bearer other-token"
    return c


@pytest.fixture
def anon_client(app) -> TestClient:
    return TestClient(app)
