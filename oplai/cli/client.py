"""API client for the Oplai REST API."""

from __future__ import annotations

from typing import Any

import httpx

API_PREFIX = "/api/v1"


class OplaiClient:
    """HTTP client wrapping the Oplai API and function routes."""

    def __init__(
        self,
        base_url: str = "http://localhost:8400",
        auth_token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = httpx.Client(
            base_url=self.base_url, headers=headers, timeout=60, transport=transport
        )

    def _handle(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                body = resp.json()
                detail = body.get("detail") or body.get("error") or resp.text
            except Exception:
                detail = resp.text
            raise RuntimeError(f"API error ({resp.status_code}): {detail}")
        if resp.status_code == 204:
            return None
        return resp.json()

    def _api(self, method: str, path: str, **kwargs: Any) -> Any:
        return self._handle(self._client.request(method, f"{API_PREFIX}{path}", **kwargs))

    def _fn(self, name: str, payload: dict[str, Any] | None = None) -> Any:
        return self._handle(self._client.post(f"/{name}", json=payload or {}))

    # --- Identity ---

    def me(self) -> dict:
        return self._api("GET", "/me")

    # --- Playbooks ---

    def list_playbooks(self) -> list[dict]:
        return self._api("GET", "/playbooks")

    def create_playbook(self, data: dict) -> dict:
        return self._api("POST", "/playbooks", json=data)

    def get_playbook(self, playbook_id: str) -> dict:
        return self._api("GET", f"/playbooks/{playbook_id}")

    def update_playbook(self, playbook_id: str, data: dict) -> dict:
        return self._api("PUT", f"/playbooks/{playbook_id}", json=data)

    def delete_playbook(self, playbook_id: str) -> None:
        self._api("DELETE", f"/playbooks/{playbook_id}")

    def sync_questions(self, playbook_id: str, questions: list[dict]) -> dict:
        return self._api("PUT", f"/playbooks/{playbook_id}/questions", json={"questions": questions})

    def reconcile(self, playbooks: list[dict]) -> dict:
        return self._api("POST", "/playbooks/reconcile", json={"playbooks": playbooks})

    # --- Sharing ---

    def create_share(self, playbook_id: str, expires_in_days: int | None = None) -> dict:
        return self._api(
            "POST", f"/playbooks/{playbook_id}/shares", json={"expires_in_days": expires_in_days}
        )

    def current_share(self, playbook_id: str) -> dict:
        return self._api("GET", f"/playbooks/{playbook_id}/shares/current")

    def deactivate_share(self, playbook_id: str, share_id: str) -> None:
        self._api("DELETE", f"/playbooks/{playbook_id}/shares/{share_id}")

    def join(self, token: str) -> dict:
        return self._fn("join-playbook", {"token": token})

    def list_collaborators(self, playbook_id: str) -> list[dict]:
        return self._api("GET", f"/playbooks/{playbook_id}/collaborators")

    def invite(self, playbook_id: str, email: str) -> dict:
        return self._api("POST", f"/playbooks/{playbook_id}/collaborators", json={"email": email})

    def remove_collaborator(self, playbook_id: str, collaborator_id: str) -> None:
        self._api("DELETE", f"/playbooks/{playbook_id}/collaborators/{collaborator_id}")

    # --- API endpoints ---

    def list_endpoints(self) -> list[dict]:
        return self._api("GET", "/endpoints")

    def create_endpoint(self, data: dict) -> dict:
        return self._api("POST", "/endpoints", json=data)

    def set_endpoint_active(self, endpoint_id: str, active: bool) -> dict:
        return self._api("POST", f"/endpoints/{endpoint_id}/active", json={"is_active": active})

    def delete_endpoint(self, endpoint_id: str) -> None:
        self._api("DELETE", f"/endpoints/{endpoint_id}")

    def export_endpoint(self, endpoint_id: str) -> dict:
        return self._handle(self._client.get(f"/api-endpoint/{endpoint_id}"))

    # --- Prompts ---

    def list_prompts(self, **params: Any) -> list[dict]:
        return self._api("GET", "/prompts", params=params)

    def create_prompt(self, data: dict) -> dict:
        return self._api("POST", "/prompts", json=data)

    def commit_prompt(self, prompt_id: str, content: str) -> dict:
        return self._api("POST", f"/prompts/{prompt_id}/versions", json={"content": content})

    def prompt_history(self, prompt_id: str) -> list[dict]:
        return self._api("GET", f"/prompts/{prompt_id}/versions")

    def activate_prompt(self, prompt_id: str) -> dict:
        return self._api("POST", f"/prompts/{prompt_id}/activate")

    def delete_prompt(self, prompt_id: str) -> None:
        self._api("DELETE", f"/prompts/{prompt_id}")

    # --- Generation and assistant ---

    def generate_questions(self, payload: dict) -> dict:
        return self._fn("generate-questions", payload)

    def get_answer(self, payload: dict) -> dict:
        return self._fn("get-answer", payload)

    def generate_system_prompt(self, prompt_type: str, context: str | None = None) -> dict:
        return self._fn("generate-system-prompt", {"type": prompt_type, "context": context})

    def assistant_chat(self, message: str, history: list[dict] | None = None) -> dict:
        return self._fn("ai-assistant-chat", {"message": message, "conversationHistory": history or []})

    def drive_sync(self) -> dict:
        return self._fn("google-drive-sync")

    # --- Monitor ---

    def stats(self) -> dict:
        return self._api("GET", "/monitor/stats")
