"""Live presence and autosave over WebSocket.

A viewer connects to ``/playbooks/{id}/presence?token=<jwt>`` and receives
the full membership snapshot every time someone joins or leaves. Closing
the socket is the only way to leave.

Editors may also send ``{"type": "edit", "title": ..., "content": ...}``
messages; they are written back to the playbook after a quiet period.
Fields from consecutive edits are merged, so a title change and a content
change sent close together are both written. Each write is acknowledged
with a ``{"type": "saved"}`` message while the socket is open; a pending
edit is written when the socket closes. Content over the size limit is
refused with an ``{"type": "error", "status": 413}`` message.
"""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from oplai.config import Settings, get_settings
from oplai.core.debounce import Debouncer
from oplai.core.playbooks import PlaybookStore, get_playbook_store
from oplai.core.presence import (
    PresenceHub,
    PresenceRecord,
    display_name_for,
    get_presence_hub,
    summarize_presence,
)
from oplai.db.client import SupabaseClient, get_supabase_client
from oplai.utils.security import MAX_CONTENT_SIZE, is_valid_uuid, validate_content_size

logger = structlog.get_logger()

router = APIRouter()

POLICY_VIOLATION = 1008
AUTOSAVE_DELAY = 1.0
EDIT_FIELDS = ("title", "content")


@router.websocket("/{playbook_id}/presence")
async def presence(
    websocket: WebSocket,
    playbook_id: str,
    token: str = "",
    db: SupabaseClient = Depends(get_supabase_client),
    store: PlaybookStore = Depends(get_playbook_store),
    hub: PresenceHub = Depends(get_presence_hub),
    settings: Settings = Depends(get_settings),
) -> None:
    user = db.get_user(token) if token else None
    playbook = store.get_playbook(playbook_id) if user and is_valid_uuid(playbook_id) else None
    role = store.role_for(playbook, user.id) if playbook else None
    if role is None:
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()

    async def deliver(members: list[dict[str, Any]]) -> None:
        shown, overflow = summarize_presence(members, settings.presence_display_limit)
        await websocket.send_json(
            {"type": "sync", "members": members, "shown": shown, "overflow": overflow}
        )

    edits: dict[str, str] = {}

    async def save(title: str | None = None, content: str | None = None) -> None:
        edits.clear()
        playbook = store.update_playbook(playbook_id, title=title, content=content)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.send_json({"type": "saved", "updated_at": playbook.get("updated_at")})

    autosave = Debouncer(AUTOSAVE_DELAY, save)
    subscription = hub.subscribe(playbook_id, deliver)
    try:
        try:
            profiles = db.select("profiles", filters={"id": user.id})
            profile = profiles[0] if profiles else None
            await subscription.track(
                PresenceRecord(
                    user_id=user.id,
                    display_name=display_name_for(profile, user.email),
                    avatar_url=profile.get("avatar_url") if profile else None,
                )
            )
        except Exception as e:
            logger.warning("presence.track_failed", playbook_id=playbook_id, error=str(e))

        while True:
            message = _parse(await websocket.receive_text())
            if message.get("type") != "edit" or role not in ("owner", "editor"):
                continue
            fields = {k: message[k] for k in EDIT_FIELDS if isinstance(message.get(k), str)}
            if not fields:
                continue
            if "content" in fields and not validate_content_size(fields["content"]):
                await websocket.send_json(
                    {
                        "type": "error",
                        "status": 413,
                        "detail": f"Playbook content exceeds {MAX_CONTENT_SIZE // 1024}KB limit",
                    }
                )
                continue
            edits.update(fields)
            autosave.trigger(**edits)
    except WebSocketDisconnect:
        logger.debug("presence.disconnected", playbook_id=playbook_id, user_id=user.id)
    finally:
        await subscription.unsubscribe()
        await autosave.aclose()


def _parse(text: str) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return message if isinstance(message, dict) else {}
