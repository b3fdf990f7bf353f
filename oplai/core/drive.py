"""Google Drive data source: OAuth code exchange and file sync.

Synced files land in ``synced_files`` keyed by (data source, Drive file id),
so syncing twice overwrites rather than duplicates. Only small plain-text
files have their content downloaded; other kept types are stored as
metadata only.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any

import httpx
import structlog

from oplai.config import Settings, get_settings
from oplai.db.client import SupabaseClient, get_supabase_client

logger = structlog.get_logger()

PROVIDER = "google-drive"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
FILES_URL = "https://www.googleapis.com/drive/v3/files"

LIST_PAGE_SIZE = 100
MAX_SYNCED_FILES = 50
MAX_CONTENT_BYTES = 1_000_000
REFRESHED_TOKEN_TTL = timedelta(hours=1)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def is_syncable(mime_type: str) -> bool:
    """Text, document and PDF files are kept; everything else is ignored."""
    return "text" in mime_type or "document" in mime_type or mime_type == "application/pdf"


def wants_content(file: dict[str, Any]) -> bool:
    if "text/plain" not in file.get("mimeType", ""):
        return False
    size = file.get("size")
    return not size or int(size) < MAX_CONTENT_BYTES


class GoogleDriveService:
    def __init__(
        self,
        db: SupabaseClient,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=30.0, transport=self._transport)

    async def exchange_code(self, user_id: str, code: str, redirect_uri: str) -> dict[str, Any]:
        """Trade an OAuth authorization code for tokens and store the connection."""
        if not code:
            raise ValueError("Authorization code is required")

        async with self._client() as client:
            resp = await client.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.settings.google_client_id,
                    "client_secret": self.settings.google_client_secret,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            if resp.status_code >= 400:
                logger.error("drive.token_exchange_failed", status=resp.status_code, body=resp.text[:500])
                raise ValueError(f"Failed to exchange code: {resp.text}")
            tokens = resp.json()

            info = await client.get(
                USERINFO_URL, headers={"Authorization": f"Bearer {tokens['access_token']}"}
            )
            user_info = info.json()

        now = _now()
        connection = self.db.upsert(
            "data_sources",
            {
                "user_id": user_id,
                "provider": PROVIDER,
                "access_token": tokens["access_token"],
                "refresh_token": tokens.get("refresh_token"),
                "token_expires_at": (now + timedelta(seconds=tokens.get("expires_in", 3600))).isoformat(),
                "provider_user_id": user_info.get("id"),
                "provider_user_email": user_info.get("email"),
                "metadata": {"name": user_info.get("name"), "picture": user_info.get("picture")},
                "is_active": True,
                "updated_at": now.isoformat(),
            },
            on_conflict="user_id,provider",
        )
        logger.info("drive.connected", user_id=user_id, source_id=connection["id"])
        return connection

    async def _refresh(self, client: httpx.AsyncClient, connection: dict[str, Any]) -> str:
        resp = await client.post(
            TOKEN_URL,
            data={
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "refresh_token": connection.get("refresh_token") or "",
                "grant_type": "refresh_token",
            },
        )
        if resp.status_code >= 400:
            raise ValueError("Failed to refresh token")
        access_token = resp.json()["access_token"]
        now = _now()
        self.db.update(
            "data_sources",
            str(connection["id"]),
            {
                "access_token": access_token,
                "token_expires_at": (now + REFRESHED_TOKEN_TTL).isoformat(),
                "updated_at": now.isoformat(),
            },
        )
        logger.info("drive.token_refreshed", source_id=connection["id"])
        return access_token

    async def sync(self, user_id: str) -> dict[str, Any]:
        """Pull the user's Drive file list into ``synced_files``."""
        rows = self.db.select("data_sources", filters={"user_id": user_id, "provider": PROVIDER})
        if not rows:
            raise ValueError("Google Drive not connected")
        connection = rows[0]
        source_id = str(connection["id"])
        logger.info("drive.sync_started", user_id=user_id, source_id=source_id)

        async with self._client() as client:
            access_token = connection["access_token"]
            expires_at = _parse_ts(connection.get("token_expires_at"))
            if expires_at is None or expires_at <= _now():
                access_token = await self._refresh(client, connection)
            auth = {"Authorization": f"Bearer {access_token}"}

            resp = await client.get(
                FILES_URL,
                params={
                    "pageSize": LIST_PAGE_SIZE,
                    "fields": "files(id,name,mimeType,size,webViewLink,parents)",
                },
                headers=auth,
            )
            if resp.status_code >= 400:
                raise ValueError("Failed to fetch files from Google Drive")
            files = resp.json().get("files", [])
            candidates = [f for f in files if is_syncable(f.get("mimeType", ""))]

            synced = []
            for file in candidates[:MAX_SYNCED_FILES]:
                try:
                    synced.append(await self._sync_file(client, auth, user_id, source_id, file))
                except Exception as e:
                    logger.warning("drive.file_failed", file=file.get("name"), error=str(e))

        now = _now().isoformat()
        self.db.update("data_sources", source_id, {"last_synced_at": now, "updated_at": now})
        logger.info("drive.sync_completed", user_id=user_id, total=len(files), synced=len(synced))
        return {"success": True, "totalFiles": len(files), "syncedFiles": len(synced), "files": synced}

    async def _sync_file(
        self,
        client: httpx.AsyncClient,
        auth: dict[str, str],
        user_id: str,
        source_id: str,
        file: dict[str, Any],
    ) -> dict[str, Any]:
        content = ""
        if wants_content(file):
            resp = await client.get(f"{FILES_URL}/{file['id']}", params={"alt": "media"}, headers=auth)
            if resp.status_code >= 400:
                raise ValueError(f"Failed to fetch file content for {file['id']}")
            content = resp.text

        now = _now().isoformat()
        return self.db.upsert(
            "synced_files",
            {
                "data_source_id": source_id,
                "user_id": user_id,
                "provider_file_id": file["id"],
                "file_name": file.get("name", ""),
                "file_type": file.get("mimeType", ""),
                "file_size": int(file["size"]) if file.get("size") else None,
                "file_path": "/".join(file.get("parents") or []),
                "content": content,
                "metadata": {"webViewLink": file.get("webViewLink")},
                "synced_at": now,
                "updated_at": now,
            },
            on_conflict="data_source_id,provider_file_id",
        )

    def document_contents(self, user_id: str, file_ids: list[str]) -> list[str]:
        """Stored text of the user's synced files, for question generation."""
        rows = self.db.select_in("synced_files", "id", file_ids, filters={"user_id": user_id})
        return [r.get("content") or "" for r in rows]


@lru_cache
def get_drive_service() -> GoogleDriveService:
    """Get cached Drive service."""
    return GoogleDriveService(get_supabase_client(), get_settings())
