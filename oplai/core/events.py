"""NATS event publishing for playbook and presence changes.

Publishes events in a fixed envelope format. Degrades to a no-op when the
NATS server is unreachable.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import nats
import structlog

from oplai.config import get_settings

logger = structlog.get_logger()


class EventPublisher:
    """Publishes Oplai lifecycle events to NATS."""

    def __init__(self, nats_url: str = "nats://localhost:4222") -> None:
        self.nats_url = nats_url
        self._nc = None
        self._connected = False

    async def connect(self) -> bool:
        """Connect to NATS. Returns True if successful."""
        try:
            self._nc = await nats.connect(self.nats_url, connect_timeout=2, max_reconnect_attempts=0)
            self._connected = True
            logger.info("events.nats_connected", url=self.nats_url)
            return True
        except Exception as e:
            logger.warning("events.nats_connect_failed", error=str(e))
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Disconnect from NATS."""
        if self._nc and self._connected:
            try:
                await self._nc.close()
            except Exception as e:
                logger.debug("events.nats_close_failed", error=str(e))
            self._connected = False

    async def publish(
        self,
        event_type: str,
        subject: str,
        data: dict[str, Any],
        correlation_id: str | None = None,
        causation_id: str | None = None,
    ) -> bool:
        """Publish an event envelope.

        Returns True if published, False if NATS unavailable.
        """
        if not self._connected or not self._nc:
            return False

        envelope = {
            "id": str(uuid4()),
            "type": event_type,
            "source": "oplai",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": correlation_id or str(uuid4()),
            "causation_id": causation_id,
            "data": data,
        }

        try:
            await self._nc.publish(subject, json.dumps(envelope, default=str).encode())
            logger.debug("events.published", subject=subject, type=event_type)
            return True
        except Exception as e:
            logger.warning("events.publish_failed", subject=subject, error=str(e))
            return False

    async def publish_playbook_event(
        self,
        playbook_id: str,
        action: str,
        data: dict[str, Any],
    ) -> bool:
        """Publish a playbook lifecycle event."""
        return await self.publish(
            event_type=f"playbook.{action}",
            subject=f"oplai.playbook.{playbook_id}.{action}",
            data=data,
        )

    async def publish_presence(self, playbook_id: str, members: list[dict[str, Any]]) -> bool:
        """Publish a full presence membership snapshot."""
        return await self.publish(
            event_type="presence.sync",
            subject=f"oplai.presence.{playbook_id}.sync",
            data={"playbook_id": playbook_id, "members": members},
        )


# Singleton
_publisher: EventPublisher | None = None


def get_event_publisher() -> EventPublisher:
    """Get the global event publisher (lazy init)."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher(get_settings().nats_url)
    return _publisher


def publish_event_sync(playbook_id: str, action: str, data: dict[str, Any]) -> None:
    """Fire-and-forget event publish from sync code."""
    publisher = get_event_publisher()
    if not publisher._connected:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(publisher.publish_playbook_event(playbook_id, action, data))
