"""Presence: who is looking at a playbook right now.

Each playbook has a topic. Viewers subscribe to it and then track a presence
record; whenever the tracked set changes every subscriber receives the full
membership snapshot. A record lives exactly as long as its subscription, so
a dropped connection is all it takes to leave. There is no heartbeat.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

import structlog

from oplai.core.events import EventPublisher, get_event_publisher

logger = structlog.get_logger()

Deliver = Callable[[list[dict[str, Any]]], Awaitable[None]]


@dataclass
class PresenceRecord:
    user_id: str
    display_name: str
    avatar_url: str | None = None
    joined_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def display_name_for(profile: dict[str, Any] | None, email: str | None) -> str:
    if profile and profile.get("full_name"):
        return profile["full_name"]
    return email or "Anonymous"


def summarize_presence(
    members: list[dict[str, Any]], limit: int = 5
) -> tuple[list[dict[str, Any]], int]:
    """Split a snapshot into the avatars to draw and the "+N" overflow count."""
    return members[:limit], max(len(members) - limit, 0)


class Subscription:
    """One viewer's membership in a playbook topic."""

    def __init__(self, hub: PresenceHub, topic: str, deliver: Deliver) -> None:
        self.id = str(uuid4())
        self.topic = topic
        self.record: PresenceRecord | None = None
        self._hub = hub
        self._deliver = deliver

    async def track(self, record: PresenceRecord) -> None:
        self.record = record
        await self._hub._broadcast(self.topic)

    async def unsubscribe(self) -> None:
        await self._hub._remove(self)


class PresenceHub:
    """In-memory presence sets keyed by playbook topic."""

    def __init__(self, publisher: EventPublisher | None = None) -> None:
        self._topics: dict[str, dict[str, Subscription]] = {}
        self._publisher = publisher

    @staticmethod
    def topic_for(playbook_id: str) -> str:
        return f"playbook:{playbook_id}"

    def subscribe(self, playbook_id: str, deliver: Deliver) -> Subscription:
        topic = self.topic_for(playbook_id)
        sub = Subscription(self, topic, deliver)
        self._topics.setdefault(topic, {})[sub.id] = sub
        logger.debug("presence.subscribed", topic=topic, subscription=sub.id)
        return sub

    def members(self, playbook_id: str) -> list[dict[str, Any]]:
        subs = self._topics.get(self.topic_for(playbook_id), {})
        return [asdict(s.record) for s in subs.values() if s.record is not None]

    async def _remove(self, sub: Subscription) -> None:
        subs = self._topics.get(sub.topic)
        if not subs or subs.pop(sub.id, None) is None:
            return
        if not subs:
            del self._topics[sub.topic]
        logger.debug("presence.unsubscribed", topic=sub.topic, subscription=sub.id)
        if sub.record is not None:
            await self._broadcast(sub.topic)

    async def _broadcast(self, topic: str) -> None:
        subs = list(self._topics.get(topic, {}).values())
        members = [asdict(s.record) for s in subs if s.record is not None]
        for sub in subs:
            try:
                await sub._deliver(members)
            except Exception as e:
                logger.warning("presence.deliver_failed", topic=topic, error=str(e))
        if self._publisher is not None:
            await self._publisher.publish_presence(topic.split(":", 1)[1], members)


_hub: PresenceHub | None = None


def get_presence_hub() -> PresenceHub:
    """Get the process-wide presence hub."""
    global _hub
    if _hub is None:
        _hub = PresenceHub(get_event_publisher())
    return _hub
