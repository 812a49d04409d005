"""Builder events fanned out over Redis pub/sub.

Each event goes to ``nova.events.<type>`` as a JSON envelope
``{"type", "at", ...payload}``. Publishing is best effort: with no
``REDIS_URL`` or an unreachable server, events are dropped and the build
carries on. After a failed connect the publisher waits
``RECONNECT_INTERVAL_SECONDS`` before trying again.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Optional

try:  # pragma: no cover - optional dependency
    import redis  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    redis = None  # type: ignore

logger = logging.getLogger(__name__)

TURN_PERSISTED = "turn.persisted"
VERSION_CREATED = "version.created"
VERSION_RESTORED = "version.restored"
DEPLOYMENT_CREATED = "deployment.created"

CHANNEL_PREFIX = "nova.events."
RECONNECT_INTERVAL_SECONDS = 5.0


def envelope(event_type: str, payload: Dict[str, Any]) -> str:
    body = {"type": event_type, "at": datetime.now(UTC).isoformat().replace("+00:00", "Z")}
    body.update(payload)
    return json.dumps(body, default=str)


class EventPublisher:
    def __init__(self, url: str, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.url = url
        self._clock = clock
        self._client = None
        self._retry_at = 0.0

    def _back_off(self) -> None:
        self._client = None
        self._retry_at = self._clock() + RECONNECT_INTERVAL_SECONDS

    def _connected(self):
        if self._client is not None:
            return self._client
        if redis is None or self._clock() < self._retry_at:
            return None
        try:
            client = redis.Redis.from_url(self.url, socket_timeout=0.5)
            client.ping()
        except Exception as exc:
            logger.debug("Redis unreachable at %s: %s", self.url, exc)
            self._back_off()
            return None
        self._client = client
        return client

    def publish(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """Send one event; False when it was dropped."""
        client = self._connected()
        if client is None:
            return False
        channel = CHANNEL_PREFIX + event_type
        try:
            client.publish(channel, envelope(event_type, payload))
        except Exception as exc:
            logger.debug("Dropping event on %s: %s", channel, exc)
            self._back_off()
            return False
        return True


_publisher: Optional[EventPublisher] = None


def get_publisher() -> Optional[EventPublisher]:
    global _publisher
    if _publisher is None:
        url = os.getenv("REDIS_URL")
        if url:
            _publisher = EventPublisher(url)
    return _publisher


def set_publisher(publisher: Optional[EventPublisher]) -> None:
    global _publisher
    _publisher = publisher


def publish_event(event_type: str, payload: Dict[str, Any]) -> bool:
    publisher = get_publisher()
    if publisher is None:
        return False
    return publisher.publish(event_type, payload)
