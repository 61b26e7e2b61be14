"""
Activity Sinks

Structured pipeline events (webhook received, reply held, ...) emitted to an
injected sink instead of a process-wide debug log. Sink failures are
logged and swallowed: observability never breaks message processing.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import redis

logger = logging.getLogger(__name__)


class ActivityEvent(str, Enum):
    """Pipeline activity event types."""

    WEBHOOK_RECEIVED = "webhook.received"
    WEBHOOK_REJECTED = "webhook.rejected"
    CHANGE_IGNORED = "change.ignored"
    ACCOUNT_MISSING = "account.missing"
    MESSAGE_PROCESSED = "message.processed"
    MESSAGE_FAILED = "message.failed"
    MESSAGE_DUPLICATE = "message.duplicate"
    REPLY_SENT = "reply.sent"
    REPLY_HELD = "reply.held"
    STATUS_UPDATED = "status.updated"


def _event_name(event_type: ActivityEvent | str) -> str:
    return event_type.value if isinstance(event_type, ActivityEvent) else str(event_type)


class ActivitySink(ABC):
    """Receives activity events."""

    def emit(self, event_type: ActivityEvent | str, **fields: Any) -> None:
        try:
            self._write(_event_name(event_type), fields)
        except Exception as e:
            logger.warning(f"Activity sink {type(self).__name__} failed: {e}")

    @abstractmethod
    def _write(self, event_type: str, fields: dict[str, Any]) -> None:
        ...


class LoggingActivitySink(ActivitySink):
    """Default sink: one log line per event."""

    def _write(self, event_type: str, fields: dict[str, Any]) -> None:
        logger.info(f"activity {event_type}", extra={"event_type": event_type, **fields})


class RecentActivityBuffer(ActivitySink):
    """In-memory ring buffer of the newest events."""

    def __init__(self, maxlen: int = 500):
        self._events: deque[dict[str, Any]] = deque(maxlen=maxlen)

    def _write(self, event_type: str, fields: dict[str, Any]) -> None:
        self._events.append({
            "event_type": event_type,
            "at": datetime.now(timezone.utc).isoformat(),
            **fields,
        })

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Newest events first."""
        return list(reversed(self._events))[:limit]

    def of_type(self, event_type: ActivityEvent | str) -> list[dict[str, Any]]:
        name = _event_name(event_type)
        return [event for event in self._events if event["event_type"] == name]

    def clear(self) -> None:
        self._events.clear()


class RedisStreamActivitySink(ActivitySink):
    """
    Appends events to a capped Redis stream (``XADD ... MAXLEN ~ N``).

    Read back with ``stayline_core.redis.read_stream_tail``.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        stream_name: str = "stayline:activity",
        max_len: int = 500,
    ):
        self.redis = redis_client
        self.stream_name = stream_name
        self.max_len = max_len

    def _write(self, event_type: str, fields: dict[str, Any]) -> None:
        data = {
            "event_type": event_type,
            "at": datetime.now(timezone.utc).isoformat(),
            "fields": json.dumps(fields, default=str),
        }
        self.redis.xadd(
            self.stream_name,
            data,
            maxlen=self.max_len,
            approximate=True,
        )


def build_activity_sink(
    kind: str,
    redis_client: redis.Redis | None = None,
    stream_name: str = "stayline:activity",
    max_len: int = 500,
) -> ActivitySink:
    """Sink for the ``ACTIVITY_SINK`` setting: ``log``, ``memory`` or ``redis``."""
    if kind == "memory":
        return RecentActivityBuffer(maxlen=max_len)
    if kind == "redis":
        if redis_client is None:
            raise ValueError("redis activity sink requires a Redis client")
        return RedisStreamActivitySink(redis_client, stream_name=stream_name, max_len=max_len)
    return LoggingActivitySink()
