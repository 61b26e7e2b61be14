"""
Pipeline Activity

Structured activity events and their sinks (log, in-memory ring buffer,
Redis stream).
"""

from stayline_whatsapp.streams.activity import (
    ActivityEvent,
    ActivitySink,
    LoggingActivitySink,
    RecentActivityBuffer,
    RedisStreamActivitySink,
    build_activity_sink,
)

__all__ = [
    "ActivityEvent",
    "ActivitySink",
    "LoggingActivitySink",
    "RecentActivityBuffer",
    "RedisStreamActivitySink",
    "build_activity_sink",
]
