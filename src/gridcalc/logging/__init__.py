"""Structured event logging for gridcalc.

Provides the event schema, a filesystem NDJSON sink, and safe emit
helpers that never raise uncaught exceptions.
"""

from gridcalc.logging.events import (
    EventLevel,
    EventType,
    GridEvent,
    clip_context,
    configure_sink,
    emit,
    emit_error,
    emit_info,
    emit_warning,
)
from gridcalc.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "GridEvent",
    "clip_context",
    "configure_sink",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
]
