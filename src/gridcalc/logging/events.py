"""Event schema and emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and reported on stderr.  Every helper takes the sink to write
to; passing ``None`` discards the event, so an engine without a log
directory pays nothing for logging.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from gridcalc.logging.sink import EventSink


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Engine lifecycle
    engine_started = "engine_started"

    # Cell writes and recalculation
    cell_committed = "cell_committed"
    cell_error = "cell_error"
    recalc_completed = "recalc_completed"
    circular_reference = "circular_reference"

    # Editing
    reference_inserted = "reference_inserted"
    clipboard_paste = "clipboard_paste"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

FORMULA_EVAL_ERROR = "formula_eval_error"
FORMULA_REF_ERROR = "formula_ref_error"
TYPE_MISMATCH = "type_mismatch"
CIRCULAR_REFERENCE = "circular_reference"


# ---------------------------------------------------------------------------
# Context clipping
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def clip_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long strings truncated.

    Formulas and cell text are user input of unbounded size; only the
    first 256 characters of any string value are logged.
    """
    out: dict[str, Any] = {}
    for k, v in context.items():
        if isinstance(v, dict):
            out[k] = clip_context(v)
        elif isinstance(v, list):
            out[k] = [_clip_value(item) for item in v]
        else:
            out[k] = _clip_value(v)
    return out


def _clip_value(v: Any) -> Any:
    if isinstance(v, dict):
        return clip_context(v)
    if isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
        return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GridEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Sink construction
# ---------------------------------------------------------------------------


def configure_sink(directory: Path | str, config: dict[str, Any] | None = None) -> EventSink:
    """Build an event sink writing under ``<directory>/logs``.

    Reads ``logging_fsync`` and ``logging_tail_bytes`` from *config*.
    """
    from gridcalc.logging.sink import EventSink

    cfg = config or {}
    tail_bytes = cfg.get("logging_tail_bytes")
    return EventSink(
        Path(directory),
        fsync=bool(cfg.get("logging_fsync", False)),
        tail_bytes=int(tail_bytes) if tail_bytes is not None else None,
    )


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[gridcalc] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(sink: EventSink | None, event: GridEvent) -> None:
    """Write an event to *sink*.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.
    """
    if sink is None:
        return
    try:
        event = event.model_copy(update={"context": clip_context(event.context)})
        sink.write(event)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    sink: EventSink | None,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        sink,
        GridEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        ),
    )


def emit_warning(
    sink: EventSink | None,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        sink,
        GridEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
    )


def emit_error(
    sink: EventSink | None,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        sink,
        GridEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
    )
