"""Review notification sink — best-effort delivery of review lifecycle events.

The push/notification layer is an external collaborator.  This module is the
single point through which the engine hands it events; delivery is
fire-and-forget and never affects review correctness.

Events are emitted only after the owning transaction commits, so a vote that
was rolled back (for example a failed promotion) is never announced.  Route
handlers schedule delivery with FastAPI ``BackgroundTasks``::

    background_tasks.add_task(
        emit_event_background,
        "upstream_reviewed",
        {"upstreamId": upstream_id, "aggregate": "pending", ...},
    )

Event type vocabulary
---------------------
upstream_created   — a review set was fanned out for a new upstream
upstream_reviewed  — a reviewer cast a decision on an upstream
upstream_finalized — an upstream reached a terminal aggregate (approved/rejected)
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Recognised event types, validated on emit.
KNOWN_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "upstream_created",
        "upstream_reviewed",
        "upstream_finalized",
    }
)

EventPayload = dict[str, Any]


class ReviewEventSink(Protocol):
    """Anything that can receive review events."""

    async def emit(self, event_type: str, payload: EventPayload) -> None: ...


class LoggingEventSink:
    """Default sink: records each event in the application log."""

    async def emit(self, event_type: str, payload: EventPayload) -> None:
        logger.info("📣 Review event %s: %s", event_type, payload)


class RecordingEventSink:
    """In-memory sink that keeps every emitted event, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, EventPayload]] = []

    async def emit(self, event_type: str, payload: EventPayload) -> None:
        self.events.append((event_type, payload))

    def of_type(self, event_type: str) -> list[EventPayload]:
        return [payload for kind, payload in self.events if kind == event_type]


_sink: ReviewEventSink = LoggingEventSink()


def get_event_sink() -> ReviewEventSink:
    return _sink


def set_event_sink(sink: ReviewEventSink) -> None:
    """Replace the process-wide sink (used at startup and in tests)."""
    global _sink
    _sink = sink


def reset_event_sink() -> None:
    global _sink
    _sink = LoggingEventSink()


async def emit_event(event_type: str, payload: EventPayload) -> None:
    """Hand an event to the configured sink.

    Raises ``ValueError`` for an event type outside ``KNOWN_EVENT_TYPES``;
    sink failures propagate.  Use ``emit_event_background`` from request
    handlers.
    """
    if event_type not in KNOWN_EVENT_TYPES:
        raise ValueError(
            f"Unknown review event type {event_type!r}. "
            f"Must be one of: {sorted(KNOWN_EVENT_TYPES)}"
        )
    await _sink.emit(event_type, payload)


async def emit_event_background(event_type: str, payload: EventPayload) -> None:
    """Fire-and-forget emit.  Errors are logged but never re-raised."""
    try:
        await emit_event(event_type, payload)
    except Exception as exc:
        logger.error("❌ Review event '%s' delivery failed: %s", event_type, exc)
