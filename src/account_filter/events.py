from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol

import structlog

log = structlog.get_logger()


@dataclass(frozen=True)
class OptIn:
    """Emitted whenever an account changes its opt-in status."""

    id: str
    status: bool


class NotificationSink(Protocol):
    def emit(self, event: OptIn) -> None: ...


class LogSink:
    """Default sink: writes OptIn events to the structured log."""

    def emit(self, event: OptIn) -> None:
        log.info("optin_event", account=event.id, status=event.status)


class BufferedSink:
    """
    Holds events until `flush()` hands them to a downstream sink.

    Used by the dispatcher so notifications only go out once the state
    write that produced them has committed.
    """

    def __init__(self) -> None:
        self.pending: List[OptIn] = []

    def emit(self, event: OptIn) -> None:
        self.pending.append(event)

    def flush(self, target: NotificationSink) -> int:
        events, self.pending = self.pending, []
        for event in events:
            deliver(target, event)
        return len(events)


def deliver(sink: NotificationSink, event: OptIn) -> bool:
    """Fire-and-forget delivery. Returns False if the sink raised."""
    try:
        sink.emit(event)
    except Exception as exc:
        log.warning(
            "notification_failed",
            account=event.id,
            status=event.status,
            sink=type(sink).__name__,
            error=str(exc),
        )
        return False
    return True


__all__ = [
    "OptIn",
    "NotificationSink",
    "LogSink",
    "BufferedSink",
    "deliver",
]
