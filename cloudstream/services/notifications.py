from __future__ import annotations

import logging
import secrets
import threading
import time

from ..models.asset import NotificationEvent, NotificationKind

logger = logging.getLogger("cloudstream.notifications")


class NotificationCenter:
    """
    Short-lived user-facing events. Each push arms a timer that drops the event
    after ``timeout_seconds``; shutdown() cancels every pending timer.
    """

    def __init__(self, timeout_seconds: float = 3.0, *, clock=time.time) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._events: list[NotificationEvent] = []
        self._timers: dict[str, threading.Timer] = {}
        self._closed = False

    def push(self, message: str, kind: NotificationKind | str = NotificationKind.SUCCESS):
        kind = NotificationKind(kind)
        now = self._clock()
        event = NotificationEvent(
            id=secrets.token_urlsafe(6),
            message=message,
            kind=kind,
            created_at=now,
            expires_at=now + self.timeout_seconds,
        )
        with self._lock:
            if self._closed:
                logger.debug("Dropping notification after shutdown: %s", message)
                return None
            self._events.append(event)
            timer = threading.Timer(self.timeout_seconds, self._dismiss, args=(event.id,))
            timer.daemon = True
            self._timers[event.id] = timer
            timer.start()
        if kind == NotificationKind.ERROR:
            logger.warning("notification: %s", message)
        else:
            logger.info("notification: %s", message)
        return event

    def _dismiss(self, event_id: str) -> None:
        with self._lock:
            self._timers.pop(event_id, None)
            self._events = [e for e in self._events if e.id != event_id]

    def expire(self, now: float | None = None) -> int:
        """Drops overdue events; returns how many were removed."""
        current = self._clock() if now is None else now
        with self._lock:
            keep = []
            removed = 0
            for event in self._events:
                if event.expires_at <= current:
                    removed += 1
                    timer = self._timers.pop(event.id, None)
                    if timer is not None:
                        timer.cancel()
                else:
                    keep.append(event)
            self._events = keep
            return removed

    def list(self) -> list[NotificationEvent]:
        self.expire()
        with self._lock:
            return list(self._events)

    def pending_timers(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
            self._events.clear()
        for timer in timers:
            timer.cancel()
