"""In-process publish/subscribe channel for submission status changes."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ANY_SUBMISSION = "submission:any"

Listener = Callable[[Dict[str, Any]], None]
Unsubscribe = Callable[[], None]


def _channel(submission_id: Any) -> str:
    return f"submission:{submission_id}"


class SubmissionEventBus:
    """Fire-and-forget notifications; no persistence, no replay."""

    def __init__(self, max_listeners: int = 100) -> None:
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()
        self.max_listeners = max_listeners

    def _subscribe(self, channel: str, callback: Listener) -> Unsubscribe:
        with self._lock:
            listeners = self._listeners[channel]
            listeners.append(callback)
            if len(listeners) > self.max_listeners:
                logger.warning("Channel %s has %d listeners; possible leak", channel, len(listeners))

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(channel)
                if listeners and callback in listeners:
                    listeners.remove(callback)
                if listeners is not None and not listeners:
                    self._listeners.pop(channel, None)

        return unsubscribe

    def _publish(self, channel: str, payload: Dict[str, Any]) -> int:
        with self._lock:
            listeners = list(self._listeners.get(channel, ()))
        for callback in listeners:
            try:
                callback(payload)
            except Exception:
                logger.exception("Submission event listener failed on %s", channel)
        return len(listeners)

    def emit_submission_update(self, submission_id: Any, status: str, result: Optional[Dict[str, Any]] = None) -> None:
        """Publish on the submission's own channel and on the global one"""
        self._publish(_channel(submission_id), {"status": status, "result": result})
        self._publish(ANY_SUBMISSION, {"submission_id": submission_id, "status": status, "result": result})

    def on_submission_update(self, submission_id: Any, callback: Listener) -> Unsubscribe:
        return self._subscribe(_channel(submission_id), callback)

    def on_any_submission_update(self, callback: Listener) -> Unsubscribe:
        return self._subscribe(ANY_SUBMISSION, callback)

    def listener_count(self, submission_id: Any = None) -> int:
        channel = ANY_SUBMISSION if submission_id is None else _channel(submission_id)
        with self._lock:
            return len(self._listeners.get(channel, ()))


@lru_cache()
def get_submission_event_bus() -> SubmissionEventBus:
    """Process-wide bus, created on first use"""
    return SubmissionEventBus()
