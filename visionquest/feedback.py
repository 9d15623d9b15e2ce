"""Bounded, persisted log of user confirmations and corrections."""

import time

from loguru import logger

from .config import FEEDBACK_HISTORY_KEY, HISTORY_LIMIT
from .models import FeedbackEvent, FeedbackHistory, FeedbackKind


def now_ms() -> int:
    return int(time.time() * 1000)


class FeedbackLogger:
    """Keeps the most recent feedback events, newest first.

    The whole history is written back to the store on every change and read
    once at construction, so it survives restarts.
    """

    def __init__(self, store, key: str = FEEDBACK_HISTORY_KEY, limit: int = HISTORY_LIMIT, clock=now_ms):
        self.store = store
        self.key = key
        self.limit = limit
        self.clock = clock
        self._history: FeedbackHistory = self._load()

    def _load(self) -> FeedbackHistory:
        saved = self.store.get(self.key)
        if not saved:
            return ()
        try:
            events = tuple(FeedbackEvent.from_dict(item) for item in saved)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed feedback history: {}", e)
            return ()
        return events[: self.limit]

    @property
    def history(self) -> FeedbackHistory:
        return self._history

    def append(self, event: FeedbackEvent) -> FeedbackHistory:
        self._history = (event, *self._history)[: self.limit]
        self.store.set(self.key, [e.to_dict() for e in self._history])
        return self._history

    def record(self, original_label: str, corrected_label: str, kind: FeedbackKind) -> FeedbackEvent:
        event = FeedbackEvent(
            timestamp=self.clock(),
            original_label=original_label,
            corrected_label=corrected_label,
            kind=kind,
        )
        self.append(event)
        logger.info("Recorded {} feedback: {} -> {}", kind.value, original_label, corrected_label)
        return event

    def clear(self) -> FeedbackHistory:
        count = len(self._history)
        self._history = ()
        self.store.remove(self.key)
        logger.info("Cleared {} feedback entries", count)
        return self._history
