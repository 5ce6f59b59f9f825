"""Document status-change trigger.

Turns status transitions into at most one pipeline entry per qualifying
transition. Which transitions qualify is decided by ``TRIGGER_TABLE`` alone;
the controller only adds the per-document memory of the last seen status
and the in-flight guard that drops duplicate concurrent triggers.
"""

import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from strategist_memory.core.logging import get_logger

logger = get_logger(__name__)


class TriggerAction(str, Enum):
    NONE = "none"
    SUMMARIZE = "summarize"
    PUBLISH = "publish"
    DISCONNECT = "disconnect"


class TriggerOutcome(str, Enum):
    FIRED = "fired"
    IGNORED = "ignored"
    DROPPED_IN_FLIGHT = "dropped_in_flight"


class StatusClass(str, Enum):
    OTHER = "other"
    SUMMARIZE = "summarize"
    PUBLISHED = "published"


SUMMARIZE_STATUSES = frozenset({"complete", "approved"})
PUBLISHED_STATUS = "published"


def classify_status(status: str | None) -> StatusClass:
    value = (status or "").strip().lower()
    if value == PUBLISHED_STATUS:
        return StatusClass.PUBLISHED
    if value in SUMMARIZE_STATUSES:
        return StatusClass.SUMMARIZE
    return StatusClass.OTHER


# (previous status class, new status class) -> action; missing pairs do nothing
TRIGGER_TABLE: dict[tuple[StatusClass, StatusClass], TriggerAction] = {
    (StatusClass.OTHER, StatusClass.SUMMARIZE): TriggerAction.SUMMARIZE,
    (StatusClass.OTHER, StatusClass.PUBLISHED): TriggerAction.PUBLISH,
    (StatusClass.SUMMARIZE, StatusClass.PUBLISHED): TriggerAction.PUBLISH,
    (StatusClass.PUBLISHED, StatusClass.OTHER): TriggerAction.DISCONNECT,
    (StatusClass.PUBLISHED, StatusClass.SUMMARIZE): TriggerAction.DISCONNECT,
}


def resolve_action(previous_status: str | None, new_status: str | None) -> TriggerAction:
    """Look up the action for one transition.

    ``complete -> approved`` stays inside the summarize class and does not
    refire; neither does any same-status update.
    """
    key = (classify_status(previous_status), classify_status(new_status))
    return TRIGGER_TABLE.get(key, TriggerAction.NONE)


@dataclass(frozen=True)
class TriggerDecision:
    outcome: TriggerOutcome
    action: TriggerAction
    result: Any = None


MAX_TRACKED_DOCUMENTS = 10_000


class AutoTriggerController:
    """Per-process de-duplicating trigger for status-change events."""

    def __init__(self, max_tracked: int = MAX_TRACKED_DOCUMENTS):
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        # Least recently seen documents are evicted first
        self._last_status: OrderedDict[str, str] = OrderedDict()
        self._max_tracked = max_tracked

    def _remember(self, document_id: str, status: str) -> str | None:
        """Store *status* for the document; return what was stored before. Caller holds the lock."""
        prior = self._last_status.pop(document_id, None)
        self._last_status[document_id] = status
        while len(self._last_status) > self._max_tracked:
            self._last_status.popitem(last=False)
        return prior

    def _observe(
        self,
        document_id: str,
        new_status: str,
        previous_status: str | None,
    ) -> tuple[TriggerAction, str | None]:
        with self._lock:
            prior = self._remember(document_id, new_status)
        if previous_status is None:
            previous_status = prior
        return resolve_action(previous_status, new_status), prior

    def observe(
        self,
        document_id: str,
        new_status: str,
        previous_status: str | None = None,
    ) -> TriggerAction:
        """Record *new_status* and return the action the transition calls for.

        When the event omits ``previous_status`` the last status seen for the
        document is used instead.
        """
        action, _prior = self._observe(document_id, new_status, previous_status)
        return action

    def _restore(self, document_id: str, failed_status: str, prior: str | None) -> None:
        """Undo the status recorded for a failed run unless a newer event replaced it."""
        with self._lock:
            if self._last_status.get(document_id) != failed_status:
                return
            if prior is None:
                self._last_status.pop(document_id, None)
            else:
                self._last_status[document_id] = prior

    def tracked_count(self) -> int:
        with self._lock:
            return len(self._last_status)

    def try_acquire(self, document_id: str) -> bool:
        with self._lock:
            if document_id in self._in_flight:
                return False
            self._in_flight.add(document_id)
            return True

    def release(self, document_id: str) -> None:
        with self._lock:
            self._in_flight.discard(document_id)

    def is_running(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._in_flight

    def forget(self, document_id: str) -> None:
        with self._lock:
            self._last_status.pop(document_id, None)

    def handle(
        self,
        document_id: str,
        new_status: str,
        run: Callable[[TriggerAction], Any],
        previous_status: str | None = None,
    ) -> TriggerDecision:
        """
        Fire *run* at most once for a qualifying transition.

        Args:
            document_id: Document whose status changed
            new_status: Status after the change
            run: Called with the resolved action while the guard is held
            previous_status: Status before the change, if the event carries it

        Returns:
            TriggerDecision; exceptions raised by *run* propagate after the
            guard is released and the remembered status is rolled back, so
            the same event can fire again
        """
        action, prior = self._observe(document_id, new_status, previous_status)
        if action is TriggerAction.NONE:
            return TriggerDecision(TriggerOutcome.IGNORED, action)

        if not self.try_acquire(document_id):
            logger.info(
                f"Dropping {action.value} trigger for document {document_id}: run already in flight",
                extra={"document_id": document_id},
            )
            return TriggerDecision(TriggerOutcome.DROPPED_IN_FLIGHT, action)

        try:
            logger.info(
                f"Firing {action.value} for document {document_id} (status={new_status})",
                extra={"document_id": document_id},
            )
            result = run(action)
        except Exception:
            self._restore(document_id, new_status, prior)
            raise
        finally:
            self.release(document_id)

        return TriggerDecision(TriggerOutcome.FIRED, action, result)


# Process-wide controller used by the status-events route
controller = AutoTriggerController()
