"""
Live change notifications for the appointment set.

The appointment store pushes ``{old, new}`` record pairs whenever an
appointment is inserted, updated or deleted. Subscribers register a record
predicate; a change is delivered when either side of the pair matches it,
so moving an appointment out of the window still triggers a refresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from ..domain.clock import TimezoneLike, now_in, parse_instant
from ..domain.exceptions import SubscriptionError
from ..domain.models import LIVE_STATUSES

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"

Record = Optional[Mapping[str, Any]]
RecordPredicate = Callable[[Record], bool]


@dataclass(frozen=True)
class RecordChange:
    """One change notification from the store."""
    event: str
    old: Record = None
    new: Record = None

    def matches(self, predicate: RecordPredicate) -> bool:
        """Relevant when the record was or has become relevant."""
        return predicate(self.new) or predicate(self.old)


ChangeCallback = Callable[[RecordChange], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class LiveInvalidationChannel(Protocol):
    """Protocol describing the change feed needed by the availability service."""

    def subscribe(
        self,
        predicate: RecordPredicate,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """Register callbacks and return a function that cancels them."""


@dataclass
class _Subscription:
    predicate: RecordPredicate
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback]


class InMemoryChangeChannel:
    """
    Process-local change feed.

    Store adapters (or tests) call ``publish`` for each change; ``fail``
    simulates a dropped connection so callers can react to it.
    """

    def __init__(self, name: str = "client-availability"):
        self.name = name
        self._subscriptions: Dict[int, _Subscription] = {}
        self._next_id = 0
        self._failure: Optional[Exception] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed and self._failure is None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        predicate: RecordPredicate,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        if not self.is_open:
            raise SubscriptionError(f"Channel '{self.name}' is not open: {self._failure or 'closed'}")

        subscription_id = self._next_id
        self._next_id += 1
        self._subscriptions[subscription_id] = _Subscription(predicate, on_change, on_error)
        logger.debug("Subscribed %d to channel %s", subscription_id, self.name)

        def unsubscribe() -> None:
            if self._subscriptions.pop(subscription_id, None) is not None:
                logger.debug("Unsubscribed %d from channel %s", subscription_id, self.name)

        return unsubscribe

    def publish(self, change: RecordChange) -> int:
        """
        Deliver a change to every subscriber whose predicate matches.

        Returns:
            Number of subscribers notified
        """
        if not self.is_open:
            raise SubscriptionError(f"Cannot publish on channel '{self.name}': not open")

        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if change.matches(subscription.predicate):
                subscription.on_change(change)
                delivered += 1

        return delivered

    def fail(self, error: Exception) -> None:
        """Drop every subscription and report ``error`` to subscribers."""
        self._failure = error
        subscriptions: List[_Subscription] = list(self._subscriptions.values())
        self._subscriptions.clear()
        logger.warning("Channel %s dropped: %s", self.name, error)

        for subscription in subscriptions:
            if subscription.on_error is not None:
                subscription.on_error(error)

    def close(self) -> None:
        self._closed = True
        self._subscriptions.clear()


def live_window_predicate(
    horizon_days: int,
    timezone: TimezoneLike,
    now: Any = None,
) -> RecordPredicate:
    """
    Build the relevance test for raw appointment records.

    A record is relevant when its status is live and its start falls between
    the start of today and ``horizon_days`` days later, both in ``timezone``.

    ``now`` may be a fixed instant or a zero-argument callable. Without it
    the wall clock is read on every check, so the window rolls forward in
    long-lived subscriptions.
    """
    if now_in(timezone, None if callable(now) else now) is None:
        logger.warning("Invalid timezone %r, no change will be considered relevant", timezone)
        return lambda record: False

    def window():
        current = now_in(timezone, now() if callable(now) else now)
        if current is None:
            return None
        start = current.start_of("day")
        return start, start.add(days=horizon_days)

    def is_relevant(record: Record) -> bool:
        if not record:
            return False

        status = str(record.get("status") or "").lower()
        if status not in LIVE_STATUSES:
            return False

        start = parse_instant(record.get("scheduled_at") or record.get("starts_at"))
        if start is None:
            return False

        bounds = window()
        return bounds is not None and bounds[0] <= start <= bounds[1]

    return is_relevant
