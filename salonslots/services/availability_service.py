"""
Application service that keeps availability in sync with the store.

The service fetches appointment snapshots through an appointment source
adapter and delegates all classification to the domain-level
``AvailabilityCalculator``. Only the most recently requested snapshot is
ever applied: each refresh carries a generation number and results from
superseded refreshes are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Collection, List, Optional, Protocol, Set, Tuple

from pendulum import DateTime

from ..domain.availability import AvailabilityCalculator
from ..domain.clock import now_in
from ..domain.exceptions import AppointmentSourceError, SubscriptionError
from ..domain.models import LIVE_STATUSES, Appointment, AvailabilitySnapshot, Service
from .invalidation import LiveInvalidationChannel, RecordChange, Unsubscribe, live_window_predicate

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Could not load availability. Please try again later."


class AppointmentSourceProtocol(Protocol):
    """Protocol describing the appointment store behaviour needed by the service."""

    async def fetch_appointments(
        self,
        *,
        start: DateTime,
        end: DateTime,
        statuses: Collection[str],
        service_id: Optional[str] = None,
    ) -> List[Appointment]:
        """Return appointments starting in [start, end] with a status in ``statuses``."""


@dataclass(frozen=True)
class AvailabilityState:
    """
    What the UI shows for availability.

    ``snapshot`` is None together with ``error`` when the store could not be
    reached, which is different from a snapshot with no appointments.
    """
    snapshot: Optional[AvailabilitySnapshot] = None
    error: Optional[str] = None
    is_loading: bool = False
    subscription_error: Optional[str] = None
    generation: int = 0


class AvailabilityService:
    """
    Orchestrates appointment retrieval, classification and live refresh.

    Dependency inversion toward protocols makes it easy to plug in the REST
    store, the JSON mock store or a stub in tests.
    """

    def __init__(
        self,
        source: AppointmentSourceProtocol,
        calculator: AvailabilityCalculator,
        *,
        viewer_id: Optional[str] = None,
        service: Optional[Service] = None,
        filter_by_service: bool = False,
        error_message: str = DEFAULT_ERROR_MESSAGE,
    ) -> None:
        self._source = source
        self._calculator = calculator
        self._viewer_id = viewer_id
        self._service = service
        self._filter_by_service = filter_by_service
        self._error_message = error_message
        self._generation = 0
        self._state = AvailabilityState()
        self._unsubscribe: Optional[Unsubscribe] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> AvailabilityState:
        return self._state

    @property
    def service(self) -> Optional[Service]:
        return self._service

    def fetch_window(self, now: Any = None) -> Tuple[DateTime, DateTime]:
        """Start of today to the end of the booking horizon, in the configured timezone."""
        current = now_in(self._calculator.timezone, now)
        if current is None:
            raise ValueError(f"Invalid timezone: {self._calculator.timezone}")

        start = current.start_of("day")
        return start, start.add(days=self._calculator.horizon_days)

    def select_service(self, service: Optional[Service]) -> None:
        """
        Switch the selected service.

        In-flight refreshes for the previous selection are abandoned and the
        current snapshot is cleared until the next refresh completes.
        """
        self._service = service
        self._generation += 1
        self._state = AvailabilityState(generation=self._generation)

    def slots_for(self, iso_date: str, *, now: Any = None) -> List[str]:
        """Bookable starts for the selected service on ``iso_date``."""
        snapshot = self._state.snapshot
        if snapshot is None or self._service is None:
            return []

        return self._calculator.slots_for(iso_date, self._service, snapshot, now=now)

    async def refresh(self, *, with_loading: bool = True, now: Any = None) -> AvailabilityState:
        """
        Fetch a fresh snapshot and recompute availability.

        Args:
            with_loading: Flag the state as loading while fetching
            now: Current instant; defaults to the wall clock

        Returns:
            The current state after the refresh (unchanged if superseded)
        """
        self._generation += 1
        generation = self._generation

        if with_loading:
            self._state = replace(self._state, is_loading=True, error=None, generation=generation)

        try:
            start, end = self.fetch_window(now)
        except ValueError as exc:
            logger.error("Cannot compute the fetch window: %s", exc)
            self._state = replace(
                self._state,
                snapshot=None,
                error=self._error_message,
                is_loading=False,
                generation=generation,
            )
            return self._state

        service_id = self._service.id if (self._filter_by_service and self._service) else None

        try:
            appointments = await self._source.fetch_appointments(
                start=start,
                end=end,
                statuses=LIVE_STATUSES,
                service_id=service_id,
            )
        except AppointmentSourceError as exc:
            if generation != self._generation:
                logger.debug("Discarding failed refresh %d, superseded by %d", generation, self._generation)
                return self._state

            logger.error("Failed to load availability: %s", exc)
            self._state = replace(
                self._state,
                snapshot=None,
                error=self._error_message,
                is_loading=False,
                generation=generation,
            )
            return self._state

        if generation != self._generation:
            logger.debug("Discarding stale refresh %d, superseded by %d", generation, self._generation)
            return self._state

        snapshot = self._calculator.classify_range(
            appointments,
            self._viewer_id,
            service=self._service,
            now=now,
        )
        self._state = replace(
            self._state,
            snapshot=snapshot,
            error=None,
            is_loading=False,
            generation=generation,
        )
        logger.debug(
            "Refresh %d applied: %d appointments, %d days classified",
            generation,
            len(appointments),
            len(snapshot.day_slots),
        )
        return self._state

    def watch(self, channel: LiveInvalidationChannel, *, now: Any = None) -> Unsubscribe:
        """
        Refetch whenever a relevant appointment changes.

        Args:
            channel: Change channel of the appointment store
            now: Fixed instant or clock callable for the relevance window;
                defaults to the wall clock, read on every change

        Returns:
            Function that stops watching
        """
        self.unwatch()
        predicate = live_window_predicate(
            self._calculator.horizon_days,
            self._calculator.timezone,
            now=now,
        )

        try:
            self._unsubscribe = channel.subscribe(predicate, self._on_change, self._on_subscription_error)
        except SubscriptionError as exc:
            logger.warning("Live updates unavailable: %s", exc)
            self._state = replace(self._state, subscription_error=str(exc))
            raise

        self._state = replace(self._state, subscription_error=None)
        return self.unwatch

    def unwatch(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def close(self) -> None:
        """Stop watching and abandon every in-flight refresh."""
        self.unwatch()
        self._generation += 1

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def wait_for_pending(self) -> None:
        """Wait until refreshes triggered by live changes have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_change(self, change: RecordChange) -> None:
        logger.debug("Relevant %s on appointments, refreshing", change.event)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Notified outside an event loop: refresh synchronously
            asyncio.run(self.refresh(with_loading=False))
            return

        task = loop.create_task(self.refresh(with_loading=False))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_subscription_error(self, error: Exception) -> None:
        logger.warning("Live availability updates dropped: %s", error)
        self._unsubscribe = None
        self._state = replace(self._state, subscription_error=str(error))
