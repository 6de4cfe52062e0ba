"""
Core business logic for deciding which slots can be booked.

This is the heart of the engine - pure domain logic without any external
dependencies (no API calls, no database, no I/O). Every call is a fresh
function of its inputs, so it is safe to call repeatedly or for several
months at once.
"""

from __future__ import annotations

import calendar
import logging
from typing import Any, Iterable, List, Optional

from .busy_index import BusyIntervalIndex
from .clock import (
    TimezoneLike,
    date_range,
    is_iso_date,
    now_in,
    resolve_timezone,
    to_instant,
)
from .models import (
    Appointment,
    AvailabilitySnapshot,
    CalendarDay,
    DayStatus,
    Service,
    SlotDecision,
    SlotRejection,
)
from .slot_template import SlotTemplateResolver

logger = logging.getLogger(__name__)


class AvailabilityCalculator:
    """
    Classifies calendar days and lists bookable slot starts.

    Slot algorithm, applied to each template slot in order:
    1. Reject slots that start at or before "now"
    2. Reject slots whose booking (duration + buffer) would run past closing
    3. Reject slots that overlap any busy interval of the day (half-open)
    4. Reject slots whose start matches an existing appointment's start
    5. Accept everything else, preserving template order
    """

    def __init__(
        self,
        template_resolver: SlotTemplateResolver,
        *,
        timezone: str = "America/Sao_Paulo",
        fallback_buffer_minutes: float = 15,
        closing_time: str = "18:00",
        horizon_days: int = 60,
    ):
        self.template_resolver = template_resolver
        self.timezone = timezone
        self.fallback_buffer_minutes = fallback_buffer_minutes
        self.closing_time = closing_time
        self.horizon_days = horizon_days
        self._index = BusyIntervalIndex(template_resolver, closing_time=closing_time)

    @classmethod
    def from_config(cls, config) -> "AvailabilityCalculator":
        """Build a calculator from an ``AppConfig``."""
        schedule = config.schedule
        resolver = SlotTemplateResolver.from_schedule(
            opening_time=schedule.opening_time,
            closing_time=schedule.closing_time,
            step_minutes=schedule.slot_step_minutes,
            overrides=schedule.day_overrides,
        )
        return cls(
            resolver,
            timezone=config.timezone,
            fallback_buffer_minutes=config.fallback_buffer_minutes,
            closing_time=schedule.closing_time,
            horizon_days=schedule.horizon_days,
        )

    def classify_range(
        self,
        appointments: Iterable[Appointment],
        viewer_id: Optional[str] = None,
        *,
        timezone: TimezoneLike | None = None,
        fallback_buffer: Optional[float] = None,
        service: Optional[Service] = None,
        now: Any = None,
        days: Optional[int] = None,
    ) -> AvailabilitySnapshot:
        """
        Classify every day of the booking horizon starting today.

        Args:
            appointments: Full appointment snapshot (live statuses expected)
            viewer_id: Customer viewing the calendar
            timezone: IANA timezone; defaults to the configured one
            fallback_buffer: Buffer for appointments without one
            service: When given, a day is full exactly when this service
                has no bookable slot left on it
            now: Current instant; defaults to the wall clock
            days: Horizon length in days

        Returns:
            AvailabilitySnapshot (empty when the timezone is invalid)
        """
        tz = timezone or self.timezone
        current = now_in(tz, now)
        if current is None:
            logger.warning("Cannot classify days: invalid timezone %r or now %r", tz, now)
            return AvailabilitySnapshot.empty(str(tz))

        buffer_minutes = self.fallback_buffer_minutes if fallback_buffer is None else fallback_buffer
        horizon = date_range(current.to_date_string(), max(1, days or self.horizon_days))

        probe_minutes = None
        if service is not None and service.is_offerable():
            probe_minutes = service.occupied_minutes(buffer_minutes)

        return self._index.build(
            appointments,
            viewer_id,
            timezone=tz,
            fallback_buffer=buffer_minutes,
            days=horizon,
            probe_minutes=probe_minutes,
            now=current,
        )

    def explain_slots(
        self,
        iso_date: str,
        service: Service,
        snapshot: Optional[AvailabilitySnapshot] = None,
        *,
        timezone: TimezoneLike | None = None,
        now: Any = None,
    ) -> List[SlotDecision]:
        """
        Evaluate every template slot of a day and record why it was rejected.

        With a snapshot, its timezone and fallback buffer are used unless
        ``timezone`` is given, so slots agree with the day classification.
        Returns an empty list when the day, timezone or service is unusable.
        """
        tz = timezone or (snapshot.timezone if snapshot is not None else self.timezone)
        fallback_buffer = self.fallback_buffer_minutes
        if snapshot is not None and snapshot.fallback_buffer_minutes is not None:
            fallback_buffer = snapshot.fallback_buffer_minutes
        zone = resolve_timezone(tz)
        if zone is None or not is_iso_date(iso_date):
            return []

        if service is None or not service.is_offerable():
            return []

        closing = to_instant(iso_date, self.closing_time, zone)
        current = now_in(zone, now)
        if closing is None or current is None:
            return []

        occupied_seconds = int(round(service.occupied_minutes(fallback_buffer) * 60))
        busy_intervals = snapshot.intervals_for(iso_date) if snapshot else []
        booked_starts = snapshot.booked_starts_for(iso_date) if snapshot else set()

        decisions: List[SlotDecision] = []
        for slot in self.template_resolver.template_for(iso_date):
            slot_start = to_instant(iso_date, slot, zone)
            if slot_start is None:
                decisions.append(SlotDecision(slot, None, None, SlotRejection.INVALID))
                continue

            slot_end = slot_start.add(seconds=occupied_seconds)
            decisions.append(
                SlotDecision(
                    slot,
                    slot_start,
                    slot_end,
                    self._rejection(slot, slot_start, slot_end, current, closing, busy_intervals, booked_starts),
                )
            )

        return decisions

    def slots_for(
        self,
        iso_date: str,
        service: Service,
        snapshot: Optional[AvailabilitySnapshot] = None,
        *,
        timezone: TimezoneLike | None = None,
        now: Any = None,
    ) -> List[str]:
        """
        List bookable "HH:MM" starts for one day, in template order.
        """
        return [
            decision.slot
            for decision in self.explain_slots(iso_date, service, snapshot, timezone=timezone, now=now)
            if decision.accepted
        ]

    def day_status(
        self,
        iso_date: str,
        snapshot: AvailabilitySnapshot,
        *,
        now: Any = None,
    ) -> DayStatus:
        """
        Classify one day: mine > full > partial > available > disabled.

        Past days and days outside every set are disabled.
        """
        if iso_date in snapshot.my_days:
            return DayStatus.MINE

        current = now_in(snapshot.timezone, now)
        if current is None or not is_iso_date(iso_date) or iso_date < current.to_date_string():
            return DayStatus.DISABLED

        if iso_date in snapshot.booked_days:
            return DayStatus.FULL
        if iso_date in snapshot.partially_booked_days:
            return DayStatus.PARTIAL
        if iso_date in snapshot.available_days:
            return DayStatus.AVAILABLE

        return DayStatus.DISABLED

    def calendar_month(
        self,
        year: int,
        month: int,
        snapshot: AvailabilitySnapshot,
        *,
        now: Any = None,
    ) -> List[CalendarDay]:
        """
        Paint every day of a month.

        A day is disabled for interaction when it is past, full or has no
        classification at all.
        """
        current = now_in(snapshot.timezone, now)
        today_iso = current.to_date_string() if current is not None else None

        days_in_month = calendar.monthrange(year, month)[1]
        cells: List[CalendarDay] = []

        for day in range(1, days_in_month + 1):
            iso_date = f"{year:04d}-{month:02d}-{day:02d}"
            status = self.day_status(iso_date, snapshot, now=now)
            is_past = today_iso is None or iso_date < today_iso
            cells.append(
                CalendarDay(
                    iso_date=iso_date,
                    day=day,
                    status=status,
                    is_disabled=is_past or status in (DayStatus.FULL, DayStatus.DISABLED),
                )
            )

        return cells

    @staticmethod
    def _rejection(slot, slot_start, slot_end, current, closing, busy_intervals, booked_starts):
        if slot_start <= current:
            return SlotRejection.PAST

        if slot_end > closing:
            return SlotRejection.PAST_CLOSING

        if any(busy.overlaps(slot_start, slot_end) for busy in busy_intervals):
            return SlotRejection.BUSY

        if slot_start.format("HH:mm") in booked_starts:
            return SlotRejection.BOOKED

        return None
