"""
Day-keyed index of busy time built from the live appointment set.

For every civil day the index records the busy intervals (appointment plus
buffer), the exact "HH:MM" starts already taken, whether the viewer owns an
appointment, and how saturated the day is relative to its slot template.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from pendulum import DateTime

from .clock import TimezoneLike, format_hhmm, parse_instant, resolve_timezone, to_civil_date, to_instant
from .models import Appointment, AvailabilitySnapshot, BusyInterval
from .slot_template import SlotTemplateResolver

logger = logging.getLogger(__name__)

# Assumed length of an appointment stored without an end time
DEFAULT_APPOINTMENT_MINUTES = 60


@dataclass
class _DayEntry:
    times: Set[str] = field(default_factory=set)
    my_times: Set[str] = field(default_factory=set)
    intervals: List[BusyInterval] = field(default_factory=list)


class BusyIntervalIndex:
    """
    Builds availability snapshots from raw appointments.

    Algorithm:
    1. Keep only live appointments with parseable timestamps
    2. Extend each appointment's end by its effective buffer
    3. Group intervals and start times by civil day in the timezone
    4. Classify every day of the horizon against its candidate slots
    """

    def __init__(self, template_resolver: SlotTemplateResolver, closing_time: str = "18:00"):
        self.template_resolver = template_resolver
        self.closing_time = closing_time

    def build(
        self,
        appointments: Iterable[Appointment],
        viewer_id: Optional[str],
        *,
        timezone: TimezoneLike,
        fallback_buffer: float,
        days: Sequence[str],
        probe_minutes: Optional[float] = None,
        now: Optional[DateTime] = None,
    ) -> AvailabilitySnapshot:
        """
        Index appointments and classify each day in ``days``.

        Args:
            appointments: Appointment snapshot from the store
            viewer_id: Customer viewing the calendar, used for "mine" days
            timezone: IANA timezone that defines civil days
            fallback_buffer: Buffer minutes for appointments without one
            days: ISO dates to classify (the booking horizon)
            probe_minutes: Length a booking starting at a template slot would
                occupy; defaults to the template step for each day
            now: Slots starting at or before this instant are not candidates

        Returns:
            AvailabilitySnapshot for the horizon
        """
        timezone_name = str(timezone)
        fallback_buffer = max(0.0, fallback_buffer)
        zone = resolve_timezone(timezone)
        if zone is None:
            logger.warning("Unknown timezone %r, nothing will be bookable", timezone)
            return AvailabilitySnapshot.empty(timezone_name, fallback_buffer)

        snapshot = AvailabilitySnapshot(timezone=timezone_name, fallback_buffer_minutes=fallback_buffer)
        per_day = self._group_by_day(
            appointments,
            viewer_id=viewer_id,
            zone=zone,
            fallback_buffer=fallback_buffer,
            skipped=snapshot.skipped_appointments,
        )

        for iso_date, entry in per_day.items():
            if entry.times:
                snapshot.booked_slot_starts[iso_date] = set(entry.times)
            if entry.intervals:
                snapshot.busy_intervals[iso_date] = sorted(entry.intervals, key=lambda b: b.start)

        for iso_date in days:
            snapshot.day_slots[iso_date] = self.template_resolver.template_for(iso_date)
            entry = per_day.get(iso_date)

            if entry is not None and entry.my_times:
                snapshot.my_days.add(iso_date)
                continue

            candidates = self._candidate_slots(iso_date, zone, probe_minutes, now)
            if not candidates:
                # Nothing can be offered on this day any more
                continue

            if entry is None:
                snapshot.available_days.add(iso_date)
                continue

            blocked = sum(
                1
                for slot, start, end in candidates
                if slot in entry.times
                or any(busy.overlaps(start, end) for busy in entry.intervals)
            )

            if blocked == 0:
                snapshot.available_days.add(iso_date)
            elif blocked >= len(candidates):
                snapshot.booked_days.add(iso_date)
            else:
                snapshot.partially_booked_days.add(iso_date)

        return snapshot

    def _group_by_day(
        self,
        appointments: Iterable[Appointment],
        *,
        viewer_id: Optional[str],
        zone,
        fallback_buffer: float,
        skipped: List[str],
    ) -> Dict[str, _DayEntry]:
        per_day: Dict[str, _DayEntry] = {}

        for appointment in appointments:
            if not appointment.is_live:
                continue

            interval = self._busy_interval(appointment, fallback_buffer)
            if interval is None:
                logger.warning(
                    "Skipping appointment %s with unparseable start/end (%r, %r)",
                    appointment.id,
                    appointment.starts_at,
                    appointment.ends_at,
                )
                skipped.append(appointment.id)
                continue

            iso_date = to_civil_date(interval.start, zone)
            time_of_day = format_hhmm(interval.start, zone)

            entry = per_day.setdefault(iso_date, _DayEntry())
            entry.times.add(time_of_day)
            entry.intervals.append(interval)
            if viewer_id and appointment.owner_id == viewer_id:
                entry.my_times.add(time_of_day)

        return per_day

    @staticmethod
    def _busy_interval(appointment: Appointment, fallback_buffer: float) -> BusyInterval | None:
        """
        Compute the busy interval for one appointment.

        A missing end assumes the default appointment length; an end before
        the start is treated as a zero-length appointment so only the buffer
        and the exact start match still block it.
        """
        start = parse_instant(appointment.starts_at)
        if start is None:
            return None

        if appointment.ends_at is None or appointment.ends_at == "":
            end = start.add(minutes=DEFAULT_APPOINTMENT_MINUTES)
        else:
            end = parse_instant(appointment.ends_at)
            if end is None:
                return None
            end = max(end, start)

        buffer_minutes = appointment.effective_buffer(fallback_buffer)
        return BusyInterval(start=start, end=end.add(seconds=int(round(buffer_minutes * 60))))

    def _candidate_slots(
        self,
        iso_date: str,
        zone,
        probe_minutes: Optional[float],
        now: Optional[DateTime] = None,
    ) -> List[Tuple[str, DateTime, DateTime]]:
        """
        Template slots that could be offered on an empty day.

        A slot is a candidate when it starts after ``now`` and a booking of
        ``probe_minutes`` starting at it still ends by closing time.
        """
        closing = to_instant(iso_date, self.closing_time, zone)
        if closing is None:
            return []

        length = probe_minutes if probe_minutes and probe_minutes > 0 else self.template_resolver.step_minutes(iso_date)

        candidates: List[Tuple[str, DateTime, DateTime]] = []
        for slot in self.template_resolver.template_for(iso_date):
            start = to_instant(iso_date, slot, zone)
            if start is None or (now is not None and start <= now):
                continue
            end = start.add(seconds=int(round(length * 60)))
            if end > closing:
                continue
            candidates.append((format_hhmm(start, zone), start, end))

        return candidates
