"""
Domain models for appointments, services and derived availability data.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from pendulum import DateTime

PENDING = "pending"
RESERVED = "reserved"
CONFIRMED = "confirmed"
CANCELED = "canceled"
COMPLETED = "completed"

# Only these statuses occupy time on the calendar
LIVE_STATUSES = frozenset({PENDING, RESERVED, CONFIRMED})


def normalize_number(value: Any) -> float | None:
    """
    Coerce a stored numeric value (number or numeric string) to a float.

    Returns None for missing, non-numeric or non-finite values.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None

    return None


@dataclass(frozen=True)
class Appointment:
    """
    An appointment row as read from the appointment store.

    Timestamps are kept as received so that a malformed value only
    disqualifies its own record when the busy index is built.
    """
    id: str
    status: str
    starts_at: Any
    ends_at: Any = None
    owner_id: Optional[str] = None
    service_buffer_minutes: Optional[float] = None

    @property
    def is_live(self) -> bool:
        """Check whether the appointment occupies time."""
        return self.status in LIVE_STATUSES

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Appointment":
        """
        Normalize a raw store record into an Appointment.

        The related ``services`` entry arrives either as a single object or as
        a list of objects depending on the query shape; the first usable
        ``buffer_min`` wins. ``scheduled_at`` takes precedence over
        ``starts_at`` when both are present.
        """
        services = record.get("services")
        if isinstance(services, list):
            entries = services
        elif services:
            entries = [services]
        else:
            entries = []

        buffer_minutes: float | None = None
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            buffer_minutes = normalize_number(entry.get("buffer_min"))
            if buffer_minutes is not None:
                break

        owner = record.get("customer_id")

        return cls(
            id=str(record.get("id", "")),
            status=str(record.get("status") or "").strip().lower(),
            starts_at=record.get("scheduled_at") or record.get("starts_at"),
            ends_at=record.get("ends_at"),
            owner_id=str(owner) if owner is not None else None,
            service_buffer_minutes=buffer_minutes,
        )

    def effective_buffer(self, fallback: float) -> float:
        """Buffer minutes for this appointment, never negative."""
        if self.service_buffer_minutes is None:
            return max(0.0, fallback)
        return max(0.0, self.service_buffer_minutes)


@dataclass(frozen=True)
class Service:
    """
    A bookable service (or technique) with its duration and buffer.
    """
    id: str
    duration_minutes: float
    buffer_minutes: Optional[float] = None
    name: str = ""

    def is_offerable(self) -> bool:
        """A service with no positive duration cannot be booked."""
        duration = normalize_number(self.duration_minutes)
        return duration is not None and duration > 0

    def effective_buffer(self, fallback: float) -> int:
        """Buffer minutes rounded to whole minutes, falling back when absent."""
        normalized = normalize_number(self.buffer_minutes)
        if normalized is None:
            return max(0, round(fallback))
        return max(0, round(normalized))

    def occupied_minutes(self, fallback: float) -> float:
        """Duration plus buffer: the span a new booking would occupy."""
        return float(self.duration_minutes) + self.effective_buffer(fallback)


@dataclass(frozen=True)
class BusyInterval:
    """
    Time blocked by one live appointment, buffer included.

    Overlapping intervals on the same day are kept as they are; the engine
    only needs to know whether a candidate touches any of them.
    """
    start: DateTime
    end: DateTime

    def overlaps(self, start: DateTime, end: DateTime) -> bool:
        """Half-open overlap: touching endpoints do not conflict."""
        return end > self.start and start < self.end

    def to_dict(self) -> Dict[str, str]:
        return {
            "start": self.start.to_iso8601_string(),
            "end": self.end.to_iso8601_string(),
        }


class DayStatus(str, Enum):
    """Calendar classification of a day, highest priority first."""
    MINE = "mine"
    FULL = "full"
    PARTIAL = "partial"
    AVAILABLE = "available"
    DISABLED = "disabled"


class SlotRejection(str, Enum):
    """Why a template slot was not offered."""
    PAST = "past"
    PAST_CLOSING = "past_closing"
    BUSY = "busy"
    BOOKED = "booked"
    INVALID = "invalid"


@dataclass(frozen=True)
class SlotDecision:
    """Outcome of evaluating one template slot for a day."""
    slot: str
    start: Optional[DateTime]
    end: Optional[DateTime]
    rejection: Optional[SlotRejection] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


@dataclass
class AvailabilitySnapshot:
    """
    Day-keyed availability computed from one appointment snapshot.

    ``my_days`` takes priority: a day owned by the viewer is not repeated in
    the other classification sets.
    """
    timezone: str
    fallback_buffer_minutes: Optional[float] = None
    available_days: Set[str] = field(default_factory=set)
    partially_booked_days: Set[str] = field(default_factory=set)
    booked_days: Set[str] = field(default_factory=set)
    my_days: Set[str] = field(default_factory=set)
    day_slots: Dict[str, List[str]] = field(default_factory=dict)
    busy_intervals: Dict[str, List[BusyInterval]] = field(default_factory=dict)
    booked_slot_starts: Dict[str, Set[str]] = field(default_factory=dict)
    skipped_appointments: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls, timezone: str, fallback_buffer_minutes: Optional[float] = None) -> "AvailabilitySnapshot":
        """Snapshot with nothing bookable, used when inputs are unusable."""
        return cls(timezone=timezone, fallback_buffer_minutes=fallback_buffer_minutes)

    def intervals_for(self, iso_date: str) -> List[BusyInterval]:
        return self.busy_intervals.get(iso_date, [])

    def booked_starts_for(self, iso_date: str) -> Set[str]:
        return self.booked_slot_starts.get(iso_date, set())


@dataclass(frozen=True)
class CalendarDay:
    """
    One cell of the month calendar.
    """
    iso_date: str
    day: int
    status: DayStatus
    is_disabled: bool
