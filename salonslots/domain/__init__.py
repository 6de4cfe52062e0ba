"""
Domain layer - Pure availability logic without external dependencies.
"""

from .availability import AvailabilityCalculator
from .busy_index import BusyIntervalIndex
from .models import (
    LIVE_STATUSES,
    Appointment,
    AvailabilitySnapshot,
    BusyInterval,
    CalendarDay,
    DayStatus,
    Service,
    SlotDecision,
    SlotRejection,
)
from .slot_template import SlotTemplateResolver, make_slots

__all__ = [
    "LIVE_STATUSES",
    "Appointment",
    "AvailabilityCalculator",
    "AvailabilitySnapshot",
    "BusyInterval",
    "BusyIntervalIndex",
    "CalendarDay",
    "DayStatus",
    "Service",
    "SlotDecision",
    "SlotRejection",
    "SlotTemplateResolver",
    "make_slots",
]
