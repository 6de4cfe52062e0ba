"""
Candidate start times offered for each calendar day.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from .clock import parse_time_of_day

DEFAULT_STEP_MINUTES = 30


def make_slots(start: str = "09:00", end: str = "18:00", step_minutes: int = DEFAULT_STEP_MINUTES) -> List[str]:
    """
    Build an ordered "HH:MM" template from ``start`` to ``end`` inclusive.

    Example: make_slots("09:00", "10:00", 30) -> ["09:00", "09:30", "10:00"]
    """
    start_parts = parse_time_of_day(start) or (0, 0)
    end_parts = parse_time_of_day(end) or (0, 0)
    step = step_minutes if step_minutes and step_minutes > 0 else DEFAULT_STEP_MINUTES

    cursor = start_parts[0] * 60 + start_parts[1]
    limit = end_parts[0] * 60 + end_parts[1]

    slots: List[str] = []
    while cursor <= limit:
        slots.append(f"{cursor // 60:02d}:{cursor % 60:02d}")
        cursor += step

    return slots


DEFAULT_SLOT_TEMPLATE = tuple(make_slots("09:00", "18:00", DEFAULT_STEP_MINUTES))


class SlotTemplateResolver:
    """
    Resolves the slot template for a day.

    The template is only a menu of candidate starts; durations, buffers and
    busy times are applied downstream by the availability calculator.
    """

    def __init__(
        self,
        default_template: Sequence[str] = DEFAULT_SLOT_TEMPLATE,
        overrides: Mapping[str, Sequence[str]] | None = None,
    ):
        self.default_template = list(default_template)
        self.overrides: Dict[str, List[str]] = {
            iso_date: list(slots) for iso_date, slots in (overrides or {}).items()
        }

    @classmethod
    def from_schedule(
        cls,
        opening_time: str,
        closing_time: str,
        step_minutes: int,
        overrides: Mapping[str, Sequence[str]] | None = None,
    ) -> "SlotTemplateResolver":
        """Build a resolver whose default template spans opening to closing."""
        return cls(
            default_template=make_slots(opening_time, closing_time, step_minutes),
            overrides=overrides,
        )

    def template_for(self, iso_date: str) -> List[str]:
        """Return a fresh copy of the template that applies to ``iso_date``."""
        if iso_date in self.overrides:
            return list(self.overrides[iso_date])
        return list(self.default_template)

    def step_minutes(self, iso_date: str) -> int:
        """
        Smallest gap between consecutive template entries for a day.

        Used as the probe length when classifying a day without a service.
        """
        minutes = []
        for slot in self.template_for(iso_date):
            parts = parse_time_of_day(slot)
            if parts is not None:
                minutes.append(parts[0] * 60 + parts[1])

        gaps = [b - a for a, b in zip(sorted(minutes), sorted(minutes)[1:]) if b > a]
        return min(gaps) if gaps else DEFAULT_STEP_MINUTES
