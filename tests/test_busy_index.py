"""
Tests for the busy interval index.
"""

import pendulum

from salonslots.domain.busy_index import BusyIntervalIndex
from salonslots.domain.models import Appointment
from salonslots.domain.slot_template import SlotTemplateResolver, make_slots

TZ = "America/Sao_Paulo"
DAY = "2026-10-18"
NEXT_DAY = "2026-10-19"


def _appointment(appointment_id, start, end, *, day=DAY, status="confirmed", owner=None, buffer=15):
    return Appointment(
        id=appointment_id,
        status=status,
        starts_at=f"{day}T{start}:00-03:00",
        ends_at=f"{day}T{end}:00-03:00" if end else None,
        owner_id=owner,
        service_buffer_minutes=buffer,
    )


def _build(appointments, viewer_id=None, days=(DAY, NEXT_DAY), probe_minutes=None, fallback_buffer=15, now=None):
    index = BusyIntervalIndex(SlotTemplateResolver(make_slots("09:00", "18:00", 30)), closing_time="18:00")
    return index.build(
        appointments,
        viewer_id,
        timezone=TZ,
        fallback_buffer=fallback_buffer,
        days=list(days),
        probe_minutes=probe_minutes,
        now=now,
    )


class TestBusyIntervals:
    """Tests for interval construction."""

    def test_interval_includes_buffer(self):
        """A 09:00-09:30 appointment with 15 min buffer blocks 09:00-09:45."""
        snapshot = _build([_appointment("a", "09:00", "09:30")])

        intervals = snapshot.busy_intervals[DAY]
        assert len(intervals) == 1
        assert intervals[0].start == pendulum.datetime(2026, 10, 18, 9, 0, tz=TZ)
        assert intervals[0].end == pendulum.datetime(2026, 10, 18, 9, 45, tz=TZ)
        assert snapshot.booked_slot_starts[DAY] == {"09:00"}

    def test_fallback_buffer(self):
        """Appointments without a buffer use the fallback."""
        snapshot = _build([_appointment("a", "10:00", "10:30", buffer=None)], fallback_buffer=20)

        assert snapshot.busy_intervals[DAY][0].end == pendulum.datetime(2026, 10, 18, 10, 50, tz=TZ)

    def test_missing_end_assumes_one_hour(self):
        """Stored appointments without an end last one hour."""
        snapshot = _build([_appointment("a", "10:00", None, buffer=0)])

        assert snapshot.busy_intervals[DAY][0].end == pendulum.datetime(2026, 10, 18, 11, 0, tz=TZ)

    def test_end_before_start_is_zero_length(self):
        """An end before the start only keeps the buffer."""
        snapshot = _build([_appointment("a", "10:00", "09:00", buffer=15)])

        assert snapshot.busy_intervals[DAY][0].end == pendulum.datetime(2026, 10, 18, 10, 15, tz=TZ)

    def test_overlapping_intervals_are_kept_sorted(self):
        """Overlaps are tolerated, not merged."""
        snapshot = _build(
            [
                _appointment("b", "11:00", "12:00"),
                _appointment("a", "10:30", "11:30"),
            ]
        )

        starts = [interval.start.format("HH:mm") for interval in snapshot.busy_intervals[DAY]]
        assert starts == ["10:30", "11:00"]

    def test_day_attributed_in_configured_timezone(self):
        """22:30 local is 01:30 UTC the next day but stays on the local day."""
        appointment = Appointment(
            id="late",
            status="confirmed",
            starts_at="2026-10-19T01:30:00+00:00",
            ends_at="2026-10-19T02:00:00+00:00",
        )

        snapshot = _build([appointment])

        assert DAY in snapshot.busy_intervals
        assert NEXT_DAY not in snapshot.busy_intervals
        assert snapshot.booked_slot_starts[DAY] == {"22:30"}

    def test_canceled_and_completed_are_ignored(self):
        """Only live appointments occupy time."""
        snapshot = _build(
            [
                _appointment("a", "09:00", "09:30", status="canceled"),
                _appointment("b", "10:00", "10:30", status="completed"),
            ]
        )

        assert snapshot.busy_intervals == {}
        assert snapshot.booked_slot_starts == {}
        assert DAY in snapshot.available_days


class TestDayClassification:
    """Tests for available / partial / booked / mine days."""

    def test_no_appointments_is_available(self):
        """Days without appointments are available, never absent."""
        snapshot = _build([])

        assert snapshot.available_days == {DAY, NEXT_DAY}
        assert not snapshot.partially_booked_days
        assert not snapshot.booked_days
        assert snapshot.day_slots[DAY] == make_slots("09:00", "18:00", 30)

    def test_partial(self):
        """Some blocked template slots make a day partial."""
        snapshot = _build([_appointment("a", "09:00", "09:30")])

        assert DAY in snapshot.partially_booked_days
        assert NEXT_DAY in snapshot.available_days

    def test_full(self):
        """Appointments on every slot from 09:00 to 17:30 fill the day."""
        appointments = [
            _appointment(f"a{slot}", slot, end)
            for slot, end in zip(make_slots("09:00", "17:30", 30), make_slots("09:30", "18:00", 30))
        ]

        snapshot = _build(appointments)

        assert DAY in snapshot.booked_days
        assert DAY not in snapshot.partially_booked_days

    def test_mine_takes_priority(self):
        """A day where the viewer has an appointment is only in my_days."""
        snapshot = _build([_appointment("a", "09:00", "09:30", owner="client-1")], viewer_id="client-1")

        assert snapshot.my_days == {DAY}
        assert DAY not in snapshot.partially_booked_days
        assert DAY not in snapshot.available_days

    def test_other_viewer_does_not_own(self):
        """Someone else's appointment is just busy time."""
        snapshot = _build([_appointment("a", "09:00", "09:30", owner="client-1")], viewer_id="client-2")

        assert not snapshot.my_days
        assert DAY in snapshot.partially_booked_days

    def test_no_viewer_never_owns(self):
        """Anonymous viewers have no days, even for ownerless appointments."""
        snapshot = _build([_appointment("a", "09:00", "09:30", owner=None)], viewer_id=None)

        assert not snapshot.my_days

    def test_probe_length_changes_saturation(self):
        """A long service sees a day as full before a short one does."""
        appointments = [_appointment("a", "11:00", "17:00", buffer=0)]

        short = _build(appointments, probe_minutes=30)
        long = _build(appointments, probe_minutes=180)

        # 180 min from 09:00 already overlaps 11:00; from 17:00 runs past closing
        assert DAY in short.partially_booked_days
        assert DAY in long.booked_days


class TestMalformedRecords:
    """Tests for isolating malformed records."""

    def test_malformed_start_is_skipped(self):
        """An unparseable start drops only that record."""
        valid = [_appointment("a", "09:00", "09:30"), _appointment("b", "10:00", "10:30", day=NEXT_DAY)]
        broken = Appointment(id="bad", status="confirmed", starts_at="not-a-date", ends_at=None)

        baseline = _build(valid)
        snapshot = _build(valid + [broken])

        assert snapshot.busy_intervals == baseline.busy_intervals
        assert snapshot.booked_slot_starts == baseline.booked_slot_starts
        assert snapshot.partially_booked_days == baseline.partially_booked_days
        assert snapshot.available_days == baseline.available_days
        assert snapshot.skipped_appointments == ["bad"]

    def test_malformed_end_is_skipped(self):
        """A present but unparseable end drops the record."""
        broken = Appointment(id="bad", status="confirmed", starts_at=f"{DAY}T09:00:00-03:00", ends_at="soon")

        snapshot = _build([broken])

        assert snapshot.busy_intervals == {}
        assert DAY in snapshot.available_days

    def test_invalid_timezone_gives_empty_snapshot(self):
        """Nothing is classified when the timezone is unknown."""
        index = BusyIntervalIndex(SlotTemplateResolver())

        snapshot = index.build(
            [_appointment("a", "09:00", "09:30")],
            None,
            timezone="Mars/Olympus",
            fallback_buffer=15,
            days=[DAY],
        )

        assert not snapshot.available_days
        assert not snapshot.busy_intervals


class TestNow:
    """Tests for slots that already started."""

    def test_started_slots_are_not_candidates(self):
        """At 17:10 only 17:30 remains, and it is taken."""
        now = pendulum.datetime(2026, 10, 18, 17, 10, tz=TZ)

        snapshot = _build([_appointment("a", "17:30", "18:00", buffer=0)], now=now)

        assert DAY in snapshot.booked_days
        assert NEXT_DAY in snapshot.available_days

    def test_day_over_is_unclassified(self):
        """After the last start the day drops out of every set."""
        now = pendulum.datetime(2026, 10, 18, 17, 40, tz=TZ)

        snapshot = _build([], now=now)

        assert DAY not in snapshot.available_days
        assert DAY not in snapshot.booked_days
        assert DAY in snapshot.day_slots
        assert NEXT_DAY in snapshot.available_days

    def test_fallback_buffer_is_recorded(self):
        snapshot = _build([], fallback_buffer=-5)

        assert snapshot.fallback_buffer_minutes == 0
