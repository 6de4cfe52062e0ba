"""
Tests for domain models.
"""

import pendulum
import pytest

from salonslots.domain.models import Appointment, BusyInterval, Service, normalize_number


class TestAppointmentFromRecord:
    """Tests for normalizing store rows."""

    def test_single_service_object(self):
        """A nested single object provides the buffer."""
        appointment = Appointment.from_record(
            {
                "id": 1,
                "starts_at": "2026-10-18T12:00:00+00:00",
                "ends_at": "2026-10-18T12:30:00+00:00",
                "status": "Confirmed",
                "customer_id": "client-1",
                "services": {"buffer_min": 20},
            }
        )

        assert appointment.id == "1"
        assert appointment.status == "confirmed"
        assert appointment.owner_id == "client-1"
        assert appointment.service_buffer_minutes == 20
        assert appointment.is_live

    def test_service_array(self):
        """An array of one related record is handled the same way."""
        appointment = Appointment.from_record(
            {"id": "a", "starts_at": "x", "status": "pending", "services": [{"buffer_min": "10"}]}
        )

        assert appointment.service_buffer_minutes == 10

    def test_first_usable_buffer_wins(self):
        """Entries without a numeric buffer are skipped."""
        appointment = Appointment.from_record(
            {
                "id": "a",
                "starts_at": "x",
                "status": "pending",
                "services": [{"buffer_min": None}, {"buffer_min": "abc"}, {"buffer_min": 5}],
            }
        )

        assert appointment.service_buffer_minutes == 5

    @pytest.mark.parametrize("services", [None, [], {}, [{"buffer_min": None}], "oops"])
    def test_missing_buffer(self, services):
        """No usable buffer leaves the field empty."""
        appointment = Appointment.from_record(
            {"id": "a", "starts_at": "x", "status": "pending", "services": services}
        )

        assert appointment.service_buffer_minutes is None
        assert appointment.effective_buffer(15) == 15

    def test_scheduled_at_takes_precedence(self):
        """scheduled_at overrides starts_at when present."""
        appointment = Appointment.from_record(
            {
                "id": "a",
                "scheduled_at": "2026-10-18T13:00:00+00:00",
                "starts_at": "2026-10-18T12:00:00+00:00",
                "status": "reserved",
            }
        )

        assert appointment.starts_at == "2026-10-18T13:00:00+00:00"

    @pytest.mark.parametrize("status", ["canceled", "completed", "", "unknown"])
    def test_not_live(self, status):
        """Only pending, reserved and confirmed occupy time."""
        appointment = Appointment.from_record({"id": "a", "starts_at": "x", "status": status})

        assert not appointment.is_live

    def test_negative_buffer_clamped(self):
        """Negative buffers never shorten an interval."""
        appointment = Appointment(id="a", status="pending", starts_at="x", service_buffer_minutes=-10)

        assert appointment.effective_buffer(15) == 0


class TestService:
    """Tests for Service."""

    def test_effective_buffer(self):
        """Absent buffers fall back, fractional ones are rounded."""
        assert Service(id="s", duration_minutes=30).effective_buffer(15) == 15
        assert Service(id="s", duration_minutes=30, buffer_minutes=9.6).effective_buffer(15) == 10
        assert Service(id="s", duration_minutes=30, buffer_minutes=-5).effective_buffer(15) == 0

    def test_occupied_minutes(self):
        """Duration plus buffer."""
        assert Service(id="s", duration_minutes=60, buffer_minutes=15).occupied_minutes(0) == 75

    @pytest.mark.parametrize("duration,offerable", [(30, True), (0, False), (-10, False), (None, False)])
    def test_is_offerable(self, duration, offerable):
        """Only positive durations can be booked."""
        assert Service(id="s", duration_minutes=duration).is_offerable() is offerable


class TestBusyInterval:
    """Tests for BusyInterval overlap detection."""

    def _at(self, hhmm):
        hour, minute = map(int, hhmm.split(":"))
        return pendulum.datetime(2026, 10, 18, hour, minute, tz="America/Sao_Paulo")

    def test_overlap(self):
        """Partial overlap conflicts."""
        busy = BusyInterval(start=self._at("09:00"), end=self._at("09:45"))

        assert busy.overlaps(self._at("09:30"), self._at("10:15"))
        assert busy.overlaps(self._at("08:30"), self._at("09:15"))
        assert busy.overlaps(self._at("08:00"), self._at("10:00"))

    def test_touching_endpoints_do_not_overlap(self):
        """Half-open intervals: end == start is no conflict."""
        busy = BusyInterval(start=self._at("09:00"), end=self._at("09:45"))

        assert not busy.overlaps(self._at("09:45"), self._at("10:30"))
        assert not busy.overlaps(self._at("08:15"), self._at("09:00"))

    def test_to_dict(self):
        """Serialized as ISO 8601 strings."""
        busy = BusyInterval(start=self._at("09:00"), end=self._at("09:45"))

        assert busy.to_dict() == {
            "start": "2026-10-18T09:00:00-03:00",
            "end": "2026-10-18T09:45:00-03:00",
        }


def test_normalize_number():
    """Numbers and numeric strings are accepted, everything else is not."""
    assert normalize_number(5) == 5.0
    assert normalize_number("7.5") == 7.5
    assert normalize_number(True) is None
    assert normalize_number(float("nan")) is None
    assert normalize_number("") is None
    assert normalize_number(None) is None
