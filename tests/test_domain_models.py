"""
Tests for domain models.
"""

import pendulum
import pytest

from slotbook.domain.exceptions import InvalidTransition
from slotbook.domain.models import (
    Appointment,
    AppointmentQuery,
    AppointmentStatus,
    AvailabilityRule,
    Credential,
    EventSpec,
    TimeRange,
    day_of_week,
    parse_clock,
)

from conftest import MONDAY, at


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        tr = TimeRange(start=at("09:00"), end=at("17:00"))

        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=at("17:00"), end=at("09:00"))

    def test_overlaps(self):
        tr1 = TimeRange(start=at("09:00"), end=at("12:00"))
        tr2 = TimeRange(start=at("11:00"), end=at("14:00"))
        tr3 = TimeRange(start=at("14:00"), end=at("17:00"))

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)

    def test_touching_ranges_do_not_overlap(self):
        first = TimeRange(start=at("09:00"), end=at("10:00"))
        second = TimeRange(start=at("10:00"), end=at("11:00"))

        assert not first.overlaps(second)
        assert not second.overlaps(first)

    def test_payload_is_utc_iso8601(self):
        tr = TimeRange(start=at("10:00", tz="Europe/Berlin"), end=at("11:00", tz="Europe/Berlin"))

        assert tr.as_payload() == {
            "start": "2024-11-25T09:00:00Z",
            "end": "2024-11-25T10:00:00Z",
        }


class TestAvailabilityRule:
    """Tests for AvailabilityRule model."""

    def test_parse_clock(self):
        assert parse_clock("09:30") == (9, 30)
        assert parse_clock("7:05") == (7, 5)
        with pytest.raises(ValueError):
            parse_clock("24:00")
        with pytest.raises(ValueError):
            parse_clock("9am")

    def test_day_of_week_starts_on_sunday(self):
        assert day_of_week(MONDAY) == 1
        assert day_of_week(pendulum.date(2024, 11, 24)) == 0  # Sunday
        assert day_of_week(pendulum.date(2024, 11, 30)) == 6  # Saturday

    def test_start_must_precede_end(self):
        with pytest.raises(ValueError, match="must be before"):
            AvailabilityRule(seller_id="alice", day_of_week=1, start_time="17:00", end_time="09:00")

    def test_day_out_of_range(self):
        with pytest.raises(ValueError, match="between 0 and 6"):
            AvailabilityRule(seller_id="alice", day_of_week=7, start_time="09:00", end_time="17:00")

    def test_window_on_anchors_in_timezone(self):
        rule = AvailabilityRule(seller_id="alice", day_of_week=1, start_time="09:30", end_time="17:00")

        window = rule.window_on(MONDAY, "Europe/Berlin")

        assert window.start == at("08:30")
        assert window.end == at("16:00")

    def test_applies_to(self):
        rule = AvailabilityRule(seller_id="alice", day_of_week=1, start_time="09:00", end_time="17:00")
        inactive = AvailabilityRule(
            seller_id="alice", day_of_week=1, start_time="09:00", end_time="17:00", active=False
        )

        assert rule.applies_to(MONDAY)
        assert not rule.applies_to(MONDAY.add(days=1))
        assert not inactive.applies_to(MONDAY)


class TestCredential:
    def test_missing_access_token_counts_as_expired(self):
        assert Credential(provider="google", refresh_token="r").is_expired()

    def test_expiry_uses_skew(self):
        now = at("10:00")
        credential = Credential(provider="google", access_token="t", expires_at=at("10:00").add(seconds=30))

        assert credential.is_expired(now=now)
        assert not credential.is_expired(now=now, skew_seconds=0)

    def test_round_trip(self):
        credential = Credential(provider="graph", access_token="t", refresh_token="r", expires_at=at("10:00"))

        assert Credential.from_dict(credential.to_dict()) == credential


class TestAppointment:
    def _appointment(self, **kwargs):
        data = dict(
            id="a1",
            buyer_id="bob",
            seller_id="alice",
            title="Intro",
            start=at("10:00"),
            end=at("11:00"),
        )
        data.update(kwargs)
        return Appointment(**data)

    def test_start_must_precede_end(self):
        with pytest.raises(ValueError):
            self._appointment(start=at("11:00"), end=at("10:00"))

    def test_defaults(self):
        appointment = self._appointment()

        assert appointment.status == AppointmentStatus.SCHEDULED
        assert appointment.external_event_id is None
        assert appointment.meeting_link is None

    @pytest.mark.parametrize("target", [AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED])
    def test_forward_transitions(self, target):
        appointment = self._appointment()

        appointment.transition_to(target)

        assert appointment.status == target

    def test_no_backward_transition(self):
        appointment = self._appointment(status=AppointmentStatus.CANCELLED)

        with pytest.raises(InvalidTransition):
            appointment.transition_to(AppointmentStatus.SCHEDULED)
        with pytest.raises(InvalidTransition):
            appointment.transition_to(AppointmentStatus.COMPLETED)

    def test_dict_round_trip_keeps_instants(self):
        appointment = self._appointment(meeting_link="https://meet.example.com/x")

        restored = Appointment.from_dict(appointment.to_dict())

        assert restored.start == appointment.start
        assert restored.status == AppointmentStatus.SCHEDULED
        assert restored.meeting_link == "https://meet.example.com/x"

    def test_query_matches_overlap(self):
        appointment = self._appointment()
        overlapping = AppointmentQuery(seller_id="alice", overlapping=TimeRange(at("10:30"), at("11:30")))
        touching = AppointmentQuery(seller_id="alice", overlapping=TimeRange(at("11:00"), at("12:00")))

        assert overlapping.matches(appointment)
        assert not touching.matches(appointment)
        assert not AppointmentQuery(buyer_id="carol").matches(appointment)


def test_event_spec_request_id_is_per_principal():
    spec = EventSpec(title="t", start=at("10:00"), end=at("11:00"), request_id="appt")

    assert spec.for_principal("alice").request_id == "appt-alice"
    assert spec.for_principal("bob").request_id == "appt-bob"
    assert EventSpec(title="t", start=at("10:00"), end=at("11:00")).for_principal("x").request_id is None
