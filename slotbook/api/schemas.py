"""
Request and response bodies of the HTTP API.
"""

from typing import List, Optional

import pendulum
from pendulum import DateTime
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ..domain.exceptions import InvalidInput
from ..domain.models import AppointmentView, AvailabilityRule, Principal, Slot, parse_clock
from ..services.booking import BookingRequest


def parse_instant(value: Optional[str], field_name: str) -> Optional[DateTime]:
    """Parse an ISO 8601 string into a UTC instant."""
    if value is None:
        return None
    try:
        parsed = pendulum.parse(value)
    except (ValueError, TypeError) as exc:
        raise InvalidInput(f"{field_name} must be an ISO 8601 datetime") from exc
    if not isinstance(parsed, DateTime):
        raise InvalidInput(f"{field_name} must be an ISO 8601 datetime")
    return parsed.in_timezone("UTC")


def iso(value: Optional[DateTime]) -> Optional[str]:
    return value.in_timezone("UTC").to_iso8601_string() if value else None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookingBody(CamelModel):
    """Body of ``POST /appointments``. Presence is checked by the orchestrator."""
    seller_id: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None

    def to_request(self) -> BookingRequest:
        return BookingRequest(
            seller_id=self.seller_id or "",
            start=parse_instant(self.start_time, "startTime"),
            end=parse_instant(self.end_time, "endTime"),
            title=self.title or "",
            description=self.description or None,
        )


class SlotPayload(BaseModel):
    start: str
    end: str

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotPayload":
        return cls(**slot.as_payload())


class SlotsResponse(BaseModel):
    slots: List[SlotPayload]


class ParticipantPayload(CamelModel):
    id: str
    name: str
    email: str

    @classmethod
    def from_principal(cls, principal: Optional[Principal]) -> Optional["ParticipantPayload"]:
        return cls(**principal.summary()) if principal else None


class AppointmentPayload(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    start_time: str
    end_time: str
    status: str
    external_event_id: Optional[str] = None
    meeting_link: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None
    buyer: Optional[ParticipantPayload] = None
    seller: Optional[ParticipantPayload] = None

    @classmethod
    def from_view(cls, view: AppointmentView) -> "AppointmentPayload":
        appointment = view.appointment
        return cls(
            id=appointment.id,
            title=appointment.title,
            description=appointment.description,
            start_time=iso(appointment.start),
            end_time=iso(appointment.end),
            status=appointment.status.value,
            external_event_id=appointment.external_event_id,
            meeting_link=appointment.meeting_link,
            created_at=iso(appointment.created_at),
            updated_at=iso(appointment.updated_at),
            buyer=ParticipantPayload.from_principal(view.buyer),
            seller=ParticipantPayload.from_principal(view.seller),
        )


class AvailabilityEntry(CamelModel):
    day_of_week: int
    start_time: str
    end_time: str
    active: bool = True

    @field_validator("day_of_week")
    @classmethod
    def validate_day(cls, value: int) -> int:
        if value not in range(7):
            raise ValueError(f"dayOfWeek must be between 0 and 6, got {value}")
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, value: str) -> str:
        parse_clock(value)
        return value

    def to_rule(self, seller_id: str) -> AvailabilityRule:
        try:
            return AvailabilityRule(
                seller_id=seller_id,
                day_of_week=self.day_of_week,
                start_time=self.start_time,
                end_time=self.end_time,
                active=self.active,
            )
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc

    @classmethod
    def from_rule(cls, rule: AvailabilityRule) -> "AvailabilityEntry":
        return cls(
            day_of_week=rule.day_of_week,
            start_time=rule.start_time,
            end_time=rule.end_time,
            active=rule.active,
        )


class AvailabilityBody(CamelModel):
    availability: List[AvailabilityEntry]
