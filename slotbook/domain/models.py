"""
Domain models for availability rules, slots and appointments.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidTransition

CLOCK_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


def parse_clock(value: str) -> Tuple[int, int]:
    """
    Parse an ``HH:MM`` clock string into ``(hour, minute)``.

    Raises:
        ValueError: If the string is not a valid 24h clock time
    """
    match = CLOCK_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Invalid clock time '{value}', expected HH:MM")
    return int(match.group(1)), int(match.group(2))


def day_of_week(day: date) -> int:
    """Return the weekday index with 0=Sunday ... 6=Saturday."""
    return day.isoweekday() % 7


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """
        Check if this range overlaps with another.

        Ranges are half-open, so touching endpoints do not overlap.
        """
        return self.start < other.end and self.end > other.start

    def as_payload(self) -> Dict[str, str]:
        """Serialize to ISO 8601 UTC strings."""
        return {
            "start": self.start.in_timezone("UTC").to_iso8601_string(),
            "end": self.end.in_timezone("UTC").to_iso8601_string(),
        }

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


# Busy intervals are read from external calendars and never mutated.
BusyInterval = TimeRange


@dataclass(frozen=True)
class Slot(TimeRange):
    """A fixed-duration bookable window. Computed on demand, never stored."""


@dataclass(frozen=True)
class AvailabilityRule:
    """
    Weekly recurring window during which a seller can be booked.

    ``day_of_week`` uses 0=Sunday ... 6=Saturday. Start and end are local
    clock strings anchored in the configured timezone.
    """
    seller_id: str
    day_of_week: int
    start_time: str
    end_time: str
    active: bool = True

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be between 0 and 6, got {self.day_of_week}")
        if parse_clock(self.start_time) >= parse_clock(self.end_time):
            raise ValueError(
                f"start_time {self.start_time} must be before end_time {self.end_time}"
            )

    def applies_to(self, day: date) -> bool:
        """Check whether this rule describes the weekday of ``day``."""
        return self.active and day_of_week(day) == self.day_of_week

    def window_on(self, day: date, timezone: str = "UTC") -> TimeRange:
        """
        Anchor the rule's clock strings on a concrete date.

        Returns:
            TimeRange in UTC
        """
        start_hour, start_minute = parse_clock(self.start_time)
        end_hour, end_minute = parse_clock(self.end_time)

        start = pendulum.datetime(
            day.year, day.month, day.day, start_hour, start_minute, tz=timezone
        )
        end = pendulum.datetime(
            day.year, day.month, day.day, end_hour, end_minute, tz=timezone
        )

        return TimeRange(start=start.in_timezone("UTC"), end=end.in_timezone("UTC"))


class Role(str, Enum):
    SELLER = "seller"
    BUYER = "buyer"


@dataclass
class Credential:
    """
    OAuth credential lent to the calendar gateway.

    The gateway mutates it in place on refresh and hands it back through
    the identity collaborator's update hook.
    """
    provider: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[DateTime] = None

    def is_expired(self, now: Optional[DateTime] = None, skew_seconds: int = 60) -> bool:
        if not self.access_token:
            return True
        if self.expires_at is None:
            return False
        now = now or pendulum.now("UTC")
        return now.add(seconds=skew_seconds) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.to_iso8601_string() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        expires_at = data.get("expires_at")
        if isinstance(expires_at, str):
            expires_at = pendulum.parse(expires_at)
        return cls(
            provider=data["provider"],
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
        )


@dataclass
class Principal:
    """An authenticated participant as supplied by the identity collaborator."""
    id: str
    role: Role
    email: str
    name: str
    calendar_connected: bool = False

    @property
    def is_seller(self) -> bool:
        return self.role == Role.SELLER

    def summary(self) -> Dict[str, str]:
        """Display fields exposed on appointments."""
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class EventAttendee:
    email: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class EventSpec:
    """Provider-neutral description of an event to mirror onto a calendar."""
    title: str
    start: DateTime
    end: DateTime
    attendees: Tuple[EventAttendee, ...] = ()
    description: Optional[str] = None
    request_id: Optional[str] = None  # idempotency key for the provider

    def for_principal(self, principal_id: str) -> "EventSpec":
        """Return a copy whose request id is unique per target calendar."""
        if not self.request_id:
            return self
        return EventSpec(
            title=self.title,
            start=self.start,
            end=self.end,
            attendees=self.attendees,
            description=self.description,
            request_id=f"{self.request_id}-{principal_id}",
        )


@dataclass(frozen=True)
class CreatedEvent:
    external_event_id: str
    meeting_link: Optional[str] = None
    html_link: Optional[str] = None


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Forward-only status transitions.
ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED},
    AppointmentStatus.CANCELLED: set(),
    AppointmentStatus.COMPLETED: set(),
}


@dataclass
class Appointment:
    """A booked meeting between a buyer and a seller."""
    id: str
    buyer_id: str
    seller_id: str
    title: str
    start: DateTime
    end: DateTime
    description: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    external_event_id: Optional[str] = None
    meeting_link: Optional[str] = None
    created_at: DateTime = field(default_factory=lambda: pendulum.now("UTC"))
    updated_at: Optional[DateTime] = None

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def transition_to(self, status: AppointmentStatus) -> None:
        """
        Move the appointment to a new status.

        Raises:
            InvalidTransition: If the change is not a forward transition
        """
        status = AppointmentStatus(status)
        if status == self.status:
            return
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Cannot move appointment {self.id} from {self.status.value} to {status.value}"
            )
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with datetime serialization."""
        data = asdict(self)
        data["status"] = self.status.value
        for key in ("start", "end", "created_at", "updated_at"):
            value = getattr(self, key)
            data[key] = value.in_timezone("UTC").to_iso8601_string() if value else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Appointment":
        """Create an Appointment from a dictionary."""
        data = dict(data)
        for key in ("start", "end", "created_at", "updated_at"):
            if isinstance(data.get(key), str):
                data[key] = pendulum.parse(data[key])
        data["status"] = AppointmentStatus(data.get("status", AppointmentStatus.SCHEDULED))
        return cls(**data)


@dataclass
class AppointmentView:
    """An appointment with buyer and seller display fields populated."""
    appointment: Appointment
    buyer: Optional[Principal]
    seller: Optional[Principal]


@dataclass(frozen=True)
class AppointmentQuery:
    """Filter for appointment lookups. Unset fields do not filter."""
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    statuses: Optional[Tuple[AppointmentStatus, ...]] = None
    overlapping: Optional[TimeRange] = None

    def matches(self, appointment: Appointment) -> bool:
        if self.buyer_id is not None and appointment.buyer_id != self.buyer_id:
            return False
        if self.seller_id is not None and appointment.seller_id != self.seller_id:
            return False
        if self.statuses is not None and appointment.status not in self.statuses:
            return False
        if self.overlapping is not None and not appointment.time_range.overlaps(self.overlapping):
            return False
        return True


def sort_newest_first(appointments: List[Appointment]) -> List[Appointment]:
    return sorted(appointments, key=lambda a: (a.start, a.created_at), reverse=True)
