"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import (
    Appointment,
    AppointmentQuery,
    AppointmentStatus,
    AppointmentView,
    AvailabilityRule,
    BusyInterval,
    CreatedEvent,
    Credential,
    EventAttendee,
    EventSpec,
    Principal,
    Role,
    Slot,
    TimeRange,
)
from .slot_generator import SlotGenerator

__all__ = [
    "Appointment",
    "AppointmentQuery",
    "AppointmentStatus",
    "AppointmentView",
    "AvailabilityRule",
    "BusyInterval",
    "CreatedEvent",
    "Credential",
    "EventAttendee",
    "EventSpec",
    "Principal",
    "Role",
    "Slot",
    "TimeRange",
    "SlotGenerator",
]
