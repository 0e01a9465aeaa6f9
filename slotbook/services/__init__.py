"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .appointments import AppointmentListing
from .availability import AvailabilityService
from .booking import BookingOrchestrator, BookingRequest, SyncOutcome
from .ports import (
    AppointmentRepositoryProtocol,
    AvailabilityStoreProtocol,
    CalendarGatewayProtocol,
    UserDirectoryProtocol,
)

__all__ = [
    "AppointmentListing",
    "AvailabilityService",
    "BookingOrchestrator",
    "BookingRequest",
    "SyncOutcome",
    "AppointmentRepositoryProtocol",
    "AvailabilityStoreProtocol",
    "CalendarGatewayProtocol",
    "UserDirectoryProtocol",
]
