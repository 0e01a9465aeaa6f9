"""
Adapters layer - External calendars and collaborator storage.
"""

from .calendar_gateway import CalendarGateway, CredentialSource, ProviderCalendarGateway
from .credential_store import CredentialStore
from .google_gateway import GoogleCalendarGateway
from .graph_gateway import GraphCalendarGateway
from .mock_gateway import MockCalendarGateway
from .storage import InMemoryAvailabilityStore, InMemoryUserDirectory, JsonAppointmentRepository

__all__ = [
    "CalendarGateway",
    "CredentialSource",
    "ProviderCalendarGateway",
    "CredentialStore",
    "GoogleCalendarGateway",
    "GraphCalendarGateway",
    "MockCalendarGateway",
    "InMemoryAvailabilityStore",
    "InMemoryUserDirectory",
    "JsonAppointmentRepository",
]
