"""
Wiring of adapters and services from an ``AppConfig``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .adapters.calendar_gateway import ProviderCalendarGateway
from .adapters.credential_store import CredentialStore
from .adapters.google_gateway import GoogleCalendarGateway
from .adapters.graph_gateway import GraphCalendarGateway
from .adapters.mock_gateway import MockCalendarGateway
from .adapters.storage import (
    InMemoryAvailabilityStore,
    InMemoryUserDirectory,
    JsonAppointmentRepository,
)
from .config import AppConfig
from .domain.slot_generator import SlotGenerator
from .services.appointments import AppointmentListing
from .services.availability import AvailabilityService
from .services.booking import BookingOrchestrator
from .services.ports import CalendarGatewayProtocol


@dataclass
class Container:
    config: AppConfig
    users: InMemoryUserDirectory
    templates: InMemoryAvailabilityStore
    appointments: JsonAppointmentRepository
    calendar: CalendarGatewayProtocol
    credential_store: Optional[CredentialStore]
    availability: AvailabilityService
    booking: BookingOrchestrator
    listing: AppointmentListing


def mock_calendar_file(config: AppConfig) -> Optional[Path]:
    return config.data_dir / "mock_calendar.json" if config.data_dir else None


def build_container(
    config: AppConfig,
    *,
    mock: bool = False,
    calendar: Optional[CalendarGatewayProtocol] = None,
    credential_store: Optional[CredentialStore] = None,
) -> Container:
    """
    Build the object graph.

    Args:
        config: Loaded application configuration
        mock: Route every calendar call to the mock gateway
        calendar: Explicit gateway, overrides ``mock``
        credential_store: Explicit credential store (defaults to keyring/file)
    """
    if credential_store is None and not mock:
        credential_store = CredentialStore(cache_file=config.credentials_file())

    users = InMemoryUserDirectory.from_config(config, credential_store=credential_store)
    templates = InMemoryAvailabilityStore.from_config(config)
    appointments = JsonAppointmentRepository(config.appointments_file())

    if calendar is None:
        mock_gateway = MockCalendarGateway(data_file=mock_calendar_file(config))
        if mock:
            calendar = mock_gateway
        else:
            calendar = ProviderCalendarGateway(
                users,
                {
                    "google": GoogleCalendarGateway(
                        users,
                        client_id=config.google.client_id,
                        client_secret=config.google.client_secret,
                        timeout_seconds=config.gateway_timeout_seconds,
                    ),
                    "graph": GraphCalendarGateway(
                        users,
                        client_id=config.graph.client_id,
                        client_secret=config.graph.client_secret,
                        authority_url=config.graph.get_authority_url(),
                        timeout_seconds=config.gateway_timeout_seconds,
                    ),
                    "mock": mock_gateway,
                },
            )

    slot_generator = SlotGenerator(
        slot_duration_minutes=config.slot_duration_minutes,
        timezone=config.timezone,
    )

    return Container(
        config=config,
        users=users,
        templates=templates,
        appointments=appointments,
        calendar=calendar,
        credential_store=credential_store,
        availability=AvailabilityService(
            users=users,
            templates=templates,
            calendar=calendar,
            slot_generator=slot_generator,
            busy_read_policy=config.busy_read_policy,
        ),
        booking=BookingOrchestrator(
            users=users,
            repository=appointments,
            calendar=calendar,
            prevent_double_booking=config.prevent_double_booking,
        ),
        listing=AppointmentListing(users=users, repository=appointments),
    )
