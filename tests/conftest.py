"""
Shared fixtures for the booking engine tests.
"""

import pendulum
import pytest

from slotbook.adapters.mock_gateway import MockCalendarGateway
from slotbook.adapters.storage import (
    InMemoryAvailabilityStore,
    InMemoryUserDirectory,
    JsonAppointmentRepository,
)
from slotbook.domain.models import AvailabilityRule, Credential, Principal, Role
from slotbook.domain.slot_generator import SlotGenerator
from slotbook.services.availability import AvailabilityService
from slotbook.services.booking import BookingOrchestrator, BookingRequest

MONDAY = pendulum.date(2024, 11, 25)


def at(clock: str, day=MONDAY, tz: str = "UTC"):
    """Build an instant on ``day`` from an ``HH:MM`` string."""
    hour, minute = (int(part) for part in clock.split(":"))
    return pendulum.datetime(day.year, day.month, day.day, hour, minute, tz=tz)


@pytest.fixture
def seller():
    return Principal(id="alice", role=Role.SELLER, email="alice@example.com", name="Alice", calendar_connected=True)


@pytest.fixture
def buyer():
    return Principal(id="bob", role=Role.BUYER, email="bob@example.com", name="Bob", calendar_connected=True)


@pytest.fixture
def other_buyer():
    return Principal(id="carol", role=Role.BUYER, email="carol@example.com", name="Carol", calendar_connected=True)


@pytest.fixture
def users(seller, buyer, other_buyer):
    return InMemoryUserDirectory(
        principals=[seller, buyer, other_buyer],
        tokens={"alice-token": "alice", "bob-token": "bob", "carol-token": "carol"},
        credentials={
            "alice": Credential(provider="mock", access_token="a"),
            "bob": Credential(provider="mock", access_token="b"),
        },
    )


@pytest.fixture
def monday_rule():
    return AvailabilityRule(seller_id="alice", day_of_week=1, start_time="09:00", end_time="17:00")


@pytest.fixture
def templates(monday_rule):
    return InMemoryAvailabilityStore([monday_rule])


@pytest.fixture
def calendar():
    return MockCalendarGateway()


@pytest.fixture
def repository():
    return JsonAppointmentRepository()


@pytest.fixture
def availability_service(users, templates, calendar):
    return AvailabilityService(
        users=users,
        templates=templates,
        calendar=calendar,
        slot_generator=SlotGenerator(slot_duration_minutes=60),
    )


@pytest.fixture
def orchestrator(users, repository, calendar):
    return BookingOrchestrator(users=users, repository=repository, calendar=calendar)


@pytest.fixture
def booking_request():
    return BookingRequest(
        seller_id="alice",
        start=at("10:00"),
        end=at("11:00"),
        title="Intro call",
    )
