"""
Protocols describing the collaborators the services depend on.

Dependency inversion toward these protocols makes it easy to plug in the real
provider adapters or simple stubs in tests.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from pendulum import DateTime

from ..domain.models import (
    Appointment,
    AppointmentQuery,
    AvailabilityRule,
    BusyInterval,
    CreatedEvent,
    EventSpec,
    Principal,
)


class CalendarGatewayProtocol(Protocol):
    """Calendar behaviour needed by the services."""

    async def busy_intervals(
        self,
        principal_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        """Return busy intervals; raise CalendarUnavailable on failure."""

    async def create_event(self, principal_id: str, spec: EventSpec) -> CreatedEvent:
        """Create an event; raise CalendarWriteError on failure."""


class UserDirectoryProtocol(Protocol):
    def get(self, user_id: str) -> Optional[Principal]:
        """Return the principal or None."""

    def list_sellers(self) -> List[Principal]:
        """Return sellers with a connected calendar."""


class AvailabilityStoreProtocol(Protocol):
    def rule_for(self, seller_id: str, day_of_week: int) -> Optional[AvailabilityRule]:
        """Return the active rule for the seller and weekday."""


class AppointmentRepositoryProtocol(Protocol):
    def create(self, appointment: Appointment) -> Appointment:
        """Persist a new appointment; raise PersistenceError on failure."""

    def update(self, appointment_id: str, changes: Dict[str, Any]) -> Appointment:
        """Apply a partial update."""

    def find(self, query: AppointmentQuery) -> List[Appointment]:
        """Return matching appointments."""
