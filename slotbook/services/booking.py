"""
Booking transaction: persist an appointment, then mirror it onto the seller's
and the buyer's external calendars on a best-effort basis.

The steps run strictly in order::

    validate -> persist (scheduled) -> attempt external sync -> finalize

Only ``persist`` decides whether a booking exists. Calendar failures are
logged and absorbed; the appointment simply keeps no external ids.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Set, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import (
    CalendarWriteError,
    InvalidInput,
    NotFound,
    PersistenceError,
    SlotbookError,
    SlotUnavailable,
    Unauthorized,
)
from ..domain.models import (
    Appointment,
    AppointmentQuery,
    AppointmentStatus,
    AppointmentView,
    CreatedEvent,
    EventAttendee,
    EventSpec,
    Principal,
    TimeRange,
)
from .ports import AppointmentRepositoryProtocol, CalendarGatewayProtocol, UserDirectoryProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRequest:
    seller_id: str
    start: Optional[DateTime]
    end: Optional[DateTime]
    title: str
    description: Optional[str] = None


@dataclass
class SyncOutcome:
    """Result of the dual calendar write."""
    seller_event: Optional[CreatedEvent] = None
    buyer_event: Optional[CreatedEvent] = None

    def changes(self) -> Dict[str, str]:
        """
        Fields to attach to the appointment.

        The event id always comes from the seller's event. The meeting link
        is the seller event's link, or the buyer event's when the seller has
        none.
        """
        changes: Dict[str, str] = {}
        if self.seller_event is not None:
            changes["external_event_id"] = self.seller_event.external_event_id
        meeting_link = self._link(self.seller_event) or self._link(self.buyer_event)
        if meeting_link:
            changes["meeting_link"] = meeting_link
        return changes

    @staticmethod
    def _link(event: Optional[CreatedEvent]) -> Optional[str]:
        return event.meeting_link if event is not None else None


class BookingOrchestrator:
    """
    Runs the booking transaction.

    By default there is no reservation step between the slot query and
    ``persist``: two concurrent requests for the same slot both succeed and
    produce two appointments. With ``prevent_double_booking`` a per-seller
    lock is held across the overlap check and ``persist``, and an overlapping
    request fails with ``SlotUnavailable``.
    """

    def __init__(
        self,
        users: UserDirectoryProtocol,
        repository: AppointmentRepositoryProtocol,
        calendar: CalendarGatewayProtocol,
        prevent_double_booking: bool = False,
    ) -> None:
        self._users = users
        self._repository = repository
        self._calendar = calendar
        self.prevent_double_booking = prevent_double_booking
        self._seller_locks: Dict[str, asyncio.Lock] = {}
        self._sync_tasks: Set[asyncio.Task] = set()

    async def book(self, buyer_id: Optional[str], request: BookingRequest) -> AppointmentView:
        """
        Book ``request`` on behalf of ``buyer_id``.

        Raises:
            Unauthorized: If there is no authenticated caller
            InvalidInput: If required fields are missing or the range is empty
            NotFound: If the seller or the buyer does not exist
            SlotUnavailable: If the double-booking guard rejects the range
            PersistenceError: If the appointment cannot be stored
        """
        buyer, seller = self.validate(buyer_id, request)

        async with self._reservation(seller.id):
            if self.prevent_double_booking:
                self._ensure_slot_free(seller.id, request)
            appointment = self.persist(buyer, seller, request)

        # The appointment exists now; a caller cancellation must not stop
        # the calendar sync from being attempted and recorded.
        sync = asyncio.ensure_future(self._sync_and_finalize(appointment, buyer, seller))
        self._sync_tasks.add(sync)
        sync.add_done_callback(self._sync_tasks.discard)
        return await asyncio.shield(sync)

    def validate(self, buyer_id: Optional[str], request: BookingRequest) -> Tuple[Principal, Principal]:
        if not buyer_id:
            raise Unauthorized("Unauthorized")

        if not request.seller_id or request.start is None or request.end is None:
            raise InvalidInput("Missing required fields")
        if not request.title or not request.title.strip():
            raise InvalidInput("Missing required fields")
        if request.start >= request.end:
            raise InvalidInput("startTime must be before endTime")

        seller = self._users.get(request.seller_id)
        if seller is None or not seller.is_seller:
            raise NotFound("Seller not found")

        buyer = self._users.get(buyer_id)
        if buyer is None:
            raise NotFound("Buyer not found")

        return buyer, seller

    def persist(self, buyer: Principal, seller: Principal, request: BookingRequest) -> Appointment:
        appointment = Appointment(
            id=uuid.uuid4().hex,
            buyer_id=buyer.id,
            seller_id=seller.id,
            title=request.title.strip(),
            description=request.description,
            start=pendulum.instance(request.start).in_timezone("UTC"),
            end=pendulum.instance(request.end).in_timezone("UTC"),
            status=AppointmentStatus.SCHEDULED,
        )
        try:
            stored = self._repository.create(appointment)
        except PersistenceError:
            logger.error("Could not persist appointment for seller %s", seller.id, exc_info=True)
            raise
        except (OSError, SlotbookError) as exc:
            logger.error("Could not persist appointment for seller %s", seller.id, exc_info=True)
            raise PersistenceError(f"Could not persist appointment: {exc}") from exc

        logger.info(
            "Booked appointment %s: buyer=%s seller=%s %s",
            stored.id, buyer.id, seller.id, stored.time_range,
        )
        return stored

    def build_event_spec(self, appointment: Appointment, buyer: Principal, seller: Principal) -> EventSpec:
        """One shared event description for both calendars."""
        return EventSpec(
            title=appointment.title,
            description=appointment.description or f"Meeting between {buyer.name} and {seller.name}",
            start=appointment.start.in_timezone("UTC"),
            end=appointment.end.in_timezone("UTC"),
            attendees=(
                EventAttendee(email=buyer.email, display_name=buyer.name),
                EventAttendee(email=seller.email, display_name=seller.name),
            ),
            request_id=appointment.id,
        )

    async def attempt_external_sync(
        self,
        appointment: Appointment,
        buyer: Principal,
        seller: Principal,
    ) -> SyncOutcome:
        """
        Create the event on the seller's calendar, then on the buyer's.

        Each write is independent and never raises.
        """
        spec = self.build_event_spec(appointment, buyer, seller)
        outcome = SyncOutcome()
        outcome.seller_event = await self._create_event(seller, spec, appointment.id, "seller")
        outcome.buyer_event = await self._create_event(buyer, spec, appointment.id, "buyer")
        return outcome

    async def _create_event(
        self,
        principal: Principal,
        spec: EventSpec,
        appointment_id: str,
        side: str,
    ) -> Optional[CreatedEvent]:
        if not principal.calendar_connected:
            logger.debug("Skipping %s calendar for %s: not connected", side, appointment_id)
            return None
        try:
            return await self._calendar.create_event(principal.id, spec.for_principal(principal.id))
        except CalendarWriteError as exc:
            logger.warning(
                "Could not create %s calendar event for appointment %s: %s",
                side, appointment_id, exc,
            )
            return None

    def finalize(self, appointment: Appointment, outcome: SyncOutcome) -> Appointment:
        changes = outcome.changes()
        if not changes:
            return appointment
        try:
            return self._repository.update(appointment.id, changes)
        except (OSError, SlotbookError):
            logger.error(
                "Could not attach calendar ids to appointment %s", appointment.id, exc_info=True
            )
            return appointment

    async def _sync_and_finalize(
        self,
        appointment: Appointment,
        buyer: Principal,
        seller: Principal,
    ) -> AppointmentView:
        outcome = await self.attempt_external_sync(appointment, buyer, seller)
        appointment = self.finalize(appointment, outcome)
        return AppointmentView(appointment=appointment, buyer=buyer, seller=seller)

    def _ensure_slot_free(self, seller_id: str, request: BookingRequest) -> None:
        query = AppointmentQuery(
            seller_id=seller_id,
            statuses=(AppointmentStatus.SCHEDULED,),
            overlapping=TimeRange(start=request.start, end=request.end),
        )
        if self._repository.find(query):
            raise SlotUnavailable("The requested time is no longer available")

    @asynccontextmanager
    async def _reservation(self, seller_id: str) -> AsyncIterator[None]:
        if not self.prevent_double_booking:
            yield
            return
        lock = self._seller_locks.setdefault(seller_id, asyncio.Lock())
        async with lock:
            yield
