"""
Tests for the booking transaction.
"""

import asyncio
from dataclasses import replace

import pytest

from slotbook.adapters.mock_gateway import MockCalendarGateway
from slotbook.domain.exceptions import (
    InvalidInput,
    NotFound,
    PersistenceError,
    SlotUnavailable,
    Unauthorized,
)
from slotbook.domain.models import AppointmentQuery, AppointmentStatus
from slotbook.services.booking import BookingOrchestrator

from conftest import at


def _book(orchestrator, request, buyer_id="bob"):
    return asyncio.run(orchestrator.book(buyer_id, request))


class FailingRepository:
    """Repository whose writes always fail."""

    def __init__(self, fail_create=True):
        self.fail_create = fail_create
        self.created = []

    def create(self, appointment):
        if self.fail_create:
            raise OSError("disk full")
        self.created.append(appointment)
        return appointment

    def update(self, appointment_id, changes):
        raise OSError("disk full")

    def get(self, appointment_id):
        return None

    def find(self, query):
        return []


class LinklessSellerCalendar(MockCalendarGateway):
    """Seller events are created without a conference link."""

    async def create_event(self, principal_id, spec):
        created = await super().create_event(principal_id, spec)
        if principal_id != "alice":
            return created
        linkless = replace(created, meeting_link=None)
        self.created[-1] = (principal_id, spec, linkless)
        return linkless


class SlowCalendar(MockCalendarGateway):
    """Every event write takes ``delay`` seconds."""

    def __init__(self, delay=0.05, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    async def create_event(self, principal_id, spec):
        await asyncio.sleep(self.delay)
        return await super().create_event(principal_id, spec)


class TestBookingHappyPath:
    def test_both_calendars_written_seller_first(self, orchestrator, calendar, booking_request):
        view = _book(orchestrator, booking_request)

        assert calendar.calls == [("create", "alice"), ("create", "bob")]
        seller_event = calendar.created[0][2]
        assert view.appointment.status == AppointmentStatus.SCHEDULED
        assert view.appointment.external_event_id == seller_event.external_event_id
        assert view.appointment.meeting_link == seller_event.meeting_link
        assert view.buyer.id == "bob"
        assert view.seller.id == "alice"

    def test_appointment_is_persisted_with_sync_result(self, orchestrator, repository, booking_request):
        view = _book(orchestrator, booking_request)

        stored = repository.get(view.appointment.id)
        assert stored is not None
        assert stored.meeting_link == view.appointment.meeting_link
        assert stored.start == at("10:00")
        assert stored.end == at("11:00")
        assert stored.updated_at is not None

    def test_event_spec_is_shared_between_calendars(self, orchestrator, calendar, booking_request):
        view = _book(orchestrator, booking_request)

        (_, seller_spec, _), (_, buyer_spec, _) = calendar.created
        assert seller_spec.title == buyer_spec.title == "Intro call"
        assert seller_spec.description == "Meeting between Bob and Alice"
        assert [a.email for a in seller_spec.attendees] == ["bob@example.com", "alice@example.com"]
        assert seller_spec.request_id == f"{view.appointment.id}-alice"
        assert buyer_spec.request_id == f"{view.appointment.id}-bob"

    def test_explicit_description_is_kept(self, orchestrator, calendar, booking_request):
        _book(orchestrator, replace(booking_request, description="Quarterly review"))

        assert calendar.created[0][1].description == "Quarterly review"


class TestBookingDegradedSync:
    """Calendar failures never fail the booking."""

    def test_buyer_write_fails(self, users, repository, booking_request):
        calendar = MockCalendarGateway(fail_writes_for={"bob"})
        orchestrator = BookingOrchestrator(users=users, repository=repository, calendar=calendar)

        view = _book(orchestrator, booking_request)

        assert view.appointment.status == AppointmentStatus.SCHEDULED
        assert view.appointment.meeting_link == calendar.created[0][2].meeting_link
        assert calendar.calls == [("create", "alice"), ("create", "bob")]

    def test_both_writes_fail(self, users, repository, booking_request):
        calendar = MockCalendarGateway(fail_writes_for={"alice", "bob"})
        orchestrator = BookingOrchestrator(users=users, repository=repository, calendar=calendar)

        view = _book(orchestrator, booking_request)

        assert view.appointment.status == AppointmentStatus.SCHEDULED
        assert view.appointment.external_event_id is None
        assert view.appointment.meeting_link is None
        assert repository.get(view.appointment.id) is not None

    def test_seller_write_fails_falls_back_to_buyer_link(self, users, repository, booking_request):
        calendar = MockCalendarGateway(fail_writes_for={"alice"})
        orchestrator = BookingOrchestrator(users=users, repository=repository, calendar=calendar)

        view = _book(orchestrator, booking_request)

        buyer_event = calendar.created[0][2]
        assert calendar.created[0][0] == "bob"
        assert view.appointment.meeting_link == buyer_event.meeting_link
        assert view.appointment.external_event_id is None
        assert repository.get(view.appointment.id).meeting_link == buyer_event.meeting_link

    def test_seller_event_without_link_uses_buyer_link(self, users, repository, booking_request):
        calendar = LinklessSellerCalendar()
        orchestrator = BookingOrchestrator(users=users, repository=repository, calendar=calendar)

        view = _book(orchestrator, booking_request)

        (_, _, seller_event), (_, _, buyer_event) = calendar.created
        assert seller_event.meeting_link is None
        assert view.appointment.external_event_id == seller_event.external_event_id
        assert view.appointment.meeting_link == buyer_event.meeting_link

    def test_unconnected_buyer_is_skipped(self, users, repository, calendar, booking_request):
        buyer = users.get("carol")
        users._principals["carol"] = replace(buyer, calendar_connected=False)
        orchestrator = BookingOrchestrator(users=users, repository=repository, calendar=calendar)

        view = _book(orchestrator, booking_request, buyer_id="carol")

        assert calendar.calls == [("create", "alice")]
        assert view.appointment.meeting_link is not None

    def test_finalize_failure_returns_persisted_appointment(self, users, calendar, booking_request):
        repository = FailingRepository(fail_create=False)
        orchestrator = BookingOrchestrator(users=users, repository=repository, calendar=calendar)

        view = _book(orchestrator, booking_request)

        assert view.appointment.id == repository.created[0].id
        assert view.appointment.meeting_link is None


class TestBookingValidation:
    def test_missing_caller(self, orchestrator, booking_request):
        with pytest.raises(Unauthorized):
            _book(orchestrator, booking_request, buyer_id=None)

    @pytest.mark.parametrize("changes", [
        {"seller_id": ""},
        {"start": None},
        {"end": None},
        {"title": ""},
        {"title": "   "},
    ])
    def test_missing_fields(self, orchestrator, calendar, booking_request, changes):
        with pytest.raises(InvalidInput, match="Missing required fields"):
            _book(orchestrator, replace(booking_request, **changes))
        assert calendar.calls == []

    def test_start_after_end(self, orchestrator, booking_request):
        with pytest.raises(InvalidInput):
            _book(orchestrator, replace(booking_request, start=at("12:00"), end=at("11:00")))

    def test_unknown_seller(self, orchestrator, booking_request):
        with pytest.raises(NotFound, match="Seller not found"):
            _book(orchestrator, replace(booking_request, seller_id="nobody"))

    def test_booking_a_buyer_is_rejected(self, orchestrator, booking_request):
        with pytest.raises(NotFound, match="Seller not found"):
            _book(orchestrator, replace(booking_request, seller_id="carol"))

    def test_unknown_buyer(self, orchestrator, booking_request):
        with pytest.raises(NotFound, match="Buyer not found"):
            _book(orchestrator, booking_request, buyer_id="mallory")

    def test_persistence_failure_skips_calendars(self, users, calendar, booking_request):
        orchestrator = BookingOrchestrator(users=users, repository=FailingRepository(), calendar=calendar)

        with pytest.raises(PersistenceError):
            _book(orchestrator, booking_request)
        assert calendar.calls == []


class TestConcurrentBooking:
    async def _book_twice(self, orchestrator, request):
        return await asyncio.gather(
            orchestrator.book("bob", request),
            orchestrator.book("carol", request),
            return_exceptions=True,
        )

    def test_same_slot_is_booked_twice_without_guard(self, orchestrator, repository, booking_request):
        results = asyncio.run(self._book_twice(orchestrator, booking_request))

        assert not any(isinstance(r, Exception) for r in results)
        assert len(repository.find(AppointmentQuery(seller_id="alice"))) == 2

    def test_guard_rejects_overlapping_booking(self, users, repository, calendar, booking_request):
        orchestrator = BookingOrchestrator(
            users=users, repository=repository, calendar=calendar, prevent_double_booking=True
        )

        results = asyncio.run(self._book_twice(orchestrator, booking_request))

        assert sum(isinstance(r, SlotUnavailable) for r in results) == 1
        assert len(repository.find(AppointmentQuery(seller_id="alice"))) == 1

    def test_guard_allows_adjacent_booking(self, users, repository, calendar, booking_request):
        orchestrator = BookingOrchestrator(
            users=users, repository=repository, calendar=calendar, prevent_double_booking=True
        )

        _book(orchestrator, booking_request)
        _book(orchestrator, replace(booking_request, start=at("11:00"), end=at("12:00")), buyer_id="carol")

        assert len(repository.find(AppointmentQuery(seller_id="alice"))) == 2


class TestBookingCancellation:
    """A booking that was persisted survives caller cancellation."""

    def test_cancel_during_sync_still_records_calendar_ids(self, users, repository, booking_request):
        calendar = SlowCalendar(delay=0.05)
        orchestrator = BookingOrchestrator(users=users, repository=repository, calendar=calendar)

        async def cancel_mid_sync():
            task = asyncio.create_task(orchestrator.book("bob", booking_request))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
            await asyncio.gather(*pending)

        asyncio.run(cancel_mid_sync())

        stored = repository.find(AppointmentQuery(seller_id="alice"))
        assert len(stored) == 1
        seller_event = calendar.created[0][2]
        assert calendar.created[0][0] == "alice"
        assert stored[0].external_event_id == seller_event.external_event_id
        assert stored[0].meeting_link == seller_event.meeting_link

    def test_cancel_while_waiting_for_guard_creates_nothing(self, users, repository, calendar, booking_request):
        orchestrator = BookingOrchestrator(
            users=users, repository=repository, calendar=calendar, prevent_double_booking=True
        )

        async def cancel_before_persist():
            lock = orchestrator._seller_locks.setdefault("alice", asyncio.Lock())
            async with lock:
                task = asyncio.create_task(orchestrator.book("bob", booking_request))
                await asyncio.sleep(0.01)
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task

        asyncio.run(cancel_before_persist())

        assert repository.find(AppointmentQuery(seller_id="alice")) == []
        assert calendar.calls == []
