"""
HTTP routes: slot queries, booking, and the thin collaborator endpoints.
"""

from typing import List, Optional

import pendulum
from fastapi import APIRouter, Depends, Header, Query, Request

from ..container import Container
from ..domain.exceptions import Forbidden, InvalidInput, Unauthorized
from ..domain.models import Principal
from .schemas import (
    AppointmentPayload,
    AvailabilityBody,
    AvailabilityEntry,
    BookingBody,
    ParticipantPayload,
    SlotPayload,
    SlotsResponse,
)

router = APIRouter()


def get_container(request: Request) -> Container:
    return request.app.state.container


def current_principal(
    authorization: Optional[str] = Header(None),
    container: Container = Depends(get_container),
) -> Principal:
    """Resolve the ``Authorization: Bearer <token>`` header to a principal."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("Unauthorized")
    principal = container.users.find_by_token(authorization[7:].strip())
    if principal is None:
        raise Unauthorized("Unauthorized")
    return principal


def current_seller(principal: Principal = Depends(current_principal)) -> Principal:
    if not principal.is_seller:
        raise Forbidden("Access denied - sellers only")
    return principal


@router.get("/availability/{seller_id}", response_model=SlotsResponse)
async def seller_availability(
    seller_id: str,
    day: Optional[str] = Query(None, alias="date"),
    principal: Principal = Depends(current_principal),
    container: Container = Depends(get_container),
):
    """Return the bookable slots of a seller on one date."""
    if not day:
        raise InvalidInput("Date parameter required")
    try:
        target = pendulum.from_format(day, "YYYY-MM-DD").date()
    except ValueError as exc:
        raise InvalidInput("Date must use the YYYY-MM-DD format") from exc

    slots = await container.availability.find_slots(seller_id=seller_id, day=target)
    return SlotsResponse(slots=[SlotPayload.from_slot(slot) for slot in slots])


@router.post("/appointments", response_model=AppointmentPayload)
async def book_appointment(
    body: BookingBody,
    principal: Principal = Depends(current_principal),
    container: Container = Depends(get_container),
):
    """Book a slot with a seller and mirror it onto both calendars."""
    view = await container.booking.book(principal.id, body.to_request())
    return AppointmentPayload.from_view(view)


@router.get("/appointments", response_model=List[AppointmentPayload])
async def list_appointments(
    principal: Principal = Depends(current_principal),
    container: Container = Depends(get_container),
):
    """Return the caller's appointments, newest first."""
    return [AppointmentPayload.from_view(view) for view in container.listing.list_for(principal)]


@router.get("/sellers", response_model=List[ParticipantPayload])
async def list_sellers(
    principal: Principal = Depends(current_principal),
    container: Container = Depends(get_container),
):
    """Return sellers that have connected a calendar."""
    return [ParticipantPayload.from_principal(seller) for seller in container.users.list_sellers()]


@router.get("/availability", response_model=List[AvailabilityEntry])
async def own_availability(
    seller: Principal = Depends(current_seller),
    container: Container = Depends(get_container),
):
    """Return the caller's weekly availability template."""
    return [AvailabilityEntry.from_rule(rule) for rule in container.templates.rules_for(seller.id)]


@router.put("/availability", response_model=List[AvailabilityEntry])
async def replace_availability(
    body: AvailabilityBody,
    seller: Principal = Depends(current_seller),
    container: Container = Depends(get_container),
):
    """Replace the caller's weekly availability template."""
    rules = [entry.to_rule(seller.id) for entry in body.availability if entry.active]
    stored = container.templates.replace(seller.id, rules)
    return [AvailabilityEntry.from_rule(rule) for rule in stored]


@router.get("/health")
async def health_check(container: Container = Depends(get_container)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "users": len(container.config.users),
        "busy_read_policy": container.config.busy_read_policy.value,
    }
