"""
Read-side helpers for a caller's appointments.
"""

from __future__ import annotations

from typing import List

from ..domain.models import AppointmentQuery, AppointmentView, Principal
from .ports import AppointmentRepositoryProtocol, UserDirectoryProtocol


class AppointmentListing:
    """Lists appointments for the caller, populated with both participants."""

    def __init__(
        self,
        users: UserDirectoryProtocol,
        repository: AppointmentRepositoryProtocol,
    ) -> None:
        self._users = users
        self._repository = repository

    def list_for(self, principal: Principal) -> List[AppointmentView]:
        """
        Sellers see the appointments booked with them, everyone else sees
        the appointments they booked. Newest start first.
        """
        if principal.is_seller:
            query = AppointmentQuery(seller_id=principal.id)
        else:
            query = AppointmentQuery(buyer_id=principal.id)

        return [
            AppointmentView(
                appointment=appointment,
                buyer=self._users.get(appointment.buyer_id),
                seller=self._users.get(appointment.seller_id),
            )
            for appointment in self._repository.find(query)
        ]
