"""
Application service answering "which slots can I book with this seller?".

The service coordinates the availability template, the seller's external
calendar and the domain-level ``SlotGenerator``. Calendar read failures are
absorbed according to the configured busy-read policy.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

import pendulum
from pendulum import DateTime

from ..config import BusyReadPolicy
from ..domain.exceptions import CalendarUnavailable, NotFound
from ..domain.models import AvailabilityRule, BusyInterval, Principal, Slot, day_of_week
from ..domain.slot_generator import SlotGenerator
from .ports import AvailabilityStoreProtocol, CalendarGatewayProtocol, UserDirectoryProtocol

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Orchestrates rule lookup, busy-time retrieval and slot generation.
    """

    def __init__(
        self,
        users: UserDirectoryProtocol,
        templates: AvailabilityStoreProtocol,
        calendar: CalendarGatewayProtocol,
        slot_generator: SlotGenerator,
        busy_read_policy: BusyReadPolicy = BusyReadPolicy.FAIL_OPEN,
    ) -> None:
        self._users = users
        self._templates = templates
        self._calendar = calendar
        self._slot_generator = slot_generator
        self.busy_read_policy = busy_read_policy

    def get_seller(self, seller_id: str) -> Principal:
        """
        Resolve a seller.

        Raises:
            NotFound: If the user does not exist or is not a seller
        """
        seller = self._users.get(seller_id)
        if seller is None or not seller.is_seller:
            raise NotFound("Seller not found")
        return seller

    async def find_slots(
        self,
        *,
        seller_id: str,
        day: date,
        now: Optional[DateTime] = None,
    ) -> List[Slot]:
        """
        Compute the bookable slots of ``seller_id`` on ``day``.

        Raises:
            NotFound: If the seller does not exist or is not a seller
        """
        seller = self.get_seller(seller_id)
        now = now or pendulum.now("UTC")

        rule = self._templates.rule_for(seller.id, day_of_week(day))
        if rule is None:
            return []

        busy = await self.fetch_busy_intervals(seller=seller, rule=rule, day=day)
        if busy is None:
            return []

        return self._slot_generator.generate(rule, day, now, busy)

    async def fetch_busy_intervals(
        self,
        *,
        seller: Principal,
        rule: AvailabilityRule,
        day: date,
    ) -> Optional[List[BusyInterval]]:
        """
        Read the seller's busy intervals for the rule window on ``day``.

        Returns None only when the read failed under the fail-closed policy.
        A seller without a connected calendar is treated as fully free.
        """
        if not seller.calendar_connected:
            return []

        window = rule.window_on(day, self._slot_generator.timezone)
        try:
            return await self._calendar.busy_intervals(seller.id, window.start, window.end)
        except CalendarUnavailable as exc:
            if self.busy_read_policy == BusyReadPolicy.FAIL_CLOSED:
                logger.warning("Busy read for seller %s failed, offering no slots: %s", seller.id, exc)
                return None
            logger.warning("Busy read for seller %s failed, assuming free: %s", seller.id, exc)
            return []
