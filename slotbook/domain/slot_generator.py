"""
Core business logic for turning a weekly rule into bookable slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from datetime import date
from typing import Iterable, List

import pendulum
from pendulum import DateTime, Duration

from .models import AvailabilityRule, BusyInterval, Slot, TimeRange


class SlotGenerator:
    """
    Generates fixed-length slots for one date from an availability rule.

    Algorithm:
    1. Anchor the rule's clock strings on the date (in ``timezone``)
    2. Walk forward from the rule start in ``slot_duration`` steps
    3. Drop candidates that start at or before ``now``
    4. Drop candidates overlapping any busy interval (half-open test)
    5. Drop the trailing remainder that cannot hold a full slot

    Identical inputs always yield an identical, chronologically ordered list.
    """

    def __init__(self, slot_duration_minutes: int = 60, timezone: str = "UTC"):
        if slot_duration_minutes <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        self.slot_duration: Duration = pendulum.duration(minutes=slot_duration_minutes)
        self.timezone = timezone

    def generate(
        self,
        rule: AvailabilityRule,
        day: date,
        now: DateTime,
        busy: Iterable[BusyInterval] = (),
    ) -> List[Slot]:
        """
        Compute the bookable slots for ``day``.

        Args:
            rule: The seller's rule for the weekday of ``day``
            day: Target calendar date
            now: Cutoff instant; only slots starting strictly after it are kept
            busy: Busy intervals of the seller (empty when unknown)

        Returns:
            Ordered list of Slot objects
        """
        if not rule.applies_to(day):
            return []

        window = rule.window_on(day, self.timezone)
        busy_ranges = sorted(busy, key=lambda r: (r.start, r.end))

        slots: List[Slot] = []
        current = window.start

        while current + self.slot_duration <= window.end:
            candidate = Slot(start=current, end=current + self.slot_duration)

            if candidate.start > now and not self._is_blocked(candidate, busy_ranges):
                slots.append(candidate)

            current = current + self.slot_duration

        return slots

    @staticmethod
    def _is_blocked(candidate: TimeRange, busy_ranges: List[BusyInterval]) -> bool:
        """Return True if any busy interval intersects the candidate."""
        for busy in busy_ranges:
            if busy.start >= candidate.end:
                # Sorted by start, nothing later can intersect.
                break
            if candidate.overlaps(busy):
                return True
        return False
