"""
Mock calendar gateway for running without any provider account.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import CalendarUnavailable, CalendarWriteError
from ..domain.models import BusyInterval, CreatedEvent, EventSpec, TimeRange

logger = logging.getLogger(__name__)


class MockCalendarGateway:
    """
    Gateway that simulates external calendars.

    Busy events are loaded from a JSON list of
    ``{"calendarId": ..., "start": ..., "end": ...}`` entries where
    ``calendarId`` is the principal id. Created events are kept in memory.
    Reads or writes can be made to fail per principal to exercise the
    degraded paths.
    """

    def __init__(
        self,
        data_file: Optional[Path] = None,
        busy: Optional[Dict[str, List[BusyInterval]]] = None,
        fail_reads_for: Iterable[str] = (),
        fail_writes_for: Iterable[str] = (),
        meeting_link_base: str = "https://meet.example.com",
    ):
        self.data_file = data_file
        self.busy: Dict[str, List[BusyInterval]] = {k: list(v) for k, v in (busy or {}).items()}
        self.fail_reads_for = set(fail_reads_for)
        self.fail_writes_for = set(fail_writes_for)
        self.meeting_link_base = meeting_link_base
        self.created: List[Tuple[str, EventSpec, CreatedEvent]] = []
        self.calls: List[Tuple[str, str]] = []
        if data_file is not None:
            self._load_calendar_data(data_file)

    def _load_calendar_data(self, data_file: Path) -> None:
        """Load mock calendar data from JSON file."""
        if not data_file.exists():
            logger.warning("Mock calendar data %s not found, starting empty", data_file)
            return

        with open(data_file, "r", encoding="utf-8") as f:
            events: List[Dict[str, Any]] = json.load(f)

        for event in events:
            try:
                start = pendulum.parse(event["start"]).in_timezone("UTC")
                end = pendulum.parse(event["end"]).in_timezone("UTC")
                self.busy.setdefault(event["calendarId"], []).append(TimeRange(start=start, end=end))
            except (KeyError, ValueError) as exc:
                # Skip invalid events
                logger.warning("Skipping invalid mock event %s: %s", event, exc)
                continue

    async def busy_intervals(
        self,
        principal_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        self.calls.append(("busy", principal_id))
        if principal_id in self.fail_reads_for:
            raise CalendarUnavailable(f"Mock calendar for {principal_id} is unavailable")

        window_start = range_start.in_timezone("UTC")
        window_end = range_end.in_timezone("UTC")
        return [
            busy for busy in self.busy.get(principal_id, [])
            if busy.start < window_end and busy.end > window_start
        ]

    async def create_event(self, principal_id: str, spec: EventSpec) -> CreatedEvent:
        self.calls.append(("create", principal_id))
        if principal_id in self.fail_writes_for:
            raise CalendarWriteError(f"Mock calendar for {principal_id} rejected the event")

        event_id = f"mock-{uuid.uuid4().hex[:12]}"
        created = CreatedEvent(
            external_event_id=event_id,
            meeting_link=f"{self.meeting_link_base}/{event_id}",
            html_link=f"{self.meeting_link_base}/events/{event_id}",
        )
        self.created.append((principal_id, spec, created))
        return created
