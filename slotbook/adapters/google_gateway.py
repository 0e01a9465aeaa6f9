"""
Google Calendar API gateway.
"""

import logging
import uuid
from typing import Any, Dict, List

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import AuthenticationError
from ..domain.models import BusyInterval, CreatedEvent, Credential, EventSpec, TimeRange
from .calendar_gateway import CalendarGateway, CredentialSource

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleCalendarGateway(CalendarGateway):
    """
    Google Calendar v3 implementation.

    Busy intervals come from the ``/freeBusy`` endpoint on the primary
    calendar. Events are inserted with a Google Meet conference request so
    the created event carries a ``hangoutLink``.
    """

    provider = "google"
    API_ENDPOINT = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        credentials: CredentialSource,
        client_id: str,
        client_secret: str,
        timeout_seconds: float = 10.0,
    ):
        super().__init__(credentials, timeout_seconds=timeout_seconds)
        self.client_id = client_id
        self.client_secret = client_secret

    def refresh(self, credential: Credential) -> None:
        try:
            response = requests.post(
                GOOGLE_OAUTH_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": credential.refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise AuthenticationError(f"Google OAuth token refresh failed: {exc}") from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise AuthenticationError("Google OAuth token response is missing an access_token")

        credential.access_token = access_token
        if payload.get("refresh_token"):
            credential.refresh_token = payload["refresh_token"]
        expires_in = int(payload.get("expires_in") or 3600)
        credential.expires_at = pendulum.now("UTC").add(seconds=expires_in)

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def fetch_busy(
        self,
        access_token: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        payload = {
            "timeMin": range_start.in_timezone("UTC").to_iso8601_string(),
            "timeMax": range_end.in_timezone("UTC").to_iso8601_string(),
            "items": [{"id": "primary"}],
        }
        response = requests.post(
            f"{self.API_ENDPOINT}/freeBusy",
            headers=self._headers(access_token),
            json=payload,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return self._parse_free_busy_response(response.json())

    def _parse_free_busy_response(self, response_data: Dict[str, Any]) -> List[BusyInterval]:
        """
        Parse the freeBusy response into busy intervals.

        Response format:
        {
            "calendars": {
                "primary": {
                    "busy": [{"start": "...", "end": "..."}]
                }
            }
        }
        """
        calendar = response_data.get("calendars", {}).get("primary", {})
        if calendar.get("errors"):
            raise ValueError(f"freeBusy returned errors: {calendar['errors']}")

        busy_ranges: List[BusyInterval] = []
        for window in calendar.get("busy", []):
            start_raw = window.get("start")
            end_raw = window.get("end")
            if not start_raw or not end_raw:
                continue
            try:
                start = pendulum.parse(start_raw).in_timezone("UTC")
                end = pendulum.parse(end_raw).in_timezone("UTC")
                busy_ranges.append(TimeRange(start=start, end=end))
            except ValueError as e:
                logger.warning("Could not parse busy window %s: %s", window, e)
                continue

        return busy_ranges

    def insert_event(self, access_token: str, spec: EventSpec) -> CreatedEvent:
        body: Dict[str, Any] = {
            "summary": spec.title,
            "description": spec.description or "",
            "start": {
                "dateTime": spec.start.in_timezone("UTC").to_iso8601_string(),
                "timeZone": "UTC",
            },
            "end": {
                "dateTime": spec.end.in_timezone("UTC").to_iso8601_string(),
                "timeZone": "UTC",
            },
            "attendees": [
                {"email": a.email, "displayName": a.display_name} if a.display_name else {"email": a.email}
                for a in spec.attendees
            ],
            "location": "Google Meet",
        }
        body["conferenceData"] = {
            "createRequest": {
                "requestId": spec.request_id or uuid.uuid4().hex,
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        }

        response = requests.post(
            f"{self.API_ENDPOINT}/calendars/primary/events",
            headers=self._headers(access_token),
            params={"conferenceDataVersion": 1, "sendUpdates": "all"},
            json=body,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()

        return CreatedEvent(
            external_event_id=data["id"],
            meeting_link=data.get("hangoutLink"),
            html_link=data.get("htmlLink"),
        )
