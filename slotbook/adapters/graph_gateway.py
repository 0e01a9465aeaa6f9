"""
Microsoft Graph calendar gateway.
"""

import logging
from typing import Any, Dict, List

import msal
import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import AuthenticationError
from ..domain.models import BusyInterval, CreatedEvent, Credential, EventSpec, TimeRange
from .calendar_gateway import CalendarGateway, CredentialSource

logger = logging.getLogger(__name__)


class GraphCalendarGateway(CalendarGateway):
    """
    Microsoft Graph implementation.

    Uses the /calendar/getSchedule endpoint to fetch free/busy information
    and /me/events to create Teams meetings. Expired credentials are renewed
    with MSAL's refresh-token grant.
    """

    provider = "graph"
    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    # Required scopes for calendar access
    SCOPES = ["Calendars.ReadWrite", "OnlineMeetings.ReadWrite"]

    # We consider these statuses as "busy"
    BUSY_STATUSES = ("busy", "tentative", "oof", "workingelsewhere")

    def __init__(
        self,
        credentials: CredentialSource,
        client_id: str,
        client_secret: str,
        authority_url: str,
        timeout_seconds: float = 10.0,
    ):
        super().__init__(credentials, timeout_seconds=timeout_seconds)
        self.client_id = client_id
        self.authority = authority_url
        self._client_secret = client_secret
        self._app: msal.ConfidentialClientApplication | None = None

    @property
    def app(self) -> msal.ConfidentialClientApplication:
        # Built lazily: MSAL contacts the authority on construction.
        if self._app is None:
            self._app = msal.ConfidentialClientApplication(
                client_id=self.client_id,
                client_credential=self._client_secret,
                authority=self.authority,
            )
        return self._app

    def refresh(self, credential: Credential) -> None:
        try:
            result = self.app.acquire_token_by_refresh_token(
                credential.refresh_token,
                scopes=self.SCOPES,
            )
        except Exception as exc:  # pragma: no cover - MSAL internal failure
            raise AuthenticationError(f"Failed to refresh Graph token: {exc}") from exc

        if "access_token" not in result:
            error = result.get("error_description", "Unknown error")
            raise AuthenticationError(f"Graph token refresh failed: {error}")

        credential.access_token = result["access_token"]
        if result.get("refresh_token"):
            credential.refresh_token = result["refresh_token"]
        credential.expires_at = pendulum.now("UTC").add(seconds=int(result.get("expires_in", 3600)))

    def _headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Prefer": 'outlook.timezone="UTC"',
        }

    def _me(self, access_token: str) -> str:
        response = requests.get(
            f"{self.GRAPH_API_ENDPOINT}/me",
            headers=self._headers(access_token),
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()
        return data.get("mail") or data["userPrincipalName"]

    def fetch_busy(
        self,
        access_token: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        email = self._me(access_token)

        payload = {
            "schedules": [email],
            "startTime": {
                "dateTime": range_start.in_timezone("UTC").format("YYYY-MM-DDTHH:mm:ss"),
                "timeZone": "UTC",
            },
            "endTime": {
                "dateTime": range_end.in_timezone("UTC").format("YYYY-MM-DDTHH:mm:ss"),
                "timeZone": "UTC",
            },
            "availabilityViewInterval": 15,
        }

        response = requests.post(
            f"{self.GRAPH_API_ENDPOINT}/me/calendar/getSchedule",
            headers=self._headers(access_token),
            json=payload,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()

        return self._parse_schedule_response(response.json())

    def _parse_schedule_response(self, response_data: Dict[str, Any]) -> List[BusyInterval]:
        """
        Parse the getSchedule API response.

        Response format:
        {
            "value": [
                {
                    "scheduleId": "user@example.com",
                    "scheduleItems": [
                        {
                            "status": "busy",
                            "start": {"dateTime": "...", "timeZone": "UTC"},
                            "end": {"dateTime": "...", "timeZone": "UTC"}
                        }
                    ]
                }
            ]
        }
        """
        busy_ranges: List[BusyInterval] = []

        for schedule in response_data.get("value", []):
            for item in schedule.get("scheduleItems", []):
                status = item.get("status", "").lower()
                if status not in self.BUSY_STATUSES:
                    continue

                try:
                    start = self._parse_datetime(item["start"])
                    end = self._parse_datetime(item["end"])
                    busy_ranges.append(TimeRange(start=start, end=end))
                except (KeyError, ValueError) as e:
                    logger.warning("Could not parse schedule item: %s", e)
                    continue

        return busy_ranges

    def _parse_datetime(self, value: Dict[str, str]) -> DateTime:
        """Parse a Graph dateTimeTimeZone object into a UTC DateTime."""
        dt = pendulum.parse(value["dateTime"], tz=value.get("timeZone") or "UTC")
        if isinstance(dt, DateTime):
            return dt.in_timezone("UTC")
        raise ValueError(f"Could not parse datetime: {value['dateTime']}")

    def insert_event(self, access_token: str, spec: EventSpec) -> CreatedEvent:
        body: Dict[str, Any] = {
            "subject": spec.title,
            "body": {"contentType": "text", "content": spec.description or ""},
            "start": {
                "dateTime": spec.start.in_timezone("UTC").format("YYYY-MM-DDTHH:mm:ss"),
                "timeZone": "UTC",
            },
            "end": {
                "dateTime": spec.end.in_timezone("UTC").format("YYYY-MM-DDTHH:mm:ss"),
                "timeZone": "UTC",
            },
            "attendees": [
                {
                    "emailAddress": {"address": a.email, "name": a.display_name or a.email},
                    "type": "required",
                }
                for a in spec.attendees
            ],
            "isOnlineMeeting": True,
            "onlineMeetingProvider": "teamsForBusiness",
        }
        if spec.request_id:
            body["transactionId"] = spec.request_id

        response = requests.post(
            f"{self.GRAPH_API_ENDPOINT}/me/events",
            headers=self._headers(access_token),
            json=body,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()

        online_meeting = data.get("onlineMeeting") or {}
        return CreatedEvent(
            external_event_id=data["id"],
            meeting_link=online_meeting.get("joinUrl"),
            html_link=data.get("webLink"),
        )
