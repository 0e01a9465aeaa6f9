"""
Provider-neutral calendar gateway.

Concrete providers implement three blocking primitives (refresh, busy read,
event insert). This base class runs them off the event loop, bounds every
call with a timeout, refreshes expired credentials before use and maps every
failure onto ``CalendarUnavailable`` or ``CalendarWriteError``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Protocol

import requests
from pendulum import DateTime

from ..domain.exceptions import (
    AuthenticationError,
    CalendarError,
    CalendarUnavailable,
    CalendarWriteError,
)
from ..domain.models import BusyInterval, CreatedEvent, Credential, EventSpec
from ..services.ports import CalendarGatewayProtocol

logger = logging.getLogger(__name__)

# Failures of a provider call, including payloads with an unexpected shape.
PROVIDER_ERRORS = (
    CalendarError,
    requests.RequestException,
    ValueError,
    KeyError,
    TypeError,
    AttributeError,
)


class CredentialSource(Protocol):
    """Narrow view of the identity collaborator needed by the gateway."""

    def credential_for(self, user_id: str) -> Credential | None:
        """Return the credential lent for ``user_id``."""

    def update_credential(self, user_id: str, credential: Credential) -> None:
        """Persist a refreshed credential."""


class CalendarGateway(ABC):
    """
    Base class for one external calendar provider.

    The gateway never keeps credentials: it borrows them from the
    ``CredentialSource`` for each call, refreshes them in place when they are
    expired and writes them back through ``update_credential``.
    """

    provider: str = ""

    def __init__(self, credentials: CredentialSource, timeout_seconds: float = 10.0):
        self._credentials = credentials
        self.timeout_seconds = timeout_seconds
        self._refresh_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    async def busy_intervals(
        self,
        principal_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        """
        Read the principal's busy intervals within the range.

        Raises:
            CalendarUnavailable: On transport, auth or parsing failure, or timeout
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._busy_intervals_blocking, principal_id, range_start, range_end),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise CalendarUnavailable(
                f"{self.provider} busy read for {principal_id} timed out after {self.timeout_seconds}s"
            ) from exc
        except CalendarUnavailable:
            raise
        except PROVIDER_ERRORS as exc:
            raise CalendarUnavailable(f"{self.provider} busy read for {principal_id} failed: {exc}") from exc

    async def create_event(self, principal_id: str, spec: EventSpec) -> CreatedEvent:
        """
        Create an event on the principal's primary calendar.

        Raises:
            CalendarWriteError: On transport, auth or quota failure, or timeout
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._create_event_blocking, principal_id, spec),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise CalendarWriteError(
                f"{self.provider} event write for {principal_id} timed out after {self.timeout_seconds}s"
            ) from exc
        except CalendarWriteError:
            raise
        except PROVIDER_ERRORS as exc:
            raise CalendarWriteError(f"{self.provider} event write for {principal_id} failed: {exc}") from exc

    def _busy_intervals_blocking(
        self,
        principal_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        access_token = self.access_token_for(principal_id)
        return self.fetch_busy(access_token, range_start, range_end)

    def _create_event_blocking(self, principal_id: str, spec: EventSpec) -> CreatedEvent:
        access_token = self.access_token_for(principal_id)
        return self.insert_event(access_token, spec)

    def access_token_for(self, principal_id: str) -> str:
        """
        Return a usable access token, refreshing the credential if needed.

        Raises:
            AuthenticationError: If no credential is lent or refresh fails
        """
        with self._lock_for(principal_id):
            credential = self._credentials.credential_for(principal_id)
            if credential is None:
                raise AuthenticationError(f"No calendar credential for {principal_id}")

            if credential.is_expired():
                if not credential.refresh_token:
                    raise AuthenticationError(
                        f"Credential for {principal_id} expired and has no refresh token"
                    )
                logger.info("Refreshing %s credential for %s", self.provider, principal_id)
                self.refresh(credential)
                self._credentials.update_credential(principal_id, credential)

            if not credential.access_token:
                raise AuthenticationError(f"No access token available for {principal_id}")
            return credential.access_token

    def _lock_for(self, principal_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._refresh_locks.setdefault(principal_id, threading.Lock())

    @abstractmethod
    def refresh(self, credential: Credential) -> None:
        """Refresh ``credential`` in place. Raise AuthenticationError on failure."""

    @abstractmethod
    def fetch_busy(
        self,
        access_token: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        """Blocking busy-interval read."""

    @abstractmethod
    def insert_event(self, access_token: str, spec: EventSpec) -> CreatedEvent:
        """Blocking event creation."""


class ProviderCalendarGateway:
    """
    Routes each call to the gateway matching the principal's credential.

    Principals without a credential or with an unknown provider behave like
    an unreachable calendar.
    """

    def __init__(self, credentials: CredentialSource, gateways: Dict[str, CalendarGatewayProtocol]):
        self._credentials = credentials
        self._gateways = dict(gateways)

    def _gateway_for(self, principal_id: str) -> CalendarGatewayProtocol | None:
        credential = self._credentials.credential_for(principal_id)
        if credential is None:
            return None
        return self._gateways.get(credential.provider)

    async def busy_intervals(
        self,
        principal_id: str,
        range_start: DateTime,
        range_end: DateTime,
    ) -> List[BusyInterval]:
        gateway = self._gateway_for(principal_id)
        if gateway is None:
            raise CalendarUnavailable(f"No calendar connected for {principal_id}")
        return await gateway.busy_intervals(principal_id, range_start, range_end)

    async def create_event(self, principal_id: str, spec: EventSpec) -> CreatedEvent:
        gateway = self._gateway_for(principal_id)
        if gateway is None:
            raise CalendarWriteError(f"No calendar connected for {principal_id}")
        return await gateway.create_event(principal_id, spec)
