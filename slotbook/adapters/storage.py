"""
Collaborator stores: users, weekly availability and appointments.

Users and availability are seeded from configuration and kept in memory.
Appointments are kept in memory and, when a path is given, mirrored to a
JSON file after every write.
"""

import json
import logging
import threading
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pendulum

from ..domain.exceptions import InvalidInput, NotFound, PersistenceError
from ..domain.models import (
    Appointment,
    AppointmentQuery,
    AppointmentStatus,
    AvailabilityRule,
    Credential,
    Principal,
    sort_newest_first,
)
from .credential_store import CredentialStore

logger = logging.getLogger(__name__)


class InMemoryUserDirectory:
    """
    Identity collaborator backed by configured users.

    Lends credentials to the calendar gateway and receives refreshed ones
    through ``update_credential``.
    """

    def __init__(
        self,
        principals: Iterable[Principal] = (),
        tokens: Optional[Dict[str, str]] = None,
        credentials: Optional[Dict[str, Credential]] = None,
        credential_store: Optional[CredentialStore] = None,
    ):
        self._principals: Dict[str, Principal] = {p.id: p for p in principals}
        self._tokens: Dict[str, str] = dict(tokens or {})
        self._credentials: Dict[str, Credential] = dict(credentials or {})
        self._credential_store = credential_store

    @classmethod
    def from_config(cls, config, credential_store: Optional[CredentialStore] = None):
        principals = [user.to_principal() for user in config.users]
        tokens = {user.api_token: user.id for user in config.users if user.api_token}
        credentials = {
            user.id: user.calendar.to_credential()
            for user in config.users
            if user.calendar is not None
        }
        return cls(principals, tokens, credentials, credential_store)

    def get(self, user_id: str) -> Optional[Principal]:
        return self._principals.get(user_id)

    def find_by_token(self, token: str) -> Optional[Principal]:
        user_id = self._tokens.get(token)
        return self._principals.get(user_id) if user_id else None

    def list_sellers(self) -> List[Principal]:
        """Sellers that have connected a calendar, ordered by name."""
        sellers = [
            p for p in self._principals.values()
            if p.is_seller and p.calendar_connected
        ]
        return sorted(sellers, key=lambda p: p.name.lower())

    def credential_for(self, user_id: str) -> Optional[Credential]:
        """Return the credential lent to the gateway for ``user_id``."""
        if self._credential_store is not None and user_id in self._credentials:
            stored = self._credential_store.load(user_id)
            if stored is not None and stored.provider == self._credentials[user_id].provider:
                self._credentials[user_id] = stored
        return self._credentials.get(user_id)

    def update_credential(self, user_id: str, credential: Credential) -> None:
        """Write a refreshed credential back to storage."""
        self._credentials[user_id] = credential
        if self._credential_store is not None:
            self._credential_store.save(user_id, credential)
        logger.debug("Stored refreshed %s credential for %s", credential.provider, user_id)


class InMemoryAvailabilityStore:
    """Weekly availability templates, one rule per seller and weekday."""

    def __init__(self, rules: Iterable[AvailabilityRule] = ()):
        self._rules: Dict[tuple, AvailabilityRule] = {}
        self._lock = threading.Lock()
        for rule in rules:
            key = (rule.seller_id, rule.day_of_week)
            if key in self._rules:
                raise InvalidInput(
                    f"Duplicate availability for seller {rule.seller_id} on day {rule.day_of_week}"
                )
            self._rules[key] = rule

    @classmethod
    def from_config(cls, config) -> "InMemoryAvailabilityStore":
        return cls(entry.to_rule() for entry in config.availability)

    def rule_for(self, seller_id: str, day_of_week: int) -> Optional[AvailabilityRule]:
        """Return the active rule for the seller and weekday, if any."""
        rule = self._rules.get((seller_id, day_of_week))
        if rule is None or not rule.active:
            return None
        return rule

    def rules_for(self, seller_id: str) -> List[AvailabilityRule]:
        rules = [r for (sid, _), r in self._rules.items() if sid == seller_id]
        return sorted(rules, key=lambda r: r.day_of_week)

    def replace(self, seller_id: str, rules: Iterable[AvailabilityRule]) -> List[AvailabilityRule]:
        """
        Replace the seller's whole weekly template.

        Inactive entries are dropped.

        Raises:
            InvalidInput: If a rule belongs to another seller or a weekday repeats
        """
        new_rules: Dict[tuple, AvailabilityRule] = {}
        for rule in rules:
            if rule.seller_id != seller_id:
                raise InvalidInput("Availability entries must belong to the caller")
            if not rule.active:
                continue
            key = (seller_id, rule.day_of_week)
            if key in new_rules:
                raise InvalidInput(f"Duplicate availability for day {rule.day_of_week}")
            new_rules[key] = rule

        with self._lock:
            for key in [k for k in self._rules if k[0] == seller_id]:
                del self._rules[key]
            self._rules.update(new_rules)

        return self.rules_for(seller_id)


class JsonAppointmentRepository:
    """
    Appointment persistence.

    Without a path the repository is memory-only. With a path every write is
    flushed to a JSON file; a failed flush rolls the change back and raises
    ``PersistenceError``.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._appointments: Dict[str, Appointment] = {}
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        """Load appointments from file."""
        if self.path is None or not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._appointments = {
                appointment_id: Appointment.from_dict(payload)
                for appointment_id, payload in data.items()
            }
            logger.info("Loaded %d appointments from %s", len(self._appointments), self.path)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise PersistenceError(f"Could not load appointments from {self.path}: {exc}") from exc

    def _flush(self) -> None:
        if self.path is None:
            return
        data = {aid: a.to_dict() for aid, a in self._appointments.items()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self.path)

    def create(self, appointment: Appointment) -> Appointment:
        """
        Store a new appointment. An empty id is replaced with a generated one.

        Raises:
            PersistenceError: If the appointment cannot be written
        """
        if not appointment.id:
            appointment = replace(appointment, id=uuid.uuid4().hex)

        with self._lock:
            if appointment.id in self._appointments:
                raise PersistenceError(f"Appointment {appointment.id} already exists")
            self._appointments[appointment.id] = appointment
            try:
                self._flush()
            except OSError as exc:
                del self._appointments[appointment.id]
                raise PersistenceError(f"Could not persist appointment: {exc}") from exc

        return replace(appointment)

    def update(self, appointment_id: str, changes: Dict[str, Any]) -> Appointment:
        """
        Apply a partial update.

        Status changes go through the forward-only transition check.

        Raises:
            NotFound: If the appointment does not exist
            InvalidTransition: If the status would move backwards
            PersistenceError: If the change cannot be written
        """
        with self._lock:
            current = self._appointments.get(appointment_id)
            if current is None:
                raise NotFound(f"Appointment {appointment_id} not found")

            changes = dict(changes)
            status = changes.pop("status", None)
            for key in changes:
                if key in ("id", "created_at") or not hasattr(current, key):
                    raise InvalidInput(f"Field '{key}' cannot be updated")

            try:
                updated = replace(current, **changes)
            except ValueError as exc:
                raise InvalidInput(str(exc)) from exc
            if status is not None:
                updated.transition_to(AppointmentStatus(status))
            updated.updated_at = pendulum.now("UTC")

            self._appointments[appointment_id] = updated
            try:
                self._flush()
            except OSError as exc:
                self._appointments[appointment_id] = current
                raise PersistenceError(f"Could not persist appointment: {exc}") from exc

        return replace(updated)

    def get(self, appointment_id: str) -> Optional[Appointment]:
        appointment = self._appointments.get(appointment_id)
        return replace(appointment) if appointment else None

    def find(self, query: AppointmentQuery) -> List[Appointment]:
        """Return matching appointments, newest start first."""
        with self._lock:
            matches = [replace(a) for a in self._appointments.values() if query.matches(a)]
        return sort_newest_first(matches)
