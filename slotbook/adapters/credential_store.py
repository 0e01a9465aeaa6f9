"""
Persistent storage for refreshed calendar credentials.

Credentials are kept in the system keyring when a backend is available and
fall back to an owner-only JSON file otherwise.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

import keyring
from keyring.errors import KeyringError

from ..domain.models import Credential

logger = logging.getLogger(__name__)


KEYRING_SERVICE_NAME = "slotbook"


class CredentialStore:
    """
    Stores one credential per principal.

    The keyring is tried first; when it fails the store switches to the
    plaintext file for the rest of the process lifetime.
    """

    def __init__(self, cache_file: Path | None = None, use_keyring: bool = True):
        """
        Initialize the store.

        Args:
            cache_file: Optional path to the fallback credential file
            use_keyring: Set to False to skip the keyring entirely
        """
        self.cache_file = cache_file or Path.home() / ".slotbook_credentials.json"
        self._keyring_supported = use_keyring
        self._insecure_storage_warning: Optional[str] = None
        if not use_keyring:
            self._set_insecure_storage_warning("Keyring disabled; using plaintext file cache.")

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return "keyring" if self._keyring_supported else "file"

    @property
    def insecure_storage_warning(self) -> Optional[str]:
        """Provide a warning message when the store falls back to plaintext storage."""
        return self._insecure_storage_warning

    def load(self, principal_id: str) -> Optional[Credential]:
        """Return the stored credential for ``principal_id``, if any."""
        serialized = self._load_from_keyring(principal_id)
        if serialized is None:
            serialized = self._load_file_entries().get(principal_id)

        if not serialized:
            return None

        try:
            return Credential.from_dict(json.loads(serialized))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Could not deserialize credential for %s: %s", principal_id, exc)
            return None

    def save(self, principal_id: str, credential: Credential) -> None:
        """Persist ``credential`` for ``principal_id``."""
        serialized = json.dumps(credential.to_dict())

        if self._keyring_supported and self._save_to_keyring(principal_id, serialized):
            return

        entries = self._load_file_entries()
        entries[principal_id] = serialized
        self._write_file_entries(entries)

    def delete(self, principal_id: str) -> None:
        """Remove any stored credential for ``principal_id``."""
        if self._keyring_supported:
            try:
                keyring.delete_password(KEYRING_SERVICE_NAME, principal_id)
            except KeyringError as exc:  # pragma: no cover - environment dependent
                logger.warning("Could not remove credentials from keyring: %s", exc)

        entries = self._load_file_entries()
        if entries.pop(principal_id, None) is not None:
            self._write_file_entries(entries)

    def _load_from_keyring(self, principal_id: str) -> Optional[str]:
        if not self._keyring_supported:
            return None

        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, principal_id)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"reading credentials failed: {exc}")
            return None

    def _save_to_keyring(self, principal_id: str, serialized: str) -> bool:
        try:
            keyring.set_password(KEYRING_SERVICE_NAME, principal_id, serialized)
            return True
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"writing credentials failed: {exc}")
            return False

    def _load_file_entries(self) -> Dict[str, str]:
        if not self.cache_file.exists():
            return {}
        try:
            with open(self.cache_file, "r", encoding="utf-8") as file_handle:
                data = json.load(file_handle)
        except (OSError, ValueError) as exc:
            logger.warning("Could not load credential file %s: %s", self.cache_file, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_file_entries(self, entries: Dict[str, str]) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as file_handle:
                json.dump(entries, file_handle)
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save credentials to %s: %s", self.cache_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext cache.",
                reason,
            )
        self._keyring_supported = False
        self._set_insecure_storage_warning(
            f"Secure credential storage unavailable ({reason}). "
            f"Falling back to plaintext cache at {self.cache_file}."
        )

    def _set_insecure_storage_warning(self, message: str) -> None:
        if self._insecure_storage_warning:
            return
        self._insecure_storage_warning = message
