"""Protected session storage using the system keychain.

Uses the `keyring` library which maps to:
  macOS: Keychain Access
  Windows: Windows Credential Manager
  Linux: Secret Service API

The authenticated session is stored as one JSON entry under the service
name 'com.backupsync.app'. Nothing session-related is written to plain
files.
"""

import json
import logging

import keyring
import keyring.errors

logger = logging.getLogger(__name__)

SERVICE_NAME = "com.backupsync.app"

SESSION_KEY = "AUTH_SESSION"


class KeyringStore:
    """Thin wrapper around keyring for credential CRUD."""

    def __init__(self, service_name: str = SERVICE_NAME) -> None:
        self._service = service_name

    def get(self, key: str) -> str | None:
        """Retrieve a credential value. Returns None if not set."""
        try:
            return keyring.get_password(self._service, key)
        except keyring.errors.KeyringError:
            logger.warning("Keyring read failed for %s", key, exc_info=True)
            return None

    def set(self, key: str, value: str) -> None:
        """Store a credential value."""
        keyring.set_password(self._service, key, value)
        logger.info("Stored credential: %s", key)

    def delete(self, key: str) -> None:
        """Remove a credential."""
        try:
            keyring.delete_password(self._service, key)
            logger.info("Deleted credential: %s", key)
        except keyring.errors.PasswordDeleteError:
            logger.debug("Credential %s not found for deletion", key)

    def has(self, key: str) -> bool:
        """Check if a credential is set."""
        return self.get(key) is not None

    def load_json(self, key: str) -> dict | None:
        """Read a JSON-encoded entry. Corrupt entries read as missing."""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable keyring entry %s", key)
            return None
        return value if isinstance(value, dict) else None

    def save_json(self, key: str, value: dict) -> None:
        """Store a dict as a JSON-encoded entry."""
        self.set(key, json.dumps(value))
