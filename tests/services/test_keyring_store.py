"""Tests for keyring session store.

Uses a mock backend to avoid touching the real system keychain.
"""

import json
from unittest.mock import patch

import keyring.errors

from backupsync.services.keyring_store import SESSION_KEY, KeyringStore


@patch("backupsync.services.keyring_store.keyring")
def test_set_stores_to_keyring(mock_kr):
    """Setting a value calls keyring.set_password."""
    store = KeyringStore()
    store.set(SESSION_KEY, "payload")
    mock_kr.set_password.assert_called_once_with(
        "com.backupsync.app", SESSION_KEY, "payload"
    )


@patch("backupsync.services.keyring_store.keyring")
def test_get_reads_from_keyring(mock_kr):
    """Getting a value reads from keyring."""
    mock_kr.get_password.return_value = "payload"
    store = KeyringStore(service_name="custom.service")
    assert store.get(SESSION_KEY) == "payload"
    mock_kr.get_password.assert_called_once_with("custom.service", SESSION_KEY)


@patch("backupsync.services.keyring_store.keyring")
def test_has(mock_kr):
    """has() reflects whether a value exists."""
    mock_kr.get_password.return_value = None
    store = KeyringStore()
    assert store.has(SESSION_KEY) is False


@patch("backupsync.services.keyring_store.keyring")
def test_delete(mock_kr):
    """delete() removes the entry from keyring."""
    store = KeyringStore()
    store.delete(SESSION_KEY)
    mock_kr.delete_password.assert_called_once_with("com.backupsync.app", SESSION_KEY)


def test_delete_missing_entry_is_quiet():
    """Deleting an absent entry does not raise."""
    with patch(
        "backupsync.services.keyring_store.keyring.delete_password",
        side_effect=keyring.errors.PasswordDeleteError("missing"),
    ):
        KeyringStore().delete(SESSION_KEY)


def test_get_backend_failure_reads_as_missing():
    """A keychain error on read is treated as no value."""
    with patch(
        "backupsync.services.keyring_store.keyring.get_password",
        side_effect=keyring.errors.KeyringError("locked"),
    ):
        assert KeyringStore().get(SESSION_KEY) is None


@patch("backupsync.services.keyring_store.keyring")
def test_json_round_trip(mock_kr):
    """save_json writes JSON that load_json reads back."""
    store = KeyringStore()
    store.save_json(SESSION_KEY, {"user_id": "u1"})
    written = mock_kr.set_password.call_args.args[2]
    mock_kr.get_password.return_value = written
    assert store.load_json(SESSION_KEY) == {"user_id": "u1"}


@patch("backupsync.services.keyring_store.keyring")
def test_load_json_corrupt_entry(mock_kr):
    """Unparseable or non-object entries read as missing."""
    store = KeyringStore()
    mock_kr.get_password.return_value = "{not json"
    assert store.load_json(SESSION_KEY) is None
    mock_kr.get_password.return_value = json.dumps(["list"])
    assert store.load_json(SESSION_KEY) is None
