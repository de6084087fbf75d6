"""Tests for secret redaction utility."""

from backupsync.utils.redaction import redact_for_logging, redact_message


class TestRedactForLogging:

    def test_redacts_sensitive_keys(self):
        data = {"email": "owner@example.com", "password": "hunter22", "sessionSecret": "s1"}
        result = redact_for_logging(data)
        assert result["password"] == "***REDACTED***"
        assert result["sessionSecret"] == "***REDACTED***"
        assert result["email"] == "owner@example.com"

    def test_preserves_non_sensitive(self):
        data = {"documentId": "rec-1", "data": {"fileName": "auto-backup.sqlite", "version": 1}}
        assert redact_for_logging(data) == data

    def test_handles_nested_and_lists(self):
        data = {"session": {"jwt": "eyJ", "userId": "u1"}, "items": [{"token": "t", "id": 1}, "plain"]}
        result = redact_for_logging(data)
        assert result["session"] == {"jwt": "***REDACTED***", "userId": "u1"}
        assert result["items"] == [{"token": "***REDACTED***", "id": 1}, "plain"]

    def test_container_keys_fully_redacted(self):
        result = redact_for_logging({"headers": {"X-Appwrite-Project": "p"}, "cookies": ["a"]})
        assert result == {"headers": "***REDACTED***", "cookies": "***REDACTED***"}

    def test_does_not_mutate_input(self):
        data = {"password": "hunter22"}
        redact_for_logging(data)
        assert data["password"] == "hunter22"


class TestRedactMessage:

    def test_key_value_secrets(self):
        assert redact_message("failed: secret=abc123 for user") == "failed: ***REDACTED*** for user"

    def test_bearer_header(self):
        assert "eyJ" not in redact_message("Authorization: Bearer eyJhbGciOi")

    def test_json_fragment(self):
        result = redact_message('{"jwt": "eyJ.payload", "userId": "u1"}')
        assert "eyJ" not in result
        assert '"userId": "u1"' in result

    def test_truncates(self):
        result = redact_message("x" * 600, max_length=100)
        assert len(result) == 100
        assert result.endswith("...")

    def test_none(self):
        assert redact_message(None) is None
