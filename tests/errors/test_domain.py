"""Tests for the domain error hierarchy and formatting."""

from backupsync.errors import (
    AuthenticationError,
    AuthFailure,
    AuthorizationError,
    BackupInProgressError,
    ConfigurationError,
    DomainError,
    IdentityCollisionError,
    NotFoundError,
    RetryExhaustedError,
    TransientError,
    ValidationError,
    error_payload,
    format_error,
)
from backupsync.errors.domain import render_message


class TestRenderMessage:
    def test_fills_placeholders(self):
        assert render_message("E-3006", resource="Backup", identifier="rec-1") == (
            "Backup 'rec-1' not found."
        )

    def test_missing_context_keeps_template(self):
        assert "{min_length}" in render_message("E-2002")

    def test_unknown_code(self):
        assert render_message("E-0000") == "Unknown error: E-0000"


class TestHierarchy:
    """Tests for categories, codes and retryability."""

    def test_transient_is_retryable(self):
        error = TransientError.from_code("E-3001", status=502)
        assert error.retryable
        assert error.code == "E-3001"
        assert error.message.endswith("(HTTP 502).")

    def test_auth_reasons_map_to_codes(self):
        assert AuthenticationError.for_reason(AuthFailure.INVALID_CREDENTIALS).code == "E-5001"
        assert AuthenticationError.for_reason(AuthFailure.ACCOUNT_NOT_FOUND).code == "E-5002"
        expired = AuthenticationError.for_reason(AuthFailure.SESSION_EXPIRED)
        assert expired.code == "E-5003"
        assert expired.reason is AuthFailure.SESSION_EXPIRED
        assert not expired.retryable

    def test_authorization_is_final(self):
        error = AuthorizationError("rec-9")
        assert error.message == "Access denied to backup 'rec-9'."
        assert not error.retryable

    def test_collision_is_retryable_conflict(self):
        error = IdentityCollisionError("Blob", "b-1")
        assert error.retryable
        assert error.category.value == "conflict"

    def test_not_found(self):
        error = NotFoundError("Blob", "b-1")
        assert error.code == "E-3006"
        assert error.identifier == "b-1"

    def test_in_progress_message(self):
        assert BackupInProgressError().message == "Backup already in progress."

    def test_configuration_lists_problems(self):
        error = ConfigurationError(["Missing backend setting: endpoint", "Missing backend setting: bucket_id"])
        assert error.problems[1] == "Missing backend setting: bucket_id"
        assert "endpoint; Missing" in error.message

    def test_retry_exhausted_keeps_cause(self):
        cause = TransientError.from_code("E-3003")
        error = RetryExhaustedError(3, cause)
        assert error.attempts == 3
        assert error.last_error is cause
        assert not error.retryable
        assert error.message.startswith("Backup failed after 3 attempt(s):")

    def test_default_code(self):
        assert ValidationError("bad input").code == "E-2003"
        assert DomainError("odd").code == "E-4005"


class TestFormatting:
    def test_format_error_with_remediation(self):
        text = format_error(AuthorizationError("rec-1"))
        lines = text.splitlines()
        assert lines[0] == "E-5005: Access denied to backup 'rec-1'."
        assert lines[1].startswith("  Action: ")

    def test_format_error_without_remediation(self):
        assert "\n" not in format_error(BackupInProgressError(), include_remediation=False)

    def test_payload_includes_reason_for_auth_errors(self):
        payload = error_payload(AuthenticationError.for_reason(AuthFailure.SESSION_EXPIRED))
        assert payload == {
            "error": "Your session has expired.",
            "error_code": "E-5003",
            "error_kind": "authentication",
            "reason": "session_expired",
        }

    def test_payload_without_reason(self):
        payload = error_payload(NotFoundError("Backup", "rec-1"))
        assert "reason" not in payload
        assert payload["error_kind"] == "validation"
