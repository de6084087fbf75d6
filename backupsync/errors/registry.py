"""Error code registry with E-XXXX format codes.

This module defines the error code system for backupsync, organizing errors
into categories:
- E-2xxx: Validation errors
- E-3xxx: Remote service errors
- E-4xxx: System, configuration and integrity errors
- E-5xxx: Authentication and authorization errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Classification strings surfaced to UI-facing consumers."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    VALIDATION = "validation"
    INTEGRITY = "integrity"
    CONFLICT = "conflict"


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Email",
        message_template="'{value}' is not a valid email address.",
        remediation="Enter an address of the form name@example.com.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Password Too Short",
        message_template="Password must be at least {min_length} characters long.",
        remediation="Choose a longer password and retry.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Missing Required Field",
        message_template="Required field '{field}' is empty.",
        remediation="Fill in the missing field and retry.",
    ),
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.VALIDATION,
        title="Invalid Request",
        message_template="The backup service rejected the request: {details}",
        remediation="Check the submitted values and retry.",
    ),
    "E-2005": ErrorCode(
        code="E-2005",
        category=ErrorCategory.VALIDATION,
        title="Invalid Snapshot File",
        message_template="'{path}' is not a valid SQLite database.",
        remediation="The backup may be corrupted. Try another backup.",
    ),
    # Remote service errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.TRANSIENT,
        title="Backup Service Unavailable",
        message_template="The backup service is not responding (HTTP {status}).",
        remediation="Wait a few minutes and retry.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.TRANSIENT,
        title="Rate Limit Exceeded",
        message_template="Too many requests to the backup service.",
        remediation="Wait a minute and retry.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.TRANSIENT,
        title="Request Timed Out",
        message_template="The backup service did not answer in time.",
        remediation="Check your internet connection and retry.",
        is_retryable=True,
    ),
    "E-3004": ErrorCode(
        code="E-3004",
        category=ErrorCategory.TRANSIENT,
        title="Network Error",
        message_template="Could not reach the backup service: {details}",
        remediation="Check your internet connection and retry.",
        is_retryable=True,
    ),
    "E-3005": ErrorCode(
        code="E-3005",
        category=ErrorCategory.CONFLICT,
        title="Identity Collision",
        message_template="{resource} '{identifier}' already exists.",
        remediation="Retry with a fresh identifier.",
        is_retryable=True,
    ),
    "E-3006": ErrorCode(
        code="E-3006",
        category=ErrorCategory.VALIDATION,
        title="Resource Not Found",
        message_template="{resource} '{identifier}' not found.",
        remediation="Refresh the backup list and retry.",
    ),
    "E-3007": ErrorCode(
        code="E-3007",
        category=ErrorCategory.TRANSIENT,
        title="Retries Exhausted",
        message_template="Backup failed after {attempts} attempt(s): {last_error}",
        remediation="Check your internet connection and retry later.",
    ),
    # System / configuration / integrity errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.TRANSIENT,
        title="Snapshot Unavailable",
        message_template="Could not read the local database snapshot: {details}",
        remediation="Make sure the application database is accessible and retry.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.CONFIGURATION,
        title="Missing Configuration",
        message_template="Backup service configuration is incomplete: {details}",
        remediation="Set the missing values in backupsync.yaml or the environment and restart.",
    ),
    "E-4003": ErrorCode(
        code="E-4003",
        category=ErrorCategory.INTEGRITY,
        title="Backup Verification Failed",
        message_template="Backup '{file_name}' was uploaded but could not be verified.",
        remediation="Retry the backup. Contact support if the issue persists.",
    ),
    "E-4004": ErrorCode(
        code="E-4004",
        category=ErrorCategory.CONFLICT,
        title="Backup In Progress",
        message_template="Backup already in progress.",
        remediation="Wait for the current backup to finish.",
    ),
    "E-4005": ErrorCode(
        code="E-4005",
        category=ErrorCategory.TRANSIENT,
        title="Unexpected Service Error",
        message_template="The backup service returned an unexpected error: {details}",
        remediation="Retry the operation. Contact support if the issue persists.",
    ),
    # Authentication / authorization errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.AUTHENTICATION,
        title="Invalid Credentials",
        message_template="Invalid email or password.",
        remediation="Check your email and password and sign in again.",
    ),
    "E-5002": ErrorCode(
        code="E-5002",
        category=ErrorCategory.AUTHENTICATION,
        title="Account Not Found",
        message_template="No account exists for this email.",
        remediation="Create an account first, or check the email address.",
    ),
    "E-5003": ErrorCode(
        code="E-5003",
        category=ErrorCategory.AUTHENTICATION,
        title="Session Expired",
        message_template="Your session has expired.",
        remediation="Sign in again.",
    ),
    "E-5004": ErrorCode(
        code="E-5004",
        category=ErrorCategory.AUTHENTICATION,
        title="Not Authenticated",
        message_template="You are not signed in.",
        remediation="Sign in to enable cloud backups.",
    ),
    "E-5005": ErrorCode(
        code="E-5005",
        category=ErrorCategory.AUTHORIZATION,
        title="Access Denied",
        message_template="Access denied to backup '{identifier}'.",
        remediation="You can only access your own backups.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
