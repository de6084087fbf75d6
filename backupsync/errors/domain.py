"""Typed domain exceptions for the backup synchronization layer.

These exceptions carry an error code from the registry, the category
string surfaced to UI consumers, and whether the retry policy may
re-attempt the failed operation. Components raise them internally and
convert them to result objects at each operation's outer edge.

Usage:
    # In a backend adapter
    raise NotFoundError("Backup", record_id)

    # At an operation's outer edge
    try:
        record = await catalog.fetch_record(record_id)
    except DomainError as e:
        return BackupRecordResult.from_error(e)
"""

from enum import Enum

from backupsync.errors.registry import ErrorCategory, get_error


class AuthFailure(str, Enum):
    """Why an authentication attempt did not produce a session."""

    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_NOT_FOUND = "account_not_found"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"
    SESSION_EXPIRED = "session_expired"
    NOT_AUTHENTICATED = "not_authenticated"


def render_message(code: str, **context: object) -> str:
    """Format the registry message template for a code.

    Placeholders missing from ``context`` leave the template unformatted.
    """
    error_def = get_error(code)
    if error_def is None:
        return f"Unknown error: {code}"
    try:
        return error_def.message_template.format(**context)
    except KeyError:
        return error_def.message_template


class DomainError(Exception):
    """Base exception for all backupsync domain errors."""

    category: ErrorCategory = ErrorCategory.TRANSIENT
    default_code: str = "E-4005"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    @classmethod
    def from_code(cls, code: str, **context: object) -> "DomainError":
        """Create an error whose message comes from the registry template."""
        return cls(render_message(code, **context), code=code, details=dict(context))

    @property
    def remediation(self) -> str:
        """Registry remediation text for this error's code."""
        error_def = get_error(self.code)
        return error_def.remediation if error_def else "Contact support."


class AuthenticationError(DomainError):
    """Invalid credentials, missing session or expired session. Never retried."""

    category = ErrorCategory.AUTHENTICATION
    default_code = "E-5004"

    def __init__(
        self,
        message: str,
        *,
        reason: AuthFailure = AuthFailure.NOT_AUTHENTICATED,
        code: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.reason = reason

    @classmethod
    def for_reason(cls, reason: AuthFailure) -> "AuthenticationError":
        """Build the canonical error for an authentication failure reason."""
        code = _AUTH_REASON_CODES.get(reason, "E-5004")
        return cls(render_message(code), reason=reason, code=code)


_AUTH_REASON_CODES: dict[AuthFailure, str] = {
    AuthFailure.INVALID_CREDENTIALS: "E-5001",
    AuthFailure.ACCOUNT_NOT_FOUND: "E-5002",
    AuthFailure.SESSION_EXPIRED: "E-5003",
    AuthFailure.NOT_AUTHENTICATED: "E-5004",
}


class AuthorizationError(DomainError):
    """Record ownership mismatch. Maps to access denied, never retried."""

    category = ErrorCategory.AUTHORIZATION
    default_code = "E-5005"

    def __init__(self, identifier: str) -> None:
        super().__init__(
            render_message("E-5005", identifier=identifier),
            details={"identifier": identifier},
        )
        self.identifier = identifier


class ConfigurationError(DomainError):
    """Missing or placeholder settings. Fatal at startup."""

    category = ErrorCategory.CONFIGURATION
    default_code = "E-4002"

    def __init__(self, problems: list[str]) -> None:
        super().__init__(
            render_message("E-4002", details="; ".join(problems)),
            details={"problems": list(problems)},
        )
        self.problems = list(problems)


class TransientError(DomainError):
    """Timeout, network failure, rate limiting or backend 5xx. Retried."""

    category = ErrorCategory.TRANSIENT
    default_code = "E-3004"
    retryable = True


class ValidationError(DomainError):
    """Malformed input. Fails fast without touching the network."""

    category = ErrorCategory.VALIDATION
    default_code = "E-2003"


class IntegrityError(DomainError):
    """Post-upload verification could not find the written record."""

    category = ErrorCategory.INTEGRITY
    default_code = "E-4003"


class NotFoundError(DomainError):
    """Remote resource was not found."""

    category = ErrorCategory.VALIDATION
    default_code = "E-3006"

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(
            render_message("E-3006", resource=resource_type, identifier=identifier),
            details={"resource": resource_type, "identifier": identifier},
        )
        self.resource_type = resource_type
        self.identifier = identifier


class IdentityCollisionError(DomainError):
    """A create used an identity that already exists."""

    category = ErrorCategory.CONFLICT
    default_code = "E-3005"
    retryable = True

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(
            render_message("E-3005", resource=resource_type, identifier=identifier),
            details={"resource": resource_type, "identifier": identifier},
        )
        self.resource_type = resource_type
        self.identifier = identifier


class BackupInProgressError(DomainError):
    """A backup job is already running in this process."""

    category = ErrorCategory.CONFLICT
    default_code = "E-4004"

    def __init__(self) -> None:
        super().__init__(render_message("E-4004"))


class RetryExhaustedError(DomainError):
    """Every attempt allowed by the retry policy failed.

    Attributes:
        attempts: Number of attempts made.
        last_error: The exception raised by the final attempt.
    """

    category = ErrorCategory.TRANSIENT
    default_code = "E-3007"

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            render_message("E-3007", attempts=attempts, last_error=str(last_error)),
            details={"attempts": attempts, "last_error": str(last_error)},
        )
        self.attempts = attempts
        self.last_error = last_error
