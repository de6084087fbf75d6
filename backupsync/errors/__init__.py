"""Error handling framework for backupsync.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions mirroring the error taxonomy
- Error formatting utilities

Error categories:
- E-2xxx: Validation errors
- E-3xxx: Remote service errors
- E-4xxx: System, configuration and integrity errors
- E-5xxx: Authentication and authorization errors
"""

from backupsync.errors.domain import (
    AuthenticationError,
    AuthFailure,
    AuthorizationError,
    BackupInProgressError,
    ConfigurationError,
    DomainError,
    IdentityCollisionError,
    IntegrityError,
    NotFoundError,
    RetryExhaustedError,
    TransientError,
    ValidationError,
)
from backupsync.errors.formatter import error_payload, format_error
from backupsync.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Domain exceptions
    "DomainError",
    "AuthFailure",
    "AuthenticationError",
    "AuthorizationError",
    "ConfigurationError",
    "TransientError",
    "ValidationError",
    "IntegrityError",
    "NotFoundError",
    "IdentityCollisionError",
    "BackupInProgressError",
    "RetryExhaustedError",
    # Formatter
    "format_error",
    "error_payload",
]
