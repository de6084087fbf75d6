"""Error formatting utilities for user display and structured output."""

from backupsync.errors.domain import DomainError


def format_error(error: DomainError, include_remediation: bool = True) -> str:
    """Format error for display to user.

    Args:
        error: The DomainError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string suitable for user display.
    """
    lines = [f"{error.code}: {error.message}"]
    if include_remediation:
        lines.append(f"  Action: {error.remediation}")
    return "\n".join(lines)


def error_payload(error: DomainError) -> dict:
    """Return the classification fields exposed to UI-facing consumers.

    Raw exception objects never leave the service layer; callers get
    this flat dict instead.
    """
    payload = {
        "error": error.message,
        "error_code": error.code,
        "error_kind": error.category.value,
    }
    reason = getattr(error, "reason", None)
    if reason is not None:
        payload["reason"] = reason.value
    return payload
