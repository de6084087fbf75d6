"""Secret redaction for log lines.

Session payloads carry the session secret and bearer token; anything that
logs them goes through ``redact_for_logging`` first. Key matching is a
case-insensitive substring test so ``sessionSecret`` and ``session_secret``
are both caught.
"""

import re

_DEFAULT_SENSITIVE_PATTERNS = frozenset({
    "secret", "token", "jwt", "authorization", "password", "credential",
})

# Keys whose entire value is redacted regardless of content type
_CONTAINER_KEYS = frozenset({"headers", "cookies"})

_REDACTED = "***REDACTED***"


def _is_sensitive_key(key: str, sensitive_patterns: frozenset[str]) -> bool:
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in sensitive_patterns)


def redact_for_logging(
    obj: dict,
    sensitive_patterns: frozenset[str] = _DEFAULT_SENSITIVE_PATTERNS,
) -> dict:
    """Return a copy of ``obj`` with sensitive values replaced.

    Args:
        obj: Dict to redact (not mutated).
        sensitive_patterns: Substrings whose matching keys are redacted.

    Returns:
        New dict; nested dicts and lists of dicts are redacted recursively.
    """
    result = {}
    for key, value in obj.items():
        if key.lower() in _CONTAINER_KEYS or _is_sensitive_key(key, sensitive_patterns):
            result[key] = _REDACTED
        elif isinstance(value, dict):
            result[key] = redact_for_logging(value, sensitive_patterns)
        elif isinstance(value, list):
            result[key] = [
                redact_for_logging(item, sensitive_patterns) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


_SENSITIVE_KEYWORDS = r"secret|token|jwt|password|authorization|credential"
_SENSITIVE_VALUE_PATTERNS = re.compile(
    r"(?i)"
    r"(?:"
    r"Authorization\s*:\s*Bearer\s+\S+"
    r"|"
    r'"(?:' + _SENSITIVE_KEYWORDS + r')"\s*:\s*"[^"]*"'
    r"|"
    r"(?:" + _SENSITIVE_KEYWORDS + r")\s*[=:]\s*\S+"
    r")",
)


def redact_message(msg: str | None, max_length: int = 500) -> str | None:
    """Redact key=value style secrets in free text and truncate.

    Used on backend error messages before they reach result objects.
    """
    if msg is None:
        return None
    redacted = _SENSITIVE_VALUE_PATTERNS.sub(_REDACTED, msg)
    if len(redacted) > max_length:
        redacted = redacted[:max_length - 3] + "..."
    return redacted
