from __future__ import annotations

import re
from typing import Any

_SENSITIVE_KEY_RE = re.compile(
    r"(?i)^(api[_-]?key|apikey|access[_-]?token|refresh[_-]?token|token|password|passwd|secret|credentials?)$"
)
_SENSITIVE_ASSIGNMENT_RE = re.compile(
    r"(?i)\b(api[_-]?key|access[_-]?token|refresh[_-]?token|token|password|passwd|secret)\b(\s*[:=]\s*)([^\s,;]+)"
)
_SENSITIVE_BEARER_RE = re.compile(r"(?i)\b(bearer\s+)([A-Za-z0-9._~+/=-]+)")
REDACTED = "[REDACTED]"


def redact_sensitive_text(value: str | None) -> str | None:
    if value is None:
        return None

    redacted = _SENSITIVE_ASSIGNMENT_RE.sub(rf"\1\2{REDACTED}", value)
    redacted = _SENSITIVE_BEARER_RE.sub(rf"\1{REDACTED}", redacted)
    return redacted


def redact_payload(value: Any) -> Any:
    """Return a copy of ``value`` with secret-looking keys and strings masked.

    Execution results and step action payloads are free-form and are echoed
    back to the calling agent inside envelopes.
    """
    if isinstance(value, dict):
        cleaned: dict[str, Any] = {}
        for key, item in value.items():
            if isinstance(key, str) and _SENSITIVE_KEY_RE.match(key):
                cleaned[key] = REDACTED
            else:
                cleaned[key] = redact_payload(item)
        return cleaned
    if isinstance(value, list):
        return [redact_payload(item) for item in value]
    if isinstance(value, str):
        return redact_sensitive_text(value)
    return value
