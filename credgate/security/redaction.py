"""credgate.security.redaction

Scrub secrets before anything hits logs or the audit table.

Display masking of credential payloads is schema-driven and lives in
`credgate.credentials.redaction`. This module is the blunt instrument:
name- and pattern-based, for text that should never carry a secret at all.
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any

REDACTED = "[REDACTED]"

_REDACTION_PATTERNS: list[tuple[str, str]] = [
    # Generic key/value
    (r"(?i)(api[_-]?key|client[_-]?secret|secret|password|token)\s*[:=]\s*[^\s\"',}]+", REDACTED),
    # Bearer headers
    (r"(?i)bearer\s+[a-z0-9._~+/=-]{8,}", REDACTED),
    # OpenAI
    (r"sk-proj-[a-zA-Z0-9]{20,}", REDACTED),
    (r"sk-[a-zA-Z0-9]{20,}", REDACTED),
    # Stripe-style live/test keys
    (r"\b[sr]k_(live|test)_[a-zA-Z0-9]{3,}", REDACTED),
    # GitHub tokens
    (r"\bgh[pousr]_[a-zA-Z0-9]{20,}", REDACTED),
    # Slack tokens
    (r"\bxox[abprs]-[a-zA-Z0-9-]{10,}", REDACTED),
    # AWS access key ids
    (r"\bAKIA[0-9A-Z]{16}\b", REDACTED),
    # JWT
    (r"eyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+", REDACTED),
    # Fernet tokens (encrypted credential blobs)
    (r"gAAAAA[a-zA-Z0-9_=-]{40,}", REDACTED),
]

_SENSITIVE_FIELD_NAMES = {
    "apikey",
    "api_key",
    "accesstoken",
    "access_token",
    "refreshtoken",
    "refresh_token",
    "clientsecret",
    "client_secret",
    "secret",
    "secretaccesskey",
    "sessiontoken",
    "password",
    "privatekey",
    "private_key",
    "token",
    "oauthtokendata",
    "csrfsecret",
    "authorization",
    "data",
}


def redact_secrets(text: str) -> str:
    out = text
    for pattern, repl in _REDACTION_PATTERNS:
        out = re.sub(pattern, repl, out)
    return out


def sanitize_for_log(data: dict[str, Any]) -> dict[str, Any]:
    """Deep-copy and redact sensitive fields + embedded secrets."""

    def _walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            new: dict[str, Any] = {}
            for k, v in obj.items():
                if str(k).lower() in _SENSITIVE_FIELD_NAMES:
                    new[k] = REDACTED
                else:
                    new[k] = _walk(v)
            return new
        if isinstance(obj, (list, tuple)):
            return [_walk(v) for v in obj]
        if isinstance(obj, str):
            return redact_secrets(obj)
        return obj

    return _walk(copy.deepcopy(data))


class SecretScrubFilter(logging.Filter):
    """Rewrites records in place: message args and `extra=` values."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            record.msg = record.getMessage()
            record.args = None
        if isinstance(record.msg, str):
            record.msg = redact_secrets(record.msg)
        for key, value in list(vars(record).items()):
            if str(key).lower() in _SENSITIVE_FIELD_NAMES:
                setattr(record, key, REDACTED)
            elif isinstance(value, dict):
                setattr(record, key, sanitize_for_log(value))
        return True
