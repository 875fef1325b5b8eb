"""credgate.security

Security primitives.

- cipher: opaque payload encryption (Fernet, PBKDF2-derived key from env)
- audit: database-backed audit trail
- redaction: scrub secrets out of logs and audit rows
"""

from credgate.security.audit import AuditLogger
from credgate.security.cipher import Cipher, FernetCipher
from credgate.security.redaction import SecretScrubFilter, redact_secrets, sanitize_for_log

__all__ = [
    "AuditLogger",
    "Cipher",
    "FernetCipher",
    "SecretScrubFilter",
    "redact_secrets",
    "sanitize_for_log",
]
