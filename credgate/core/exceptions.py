"""credgate.core.exceptions

Errors are part of the interface.

Every error carries a stable ``code`` so the outer layer can map it without
parsing messages.
"""

from __future__ import annotations


class CredgateError(Exception):
    """Base exception for credgate."""

    code = "credgate.error"

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ConfigError(CredgateError):
    """Configuration is missing, invalid, or inconsistent."""

    code = "config.invalid"


class NotFoundError(CredgateError):
    """Resource absent, or not visible to the caller."""

    code = "credential.not_found"


class ForbiddenError(CredgateError):
    """Caller is authenticated but lacks the required scope."""

    code = "credential.forbidden"


class BadRequestError(CredgateError):
    """Request is well-formed but cannot be honored as asked."""

    code = "credential.bad_request"


class ValidationError(BadRequestError):
    """Credential payload failed shape validation."""

    code = "credential.invalid"


class InvariantViolation(CredgateError):
    """A state invariant does not hold. Retrying will not help."""

    code = "invariant.violated"


class SchemaNotFound(CredgateError):
    """Credential type is unknown to the registry."""

    code = "credential_type.not_found"

    def __init__(self, type_name: str) -> None:
        super().__init__(f"Unknown credential type: {type_name}")
        self.type_name = type_name


class SchemaCycleError(ConfigError):
    """Credential type `extends` chain loops back on itself."""

    code = "credential_type.cycle"

    def __init__(self, chain: list[str]) -> None:
        super().__init__("Cyclic credential type inheritance: " + " -> ".join(chain))
        self.chain = list(chain)


class DecryptionError(CredgateError):
    """Key material missing, blob corrupt, or blob bound to another credential."""

    code = "credential.decryption_failed"


class StoreError(CredgateError):
    """Persistence failure. The enclosing transaction was rolled back."""

    code = "store.error"


class TransactionTimeout(StoreError):
    """Transaction exceeded its deadline and was aborted."""

    code = "store.timeout"


class TransferError(StoreError):
    """Ownership transfer failed. Nothing was moved."""

    code = "credential.transfer_failed"
