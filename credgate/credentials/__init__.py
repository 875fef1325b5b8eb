"""credgate.credentials

Credential access control and redaction.

- schema: type registry and flattened field-sensitivity schemas
- redaction: sentinel masking of decrypted payloads
- store / projects: persistence of credentials, sharings, and memberships
- access: usable-credential sets and scopes
- transfer: atomic ownership moves between projects
- service: the public operations
"""

from credgate.credentials.access import AccessResolver
from credgate.credentials.hooks import CredentialHooks, HookEvent
from credgate.credentials.projects import ProjectDirectory
from credgate.credentials.redaction import (
    CREDENTIAL_BLANKING_VALUE,
    CREDENTIAL_EMPTY_VALUE,
    RedactionEngine,
)
from credgate.credentials.schema import TypeRegistry, TypeSchemaResolver
from credgate.credentials.service import CredentialService
from credgate.credentials.store import CredentialQuery, CredentialStore
from credgate.credentials.tester import CredentialTester, CredentialTestResult, TestStatus
from credgate.credentials.transfer import TransferCoordinator, TransferResult

__all__ = [
    "CREDENTIAL_BLANKING_VALUE",
    "CREDENTIAL_EMPTY_VALUE",
    "AccessResolver",
    "CredentialHooks",
    "CredentialQuery",
    "CredentialService",
    "CredentialStore",
    "CredentialTestResult",
    "CredentialTester",
    "HookEvent",
    "ProjectDirectory",
    "RedactionEngine",
    "TestStatus",
    "TransferCoordinator",
    "TransferResult",
    "TypeRegistry",
    "TypeSchemaResolver",
]
