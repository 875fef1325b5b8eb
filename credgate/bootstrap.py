"""credgate.bootstrap

Composition root.

Every collaborator is built once, here, and handed to whoever needs it.
Nothing below this module looks anything up globally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from credgate.core.config import Config
from credgate.core.database import Database
from credgate.core.exceptions import SchemaNotFound
from credgate.core.logs import configure_logging
from credgate.credentials.access import AccessResolver
from credgate.credentials.hooks import CredentialHooks
from credgate.credentials.projects import ProjectDirectory
from credgate.credentials.redaction import RedactionEngine
from credgate.credentials.schema import TypeRegistry, TypeSchemaResolver
from credgate.credentials.service import CredentialService
from credgate.credentials.store import CredentialStore
from credgate.credentials.tester import CredentialTester
from credgate.credentials.transfer import TransferCoordinator
from credgate.security.audit import AuditLogger
from credgate.security.cipher import Cipher, FernetCipher
from credgate.security.redaction import SecretScrubFilter

logger = logging.getLogger(__name__)


@dataclass
class Container:
    config: Config
    db: Database
    registry: TypeRegistry
    resolver: TypeSchemaResolver
    cipher: Cipher
    store: CredentialStore
    directory: ProjectDirectory
    access: AccessResolver
    redaction: RedactionEngine
    audit: AuditLogger
    hooks: CredentialHooks
    transfer: TransferCoordinator
    service: CredentialService

    def close(self) -> None:
        self.db.close()


def build_container(
    config: Config,
    *,
    cipher: Cipher | None = None,
    tester: CredentialTester | None = None,
    setup_logging: bool = False,
) -> Container:
    """Wire the whole graph. Type catalog problems fail here, not on first use."""
    if setup_logging:
        configure_logging(config.logging, filters=[SecretScrubFilter()])

    registry = TypeRegistry.from_yaml(config.types_path)
    resolver = TypeSchemaResolver(registry)
    for name in registry.names():
        try:
            resolver.resolve(name)
        except SchemaNotFound as e:
            # A dangling parent only disables masking for its descendants.
            logger.warning("credential_type_parent_missing", extra={"credential_type": name, "missing": e.type_name})

    db = Database(
        config.db_path,
        busy_timeout_ms=config.database.busy_timeout_ms,
        transaction_timeout_seconds=config.database.transaction_timeout_seconds,
    )
    cipher = cipher or FernetCipher.from_config(config)
    store = CredentialStore(db)
    directory = ProjectDirectory(db)
    access = AccessResolver(store, directory)
    redaction = RedactionEngine(resolver, fail_open_on_unknown_type=config.redaction.fail_open_on_unknown_type)
    audit = AuditLogger(db)
    hooks = CredentialHooks()
    transfer = TransferCoordinator(
        db,
        store,
        directory,
        timeout_seconds=config.transfer.timeout_seconds,
        audit=audit,
    )
    service = CredentialService(
        db=db,
        store=store,
        directory=directory,
        access=access,
        cipher=cipher,
        redaction=redaction,
        resolver=resolver,
        transfer=transfer,
        audit=audit,
        hooks=hooks,
        tester=tester,
    )

    logger.info(
        "container_built",
        extra={"db_path": str(config.db_path), "credential_types": len(registry)},
    )
    return Container(
        config=config,
        db=db,
        registry=registry,
        resolver=resolver,
        cipher=cipher,
        store=store,
        directory=directory,
        access=access,
        redaction=redaction,
        audit=audit,
        hooks=hooks,
        transfer=transfer,
        service=service,
    )
