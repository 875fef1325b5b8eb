"""credgate.credentials.transfer

Atomic reassignment of credential ownership between projects.

Ownership is exclusive: when the owner moves, whatever relation the
destination already had to that credential is replaced. Lesser shares are
polite: they are copied only where the destination has no relation yet.

The single-owner index is checked per statement, so the source rows are
always deleted before ownership is written to the destination.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from credgate.core.database import Database, Transaction
from credgate.core.exceptions import (
    BadRequestError,
    CredgateError,
    InvariantViolation,
    NotFoundError,
    StoreError,
    TransactionTimeout,
    TransferError,
)
from credgate.core.permissions import SharingRole
from credgate.core.types import Sharing
from credgate.credentials.projects import ProjectDirectory
from credgate.credentials.store import CredentialStore
from credgate.security.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransferResult:
    from_project_id: str
    to_project_id: str
    owned: tuple[str, ...] = ()
    shared: tuple[str, ...] = ()
    # destination relations replaced by ownership
    overwritten: tuple[str, ...] = ()
    # non-owner shares dropped because the destination already related
    skipped: tuple[str, ...] = ()


class TransferCoordinator:
    def __init__(
        self,
        db: Database,
        store: CredentialStore,
        directory: ProjectDirectory,
        *,
        timeout_seconds: float | None = None,
        audit: AuditLogger | None = None,
    ):
        self._db = db
        self._store = store
        self._directory = directory
        self._audit = audit
        self.timeout_seconds = timeout_seconds

    def transfer_all(
        self,
        from_project_id: str,
        to_project_id: str,
        *,
        actor: str | None = None,
        trx: Transaction | None = None,
    ) -> TransferResult:
        """Move every owned credential and every share from one project to another."""
        result = self._atomically(lambda t: self._transfer_all(from_project_id, to_project_id, actor, t), trx)
        logger.info(
            "credentials_transferred",
            extra={
                "from_project_id": from_project_id,
                "to_project_id": to_project_id,
                "owned": len(result.owned),
                "shared": len(result.shared),
                "overwritten": len(result.overwritten),
            },
        )
        return result

    def transfer_one(
        self,
        credential_id: str,
        to_project_id: str,
        *,
        trx: Transaction | None = None,
    ) -> str:
        """Make `to_project_id` the sole owner of one credential.

        Returns the id of the previous owner project.
        """
        return self._atomically(lambda t: self._transfer_one(credential_id, to_project_id, t), trx)

    def _atomically(self, fn, trx: Transaction | None):
        if trx is not None:
            return fn(trx)
        try:
            with self._db.transaction(timeout=self.timeout_seconds) as t:
                return fn(t)
        except TransactionTimeout:
            raise
        except StoreError as e:
            raise TransferError(f"transfer rolled back: {e}") from e
        except CredgateError:
            raise
        except Exception as e:
            raise TransferError(f"transfer rolled back: {type(e).__name__}: {e}") from e

    def _transfer_all(
        self,
        from_project_id: str,
        to_project_id: str,
        actor: str | None,
        t: Transaction,
    ) -> TransferResult:
        if from_project_id == to_project_id:
            raise BadRequestError("Cannot transfer credentials to the project they are already in")
        found = self._directory.get_projects([from_project_id, to_project_id], trx=t)
        for pid in (from_project_id, to_project_id):
            if pid not in found:
                raise NotFoundError(f'Project with ID "{pid}" could not be found.', code="project.not_found")

        from_rows = self._store.find_sharings(project_ids=[from_project_id], trx=t)
        to_rows = self._store.find_sharings(project_ids=[to_project_id], trx=t)
        to_related = {s.credential_id for s in to_rows}

        owned = [s.credential_id for s in from_rows if s.role == SharingRole.OWNER]
        lesser = [s for s in from_rows if s.role != SharingRole.OWNER]
        copied = [s for s in lesser if s.credential_id not in to_related]
        skipped = [s.credential_id for s in lesser if s.credential_id in to_related]

        self._store.delete_all_sharings_of_project(from_project_id, trx=t)
        self._store.make_owner(owned, to_project_id, trx=t)
        self._store.insert_sharings(
            [Sharing(credential_id=s.credential_id, project_id=to_project_id, role=s.role) for s in copied],
            trx=t,
        )

        result = TransferResult(
            from_project_id=from_project_id,
            to_project_id=to_project_id,
            owned=tuple(owned),
            shared=tuple(s.credential_id for s in copied),
            overwritten=tuple(cid for cid in owned if cid in to_related),
            skipped=tuple(skipped),
        )
        if self._audit is not None:
            self._audit.log_action(
                "credential.transfer",
                actor,
                {
                    "from_project_id": from_project_id,
                    "to_project_id": to_project_id,
                    "owned": list(result.owned),
                    "shared": list(result.shared),
                },
                trx=t,
            )
        return result

    def _transfer_one(self, credential_id: str, to_project_id: str, t: Transaction) -> str:
        if self._store.find_credential(credential_id, trx=t) is None:
            raise NotFoundError(f'Credential with ID "{credential_id}" could not be found.')
        if self._directory.get_project(to_project_id, trx=t) is None:
            raise NotFoundError(f'Project with ID "{to_project_id}" could not be found.', code="project.not_found")

        owner = self._store.find_owner_sharing(credential_id, trx=t)
        if owner is None:
            raise InvariantViolation(f"credential {credential_id} has no owner")
        if owner.project_id == to_project_id:
            raise BadRequestError("Credential is already owned by this project")

        self._store.delete_sharings([credential_id], owner.project_id, trx=t)
        self._store.make_owner([credential_id], to_project_id, trx=t)
        return owner.project_id
