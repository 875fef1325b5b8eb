"""credgate.credentials.service

Public credential operations.

The service is a coordinator: authorization goes to AccessResolver, rows
to CredentialStore, plaintext through the Cipher, masking through the
RedactionEngine. Every multi-row write happens in one transaction, together
with its audit row and hooks, so a failure leaves nothing behind.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from credgate.core.database import Database
from credgate.core.exceptions import (
    BadRequestError,
    ConfigError,
    ForbiddenError,
    NotFoundError,
    SchemaNotFound,
)
from credgate.core.models import (
    CredentialCreate,
    CredentialUpdate,
    DecryptedCredential,
    ListOptions,
    parse_model,
)
from credgate.core.permissions import ProjectKind, ProjectRole, Scope, SharingRole
from credgate.core.time import utc_now
from credgate.core.types import (
    Credential,
    CredentialSummary,
    Project,
    ProjectRef,
    ProjectRelation,
    Sharing,
    UsableCredential,
    UsageContext,
    User,
)
from credgate.credentials.access import AccessResolver
from credgate.credentials.hooks import CredentialHooks, HookEvent
from credgate.credentials.projects import ProjectDirectory
from credgate.credentials.redaction import RedactionEngine
from credgate.credentials.schema import TypeSchemaResolver
from credgate.credentials.store import CredentialQuery, CredentialStore
from credgate.credentials.tester import CredentialTester, CredentialTestResult
from credgate.credentials.transfer import TransferCoordinator, TransferResult
from credgate.security.audit import AuditLogger
from credgate.security.cipher import Cipher

logger = logging.getLogger(__name__)

OAUTH_TOKEN_FIELD = "oauthTokenData"


def _not_found(credential_id: str) -> NotFoundError:
    return NotFoundError(f'Credential with ID "{credential_id}" could not be found.')


def _ref(project: Project) -> ProjectRef:
    return ProjectRef(id=project.id, name=project.name, kind=project.kind)


class CredentialService:
    def __init__(
        self,
        *,
        db: Database,
        store: CredentialStore,
        directory: ProjectDirectory,
        access: AccessResolver,
        cipher: Cipher,
        redaction: RedactionEngine,
        resolver: TypeSchemaResolver,
        transfer: TransferCoordinator,
        audit: AuditLogger,
        hooks: CredentialHooks | None = None,
        tester: CredentialTester | None = None,
    ):
        self._db = db
        self._store = store
        self._directory = directory
        self._access = access
        self._cipher = cipher
        self._redaction = redaction
        self._resolver = resolver
        self._transfer = transfer
        self._audit = audit
        self._hooks = hooks or CredentialHooks()
        self._tester = tester

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_many(self, user: User, options: ListOptions | Mapping[str, Any] | None = None) -> list[CredentialSummary]:
        opts = parse_model(ListOptions, options or {})
        flt = opts.filter
        relations = self._directory.project_relations_for_user(user.id)
        project_id = flt.project_id

        ids: frozenset[str] | None
        if user.has_global_scope(Scope.CREDENTIAL_LIST):
            # Listing "my" credentials as an admin means listing all of them.
            if opts.include_scopes and project_id is not None:
                if any(r.project_id == project_id and r.role == ProjectRole.PERSONAL_OWNER for r in relations):
                    project_id = None
            ids = None
        else:
            if project_id is not None:
                project_id = self._own_personal_project_if_foreign(user, project_id)
            ids = frozenset(self._access.credential_ids_for_user(user))

        credentials = self._store.find_many(
            CredentialQuery(project_id=project_id, name=flt.name, type=flt.type, ids=ids)
        )
        return self._summarize(user, credentials, relations, include_scopes=opts.include_scopes)

    def _own_personal_project_if_foreign(self, user: User, project_id: str) -> str:
        """Collaborators never list another user's personal project by id."""
        project = self._directory.get_project(project_id)
        if project is None or project.kind != ProjectKind.PERSONAL:
            return project_id
        own = self._directory.get_personal_project_or_fail(user.id)
        if own.id != project_id:
            logger.debug(
                "personal_project_filter_rewritten",
                extra={"user_id": user.id, "requested_project_id": project_id},
            )
        return own.id

    def _summarize(
        self,
        user: User,
        credentials: Sequence[Credential],
        relations: Sequence[ProjectRelation],
        *,
        include_scopes: bool,
    ) -> list[CredentialSummary]:
        if not credentials:
            return []
        # All relations of each credential, not just the one the filter matched.
        sharings = self._store.find_sharings(credential_ids=[c.id for c in credentials])
        projects = self._directory.get_projects({s.project_id for s in sharings})
        by_credential: dict[str, list[Sharing]] = defaultdict(list)
        for s in sharings:
            by_credential[s.credential_id].append(s)

        out: list[CredentialSummary] = []
        for credential in credentials:
            own = by_credential.get(credential.id, [])
            home = next((s for s in own if s.role == SharingRole.OWNER), None)
            summary = replace(
                CredentialSummary.from_credential(credential),
                home_project=_ref(projects[home.project_id]) if home and home.project_id in projects else None,
                shared_with_projects=tuple(
                    _ref(projects[s.project_id])
                    for s in own
                    if s.role != SharingRole.OWNER and s.project_id in projects
                ),
            )
            if include_scopes:
                summary = self._access.add_scopes(summary, user, own, relations)
            out.append(summary)
        return out

    def get_one(self, user: User, credential_id: str, include_decrypted: bool = False) -> CredentialSummary:
        """Metadata with `credential:read`; decrypted, redacted data with `credential:update`."""
        sharing = None
        if include_decrypted:
            sharing = self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_UPDATE,))
        decrypted = sharing is not None
        if sharing is None:
            sharing = self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_READ,))
        if sharing is None:
            raise _not_found(credential_id)

        credential = self._store.find_credential(credential_id)
        if credential is None:
            raise _not_found(credential_id)

        relations = self._directory.project_relations_for_user(user.id)
        summary = self._summarize(user, [credential], relations, include_scopes=True)[0]
        if decrypted:
            summary = replace(summary, data=self.redact(self.decrypt(credential), credential))
        return summary

    def get_credential_scopes(self, user: User, credential_id: str) -> tuple[str, ...]:
        return self._access.scopes_for(user, credential_id)

    def get_credentials_a_user_can_use_in_a_workflow(
        self,
        user: User,
        context: UsageContext,
    ) -> list[UsableCredential]:
        ids = self._access.usable_credential_ids(user, context)
        credentials = self._store.find_credentials(ids)
        if not credentials:
            return []
        sharings = self._store.find_sharings(credential_ids=ids)
        relations = self._directory.project_relations_for_user(user.id)
        return [
            UsableCredential(
                id=c.id,
                name=c.name,
                type=c.type,
                scopes=self._access.merge_scopes(
                    user, [s for s in sharings if s.credential_id == c.id], relations
                ),
                is_managed=c.is_managed,
            )
            for c in credentials
        ]

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def create(self, data: CredentialCreate | Mapping[str, Any], user: User) -> CredentialSummary:
        payload = parse_model(CredentialCreate, dict(data) if isinstance(data, Mapping) else data)
        self._require_known_type(payload.type)
        # Nothing was ever redacted for a new credential; sentinels have nothing to stand for.
        plain = self.unredact(payload.data, {})

        with self._db.transaction() as t:
            if payload.project_id is not None:
                project = self._directory.get_project_with_scope(
                    user, payload.project_id, (Scope.CREDENTIAL_CREATE,), trx=t
                )
                if project is None:
                    raise BadRequestError(
                        "You don't have the permissions to save the credential in this project.",
                        code="credential.project_forbidden",
                    )
            else:
                project = self._directory.get_personal_project_or_fail(user.id, trx=t)

            credential_id = str(uuid.uuid4())
            now = utc_now()
            credential = Credential(
                id=credential_id,
                name=payload.name,
                type=payload.type,
                data=self._cipher.encrypt(plain, credential_id, payload.type),
                is_managed=payload.is_managed,
                created_at=now,
                updated_at=now,
            )
            self._hooks.run(HookEvent.CREATE, credential, user)
            credential = self._store.create_credential(credential, trx=t)
            self._store.create_sharing(
                Sharing(credential_id=credential_id, project_id=project.id, role=SharingRole.OWNER), trx=t
            )
            self._audit.log_action(
                "credential.create",
                user.id,
                {"credential_id": credential_id, "credential_type": payload.type, "project_id": project.id},
                trx=t,
            )

        logger.info(
            "credential_created",
            extra={"credential_id": credential_id, "credential_type": payload.type, "project_id": project.id},
        )
        return replace(
            CredentialSummary.from_credential(credential),
            home_project=_ref(project),
            scopes=self._access.scopes_for(user, credential_id),
        )

    def update(
        self,
        credential_id: str,
        data: CredentialUpdate | Mapping[str, Any],
        user: User,
    ) -> CredentialSummary:
        """Apply a (possibly redacted) edit.

        Sentinels are restored from the stored payload; stored OAuth token data
        survives unless the edit carries new token data of its own.
        """
        payload = parse_model(CredentialUpdate, dict(data) if isinstance(data, Mapping) else data)

        with self._db.transaction() as t:
            if self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_UPDATE,), trx=t) is None:
                raise _not_found(credential_id)
            current = self._store.find_credential(credential_id, trx=t)
            if current is None:
                raise _not_found(credential_id)

            saved = self.decrypt(current)
            new_type = payload.type or current.type
            if new_type != current.type:
                self._require_known_type(new_type)

            if payload.data is None:
                merged = saved
            else:
                merged = self.unredact(payload.data, saved)
                self._keep_oauth_token(merged, saved)

            # Same rules as a fresh submission.
            checked = parse_model(
                CredentialCreate,
                {"name": payload.name or current.name, "type": new_type, "data": merged},
            )

            candidate = replace(
                current,
                name=checked.name,
                type=checked.type,
                data=self._cipher.encrypt(checked.data, credential_id, checked.type),
            )
            self._hooks.run(HookEvent.UPDATE, candidate, user)
            updated = self._store.update_credential(
                credential_id, name=candidate.name, type=candidate.type, data=candidate.data, trx=t
            )
            self._audit.log_action(
                "credential.update",
                user.id,
                {
                    "credential_id": credential_id,
                    "credential_type": updated.type,
                    "fields": sorted(k for k in checked.data if checked.data.get(k) != saved.get(k)),
                },
                trx=t,
            )

        logger.info("credential_updated", extra={"credential_id": credential_id, "credential_type": updated.type})
        relations = self._directory.project_relations_for_user(user.id)
        return self._summarize(user, [updated], relations, include_scopes=True)[0]

    @staticmethod
    def _keep_oauth_token(merged: dict[str, Any], saved: Mapping[str, Any]) -> None:
        if OAUTH_TOKEN_FIELD in saved and not merged.get(OAUTH_TOKEN_FIELD):
            merged[OAUTH_TOKEN_FIELD] = copy.deepcopy(saved[OAUTH_TOKEN_FIELD])

    def delete(self, credential: Credential | str, user: User | None = None) -> None:
        """Remove a credential. Its sharings go with it.

        With `user`, the caller must hold `credential:delete`.
        """
        credential_id = credential if isinstance(credential, str) else credential.id
        with self._db.transaction() as t:
            if user is not None and self._access.get_sharing(
                user, credential_id, (Scope.CREDENTIAL_DELETE,), trx=t
            ) is None:
                raise _not_found(credential_id)
            current = self._store.find_credential(credential_id, trx=t)
            if current is None:
                raise _not_found(credential_id)

            self._hooks.run(HookEvent.DELETE, current, user)
            self._store.delete_credential(credential_id, trx=t)
            self._audit.log_action(
                "credential.delete",
                user.id if user else None,
                {"credential_id": credential_id, "credential_type": current.type},
                trx=t,
            )
        logger.info("credential_deleted", extra={"credential_id": credential_id})

    def share(self, user: User, credential_id: str, project_ids: Iterable[str]) -> list[Sharing]:
        """Grant `user`-role access to each project that has no relation yet."""
        wanted = list(dict.fromkeys(project_ids))
        with self._db.transaction() as t:
            if self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_SHARE,), trx=t) is None:
                raise _not_found(credential_id)
            found = self._directory.get_projects(wanted, trx=t)
            missing = [pid for pid in wanted if pid not in found]
            if missing:
                raise NotFoundError(
                    f"Projects could not be found: {', '.join(missing)}", code="project.not_found"
                )

            related = {s.project_id for s in self._store.find_sharings(credential_ids=[credential_id], trx=t)}
            added = [
                Sharing(credential_id=credential_id, project_id=pid, role=SharingRole.USER)
                for pid in wanted
                if pid not in related
            ]
            self._store.insert_sharings(added, trx=t)
            if added:
                self._audit.log_action(
                    "credential.share",
                    user.id,
                    {"credential_id": credential_id, "project_ids": [s.project_id for s in added]},
                    trx=t,
                )
        logger.info("credential_shared", extra={"credential_id": credential_id, "added": len(added)})
        return added

    def unshare(self, user: User, credential_id: str, project_id: str) -> None:
        with self._db.transaction() as t:
            if self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_SHARE,), trx=t) is None:
                raise _not_found(credential_id)
            rows = self._store.find_sharings(credential_ids=[credential_id], project_ids=[project_id], trx=t)
            if not rows:
                raise NotFoundError(
                    f'Credential "{credential_id}" is not shared with project "{project_id}".',
                    code="sharing.not_found",
                )
            if rows[0].role == SharingRole.OWNER:
                raise BadRequestError("The owning project cannot be unshared; move the credential instead")
            self._store.delete_sharings([credential_id], project_id, trx=t)
            self._audit.log_action(
                "credential.unshare",
                user.id,
                {"credential_id": credential_id, "project_id": project_id},
                trx=t,
            )
        logger.info("credential_unshared", extra={"credential_id": credential_id, "project_id": project_id})

    def move(self, user: User, credential_id: str, to_project_id: str) -> str:
        """Hand ownership to another project. Returns the previous owner project id."""
        with self._db.transaction() as t:
            if self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_MOVE,), trx=t) is None:
                raise _not_found(credential_id)
            target = self._directory.get_project_with_scope(
                user, to_project_id, (Scope.CREDENTIAL_CREATE,), trx=t
            )
            if target is None:
                if self._directory.get_project(to_project_id, trx=t) is None:
                    raise NotFoundError(
                        f'Project with ID "{to_project_id}" could not be found.', code="project.not_found"
                    )
                raise ForbiddenError(
                    "You don't have the permissions to move the credential into this project.",
                    code="credential.project_forbidden",
                )
            previous = self._transfer.transfer_one(credential_id, to_project_id, trx=t)
            self._audit.log_action(
                "credential.move",
                user.id,
                {"credential_id": credential_id, "from_project_id": previous, "to_project_id": to_project_id},
                trx=t,
            )
        logger.info(
            "credential_moved",
            extra={"credential_id": credential_id, "from_project_id": previous, "to_project_id": to_project_id},
        )
        return previous

    def transfer_all(self, from_project_id: str, to_project_id: str, actor: User | None = None) -> TransferResult:
        return self._transfer.transfer_all(
            from_project_id, to_project_id, actor=actor.id if actor else None
        )

    # ------------------------------------------------------------------
    # testing
    # ------------------------------------------------------------------

    def test(self, user: User, credentials: DecryptedCredential | Mapping[str, Any]) -> CredentialTestResult:
        if self._tester is None:
            raise ConfigError("No credential tester is configured")
        raw = dict(credentials) if isinstance(credentials, Mapping) else credentials
        decrypted = parse_model(DecryptedCredential, raw)
        return self._tester.test_credentials(user, decrypted.type, decrypted)

    def prepare_test_data(
        self,
        user: User,
        credential_id: str,
        submitted: Mapping[str, Any] | None = None,
    ) -> DecryptedCredential:
        """Build the plaintext a tester should see.

        Editors get their submission with sentinels restored; readers cannot
        change what gets tested, so they get the stored data.
        """
        if self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_READ,)) is None:
            raise _not_found(credential_id)
        credential = self._store.find_credential(credential_id)
        if credential is None:
            raise _not_found(credential_id)

        saved = self.decrypt(credential)
        can_update = self._access.get_sharing(user, credential_id, (Scope.CREDENTIAL_UPDATE,)) is not None
        if submitted is not None and can_update:
            data = self.unredact(dict(submitted), saved)
        else:
            data = saved
        return DecryptedCredential(id=credential.id, name=credential.name, type=credential.type, data=data)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def decrypt(self, credential: Credential) -> dict[str, Any]:
        return self._cipher.decrypt(credential.data, credential_id=credential.id, credential_type=credential.type)

    def redact(self, data: dict[str, Any], credential: Credential) -> dict[str, Any]:
        return self._redaction.redact(data, credential)

    def unredact(self, data: dict[str, Any], saved: dict[str, Any]) -> dict[str, Any]:
        return self._redaction.unredact(data, saved)

    def _require_known_type(self, type_name: str) -> None:
        try:
            self._resolver.resolve(type_name)
        except SchemaNotFound as e:
            raise BadRequestError(f"Unknown credential type: {e.type_name}", code="credential_type.not_found") from e
