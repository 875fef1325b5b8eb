"""credgate.credentials.access

Who can reach which credential, and with what scopes.

Two sides have to agree before a credential is usable in a workflow: the
caller must be able to read it, and the workflow's (or project's) owning
context must be able to read it. Either side alone is not enough, otherwise
a shared workflow would launder access to its owner's credentials.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace

from credgate.core.database import Transaction
from credgate.core.exceptions import NotFoundError
from credgate.core.permissions import (
    Scope,
    SharingRole,
    combined_scopes,
    global_scopes,
    project_roles_with,
    sharing_roles_with,
)
from credgate.core.types import (
    CredentialSummary,
    ProjectContext,
    ProjectRelation,
    Sharing,
    UsageContext,
    User,
    WorkflowContext,
)
from credgate.credentials.projects import ProjectDirectory
from credgate.credentials.store import CredentialStore

logger = logging.getLogger(__name__)

READ = (Scope.CREDENTIAL_READ,)


class AccessResolver:
    def __init__(self, store: CredentialStore, directory: ProjectDirectory):
        self._store = store
        self._directory = directory

    def credential_ids_for_user(
        self,
        user: User,
        scopes: Sequence[Scope] = READ,
        *,
        trx: Transaction | None = None,
    ) -> set[str]:
        """Ids the user holds every scope in `scopes` over.

        Global holders reach everything, including every personal project.
        """
        if user.has_global_scope(*scopes):
            return self._store.all_credential_ids(trx=trx)
        return self._store.credential_ids_for_user(user.id, scopes, trx=trx)

    def credential_ids_for_context(self, context: UsageContext, *, trx: Transaction | None = None) -> set[str]:
        """Ids reachable from a workflow's projects, or from a project itself."""
        if isinstance(context, WorkflowContext):
            owner = self._directory.personal_owner_for_workflow(context.workflow_id, trx=trx)
            project_ids = self._directory.workflow_project_ids(context.workflow_id, trx=trx)
        elif isinstance(context, ProjectContext):
            if self._directory.get_project(context.project_id, trx=trx) is None:
                raise NotFoundError(
                    f'Project with ID "{context.project_id}" could not be found.',
                    code="project.not_found",
                )
            owner = self._directory.personal_owner_for_project(context.project_id, trx=trx)
            project_ids = [context.project_id]
        else:
            raise TypeError(f"unsupported usage context: {context!r}")

        if owner is not None and owner.has_global_scope(Scope.CREDENTIAL_READ):
            return self._store.all_personal_credential_ids(trx=trx)
        return self._store.credential_ids_for_projects(project_ids, trx=trx)

    def usable_credential_ids(
        self,
        user: User,
        context: UsageContext,
        *,
        trx: Transaction | None = None,
    ) -> set[str]:
        mine = self.credential_ids_for_user(user, READ, trx=trx)
        theirs = self.credential_ids_for_context(context, trx=trx)
        usable = mine & theirs
        logger.debug(
            "usable_credentials_resolved",
            extra={"user_id": user.id, "user_side": len(mine), "context_side": len(theirs), "usable": len(usable)},
        )
        return usable

    # --- scopes ---

    def scopes_for(self, user: User, credential_id: str, *, trx: Transaction | None = None) -> tuple[str, ...]:
        sharings = self._store.find_sharings(credential_ids=[credential_id], trx=trx)
        relations = self._directory.project_relations_for_user(user.id, trx=trx)
        return self.merge_scopes(user, sharings, relations)

    def add_scopes(
        self,
        summary: CredentialSummary,
        user: User,
        sharings: Iterable[Sharing],
        relations: Sequence[ProjectRelation],
    ) -> CredentialSummary:
        """Annotate a listing item without another round trip per credential.

        `sharings` may cover many credentials; only this one's rows count.
        """
        own = [s for s in sharings if s.credential_id == summary.id]
        return replace(summary, scopes=self.merge_scopes(user, own, relations))

    @staticmethod
    def merge_scopes(
        user: User,
        sharings: Iterable[Sharing],
        relations: Sequence[ProjectRelation],
    ) -> tuple[str, ...]:
        roles_by_project = {r.project_id: r.role for r in relations}
        held: set[str] = {str(s) for s in global_scopes(user.global_role)}
        for sharing in sharings:
            project_role = roles_by_project.get(sharing.project_id)
            if project_role is None:
                continue
            held |= {str(s) for s in combined_scopes(project_role, sharing.role)}
        return tuple(sorted(held))

    # --- sharing lookup ---

    def get_sharing(
        self,
        user: User,
        credential_id: str,
        scopes: Sequence[Scope],
        *,
        trx: Transaction | None = None,
    ) -> Sharing | None:
        """The sharing through which `user` holds every scope in `scopes`.

        Global holders see the credential through its owner sharing. Owner
        sharings win over lesser ones when several qualify.
        """
        if user.has_global_scope(*scopes):
            return self._store.find_owner_sharing(credential_id, trx=trx)

        project_roles = {str(r) for r in project_roles_with(scopes)}
        sharing_roles = {str(r) for r in sharing_roles_with(scopes)}
        if not project_roles or not sharing_roles:
            return None

        roles_by_project = {
            r.project_id: r.role for r in self._directory.project_relations_for_user(user.id, trx=trx)
        }
        candidates = [
            s
            for s in self._store.find_sharings(credential_ids=[credential_id], trx=trx)
            if s.role in sharing_roles and roles_by_project.get(s.project_id) in project_roles
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda s: (s.role != SharingRole.OWNER, s.project_id))
        return candidates[0]
