"""credgate.core.types

Lightweight dataclasses for hot-path objects.

Pydantic models own IO boundaries; dataclasses keep runtime lean.
Every instance here is a value copied per request: mutate by `replace()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from credgate.core.permissions import GlobalRole, Scope, has_global_scopes


@dataclass(frozen=True, slots=True)
class User:
    id: str
    email: str
    global_role: str = GlobalRole.MEMBER

    def has_global_scope(self, *scopes: Scope) -> bool:
        return has_global_scopes(self.global_role, scopes)


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    name: str
    kind: str  # personal|team


@dataclass(frozen=True, slots=True)
class ProjectRelation:
    project_id: str
    user_id: str
    role: str  # personalOwner|admin|editor|viewer


@dataclass(frozen=True, slots=True)
class Credential:
    id: str
    name: str
    type: str
    data: str  # encrypted blob, opaque outside the cipher
    is_managed: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Sharing:
    credential_id: str
    project_id: str
    role: str  # owner|editor|user


@dataclass(frozen=True, slots=True)
class Workflow:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class CredentialField:
    name: str
    is_password: bool = False
    no_data_expression: bool = False

    @property
    def is_expression_allowed(self) -> bool:
        return not self.no_data_expression


@dataclass(frozen=True, slots=True)
class CredentialTypeSchema:
    name: str
    properties: tuple[CredentialField, ...] = ()
    extends: tuple[str, ...] = ()
    display_name: str | None = None


@dataclass(frozen=True, slots=True)
class WorkflowContext:
    workflow_id: str


@dataclass(frozen=True, slots=True)
class ProjectContext:
    project_id: str


UsageContext = WorkflowContext | ProjectContext


@dataclass(frozen=True, slots=True)
class ProjectRef:
    id: str
    name: str
    kind: str


@dataclass(frozen=True, slots=True)
class CredentialSummary:
    """What a caller is allowed to see of a credential. Never carries the blob."""

    id: str
    name: str
    type: str
    is_managed: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    home_project: ProjectRef | None = None
    shared_with_projects: tuple[ProjectRef, ...] = ()
    scopes: tuple[str, ...] | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def from_credential(cls, credential: Credential) -> CredentialSummary:
        return cls(
            id=credential.id,
            name=credential.name,
            type=credential.type,
            is_managed=credential.is_managed,
            created_at=credential.created_at,
            updated_at=credential.updated_at,
        )


@dataclass(frozen=True, slots=True)
class UsableCredential:
    id: str
    name: str
    type: str
    scopes: tuple[str, ...] = field(default_factory=tuple)
    is_managed: bool = False
