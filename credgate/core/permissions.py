"""credgate.core.permissions

Role-based scopes at three levels.

Global roles (instance-wide):
| Role   | create | read | update | delete | list | share | move |
|--------|--------|------|--------|--------|------|-------|------|
| owner  | yes    | yes  | yes    | yes    | yes  | yes   | yes  |
| admin  | yes    | yes  | yes    | yes    | yes  | yes   | yes  |
| member | no     | no   | no     | no     | no   | no    | no   |

Project roles (membership edge, user -> project):
| Role          | create | read | update | delete | share | move |
|---------------|--------|------|--------|--------|-------|------|
| personalOwner | yes    | yes  | yes    | yes    | yes   | yes  |
| admin         | yes    | yes  | yes    | yes    | yes   | yes  |
| editor        | yes    | yes  | yes    | yes    | no    | no   |
| viewer        | no     | yes  | no     | no     | no    | no   |

Sharing roles (project -> credential):
| Role   | read | update | delete | share | move |
|--------|------|--------|--------|-------|------|
| owner  | yes  | yes    | yes    | yes   | yes  |
| editor | yes  | yes    | no     | no    | no   |
| user   | yes  | no     | no     | no    | no   |

A scope held *through* a sharing requires both the project role and the
sharing role to grant it.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum


class Scope(StrEnum):
    CREDENTIAL_CREATE = "credential:create"
    CREDENTIAL_READ = "credential:read"
    CREDENTIAL_UPDATE = "credential:update"
    CREDENTIAL_DELETE = "credential:delete"
    CREDENTIAL_LIST = "credential:list"
    CREDENTIAL_SHARE = "credential:share"
    CREDENTIAL_MOVE = "credential:move"


class GlobalRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class ProjectRole(StrEnum):
    PERSONAL_OWNER = "personalOwner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class SharingRole(StrEnum):
    OWNER = "owner"
    EDITOR = "editor"
    USER = "user"


class ProjectKind(StrEnum):
    PERSONAL = "personal"
    TEAM = "team"


_GLOBAL_ROLE_SCOPES: dict[GlobalRole, frozenset[Scope]] = {
    GlobalRole.OWNER: frozenset(Scope),
    GlobalRole.ADMIN: frozenset(Scope),
    GlobalRole.MEMBER: frozenset(),
}

_PROJECT_ROLE_SCOPES: dict[ProjectRole, frozenset[Scope]] = {
    ProjectRole.PERSONAL_OWNER: frozenset(
        {
            Scope.CREDENTIAL_CREATE,
            Scope.CREDENTIAL_READ,
            Scope.CREDENTIAL_UPDATE,
            Scope.CREDENTIAL_DELETE,
            Scope.CREDENTIAL_SHARE,
            Scope.CREDENTIAL_MOVE,
        }
    ),
    ProjectRole.ADMIN: frozenset(
        {
            Scope.CREDENTIAL_CREATE,
            Scope.CREDENTIAL_READ,
            Scope.CREDENTIAL_UPDATE,
            Scope.CREDENTIAL_DELETE,
            Scope.CREDENTIAL_SHARE,
            Scope.CREDENTIAL_MOVE,
        }
    ),
    ProjectRole.EDITOR: frozenset(
        {
            Scope.CREDENTIAL_CREATE,
            Scope.CREDENTIAL_READ,
            Scope.CREDENTIAL_UPDATE,
            Scope.CREDENTIAL_DELETE,
        }
    ),
    ProjectRole.VIEWER: frozenset({Scope.CREDENTIAL_READ}),
}

_SHARING_ROLE_SCOPES: dict[SharingRole, frozenset[Scope]] = {
    SharingRole.OWNER: frozenset(
        {
            Scope.CREDENTIAL_READ,
            Scope.CREDENTIAL_UPDATE,
            Scope.CREDENTIAL_DELETE,
            Scope.CREDENTIAL_SHARE,
            Scope.CREDENTIAL_MOVE,
        }
    ),
    SharingRole.EDITOR: frozenset({Scope.CREDENTIAL_READ, Scope.CREDENTIAL_UPDATE}),
    SharingRole.USER: frozenset({Scope.CREDENTIAL_READ}),
}


def global_scopes(role: str) -> frozenset[Scope]:
    """Scopes granted instance-wide. Unknown roles get nothing."""
    try:
        r = GlobalRole(role)
    except ValueError:
        return frozenset()
    return _GLOBAL_ROLE_SCOPES.get(r, frozenset())


def project_role_scopes(role: str) -> frozenset[Scope]:
    try:
        r = ProjectRole(role)
    except ValueError:
        return frozenset()
    return _PROJECT_ROLE_SCOPES.get(r, frozenset())


def sharing_role_scopes(role: str) -> frozenset[Scope]:
    try:
        r = SharingRole(role)
    except ValueError:
        return frozenset()
    return _SHARING_ROLE_SCOPES.get(r, frozenset())


def has_global_scopes(role: str, scopes: Iterable[Scope]) -> bool:
    """True if the global role grants every scope in `scopes`."""
    held = global_scopes(role)
    return all(s in held for s in scopes)


def combined_scopes(project_role: str, sharing_role: str) -> frozenset[Scope]:
    """Scopes held over a credential through one (membership, sharing) pair."""
    return project_role_scopes(project_role) & sharing_role_scopes(sharing_role)


def project_roles_with(scopes: Iterable[Scope]) -> list[ProjectRole]:
    wanted = set(scopes)
    return [r for r, granted in _PROJECT_ROLE_SCOPES.items() if wanted <= granted]


def sharing_roles_with(scopes: Iterable[Scope]) -> list[SharingRole]:
    wanted = set(scopes)
    return [r for r, granted in _SHARING_ROLE_SCOPES.items() if wanted <= granted]
