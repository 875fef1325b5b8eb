"""credgate.credentials.projects

The project-membership graph: users, projects, who belongs where, and
which projects a workflow lives in.

Invariant: a personal project has exactly one member, its `personalOwner`.
`create_user` creates both in one transaction; nothing else may add members
to a personal project.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable

from credgate.core.database import Database, Transaction
from credgate.core.exceptions import BadRequestError, InvariantViolation, NotFoundError
from credgate.core.permissions import GlobalRole, ProjectKind, ProjectRole, Scope, project_roles_with
from credgate.core.types import Project, ProjectRelation, User, Workflow


def _row_to_user(row: sqlite3.Row) -> User:
    return User(id=str(row["id"]), email=str(row["email"]), global_role=str(row["global_role"]))


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(id=str(row["id"]), name=str(row["name"]), kind=str(row["kind"]))


class ProjectDirectory:
    def __init__(self, db: Database):
        self._db = db

    # --- users ---

    def create_user(
        self,
        email: str,
        global_role: str = GlobalRole.MEMBER,
        *,
        user_id: str | None = None,
        trx: Transaction | None = None,
    ) -> User:
        """Create a user together with their personal project."""
        user = User(id=user_id or str(uuid.uuid4()), email=email, global_role=str(GlobalRole(global_role)))
        project_id = str(uuid.uuid4())
        with self._db.using(trx) as t:
            try:
                t.execute(
                    "INSERT INTO users (id, email, global_role) VALUES (?, ?, ?)",
                    (user.id, user.email, user.global_role),
                )
            except sqlite3.IntegrityError as e:
                raise BadRequestError(f"user already exists: {email}", code="user.duplicate") from e
            t.execute(
                "INSERT INTO projects (id, name, kind) VALUES (?, ?, ?)",
                (project_id, f"{email} <personal>", str(ProjectKind.PERSONAL)),
            )
            t.execute(
                "INSERT INTO project_relations (project_id, user_id, role) VALUES (?, ?, ?)",
                (project_id, user.id, str(ProjectRole.PERSONAL_OWNER)),
            )
        return user

    def get_user(self, user_id: str, *, trx: Transaction | None = None) -> User | None:
        row = (trx or self._db).execute(
            "SELECT id, email, global_role FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return None if row is None else _row_to_user(row)

    # --- projects ---

    def create_team_project(
        self,
        name: str,
        *,
        project_id: str | None = None,
        admins: Iterable[User] = (),
        trx: Transaction | None = None,
    ) -> Project:
        project = Project(id=project_id or str(uuid.uuid4()), name=name, kind=str(ProjectKind.TEAM))
        with self._db.using(trx) as t:
            t.execute(
                "INSERT INTO projects (id, name, kind) VALUES (?, ?, ?)",
                (project.id, project.name, project.kind),
            )
            for admin in admins:
                self.add_member(project.id, admin.id, ProjectRole.ADMIN, trx=t)
        return project

    def add_member(
        self,
        project_id: str,
        user_id: str,
        role: str,
        *,
        trx: Transaction | None = None,
    ) -> ProjectRelation:
        role = str(ProjectRole(role))
        if role == ProjectRole.PERSONAL_OWNER:
            raise BadRequestError("personalOwner is assigned only when a user is created")

        with self._db.using(trx) as t:
            project = self.get_project(project_id, trx=t)
            if project is None:
                raise NotFoundError(f'Project with ID "{project_id}" could not be found.', code="project.not_found")
            if project.kind == ProjectKind.PERSONAL:
                raise BadRequestError("personal projects cannot have additional members")
            try:
                t.execute(
                    """
                    INSERT INTO project_relations (project_id, user_id, role) VALUES (?, ?, ?)
                    ON CONFLICT(project_id, user_id) DO UPDATE SET role = excluded.role
                    """,
                    (project_id, user_id, role),
                )
            except sqlite3.IntegrityError as e:
                raise NotFoundError(f'User with ID "{user_id}" could not be found.', code="user.not_found") from e
        return ProjectRelation(project_id=project_id, user_id=user_id, role=role)

    def remove_member(self, project_id: str, user_id: str, *, trx: Transaction | None = None) -> bool:
        with self._db.using(trx) as t:
            cur = t.execute(
                "DELETE FROM project_relations WHERE project_id = ? AND user_id = ? AND role != ?",
                (project_id, user_id, str(ProjectRole.PERSONAL_OWNER)),
            )
        return cur.rowcount > 0

    def get_project(self, project_id: str, *, trx: Transaction | None = None) -> Project | None:
        row = (trx or self._db).execute(
            "SELECT id, name, kind FROM projects WHERE id = ?", (project_id,)
        ).fetchone()
        return None if row is None else _row_to_project(row)

    def get_projects(self, project_ids: Iterable[str], *, trx: Transaction | None = None) -> dict[str, Project]:
        ids = sorted(set(project_ids))
        if not ids:
            return {}
        marks = ",".join("?" for _ in ids)
        rows = (trx or self._db).execute(
            f"SELECT id, name, kind FROM projects WHERE id IN ({marks})", ids
        ).fetchall()
        return {str(r["id"]): _row_to_project(r) for r in rows}

    def get_personal_project(self, user_id: str, *, trx: Transaction | None = None) -> Project | None:
        row = (trx or self._db).execute(
            """
            SELECT p.id, p.name, p.kind
            FROM projects p
            JOIN project_relations pr ON pr.project_id = p.id
            WHERE pr.user_id = ? AND pr.role = ? AND p.kind = ?
            """,
            (user_id, str(ProjectRole.PERSONAL_OWNER), str(ProjectKind.PERSONAL)),
        ).fetchone()
        return None if row is None else _row_to_project(row)

    def get_personal_project_or_fail(self, user_id: str, *, trx: Transaction | None = None) -> Project:
        project = self.get_personal_project(user_id, trx=trx)
        if project is None:
            raise InvariantViolation(f"No personal project found for user {user_id}")
        return project

    def project_relations_for_user(self, user_id: str, *, trx: Transaction | None = None) -> list[ProjectRelation]:
        rows = (trx or self._db).execute(
            "SELECT project_id, user_id, role FROM project_relations WHERE user_id = ? ORDER BY project_id",
            (user_id,),
        ).fetchall()
        return [
            ProjectRelation(project_id=str(r["project_id"]), user_id=str(r["user_id"]), role=str(r["role"]))
            for r in rows
        ]

    def get_project_with_scope(
        self,
        user: User,
        project_id: str,
        scopes: Iterable[Scope],
        *,
        trx: Transaction | None = None,
    ) -> Project | None:
        """The project, if `user` holds every scope in it (globally or by role)."""
        wanted = list(scopes)
        if user.has_global_scope(*wanted):
            return self.get_project(project_id, trx=trx)

        roles = [str(r) for r in project_roles_with(wanted)]
        if not roles:
            return None
        marks = ",".join("?" for _ in roles)
        row = (trx or self._db).execute(
            f"""
            SELECT p.id, p.name, p.kind
            FROM projects p
            JOIN project_relations pr ON pr.project_id = p.id
            WHERE p.id = ? AND pr.user_id = ? AND pr.role IN ({marks})
            """,
            (project_id, user.id, *roles),
        ).fetchone()
        return None if row is None else _row_to_project(row)

    def personal_owner_for_project(self, project_id: str, *, trx: Transaction | None = None) -> User | None:
        """The owning user of a personal project. None for team projects."""
        row = (trx or self._db).execute(
            """
            SELECT u.id, u.email, u.global_role
            FROM users u
            JOIN project_relations pr ON pr.user_id = u.id
            JOIN projects p ON p.id = pr.project_id
            WHERE p.id = ? AND p.kind = ? AND pr.role = ?
            """,
            (project_id, str(ProjectKind.PERSONAL), str(ProjectRole.PERSONAL_OWNER)),
        ).fetchone()
        return None if row is None else _row_to_user(row)

    # --- workflows ---

    def create_workflow(
        self,
        name: str,
        project_id: str,
        *,
        workflow_id: str | None = None,
        trx: Transaction | None = None,
    ) -> Workflow:
        workflow = Workflow(id=workflow_id or str(uuid.uuid4()), name=name)
        with self._db.using(trx) as t:
            if self.get_project(project_id, trx=t) is None:
                raise NotFoundError(f'Project with ID "{project_id}" could not be found.', code="project.not_found")
            t.execute("INSERT INTO workflows (id, name) VALUES (?, ?)", (workflow.id, workflow.name))
            t.execute(
                "INSERT INTO shared_workflows (workflow_id, project_id, role) VALUES (?, ?, 'owner')",
                (workflow.id, project_id),
            )
        return workflow

    def share_workflow(self, workflow_id: str, project_id: str, *, trx: Transaction | None = None) -> None:
        with self._db.using(trx) as t:
            t.execute(
                """
                INSERT INTO shared_workflows (workflow_id, project_id, role) VALUES (?, ?, 'editor')
                ON CONFLICT(workflow_id, project_id) DO NOTHING
                """,
                (workflow_id, project_id),
            )

    def workflow_project_ids(self, workflow_id: str, *, trx: Transaction | None = None) -> list[str]:
        rows = (trx or self._db).execute(
            "SELECT project_id FROM shared_workflows WHERE workflow_id = ? ORDER BY project_id",
            (workflow_id,),
        ).fetchall()
        return [str(r["project_id"]) for r in rows]

    def personal_owner_for_workflow(self, workflow_id: str, *, trx: Transaction | None = None) -> User | None:
        """The user whose personal project owns the workflow, if any."""
        row = (trx or self._db).execute(
            """
            SELECT u.id, u.email, u.global_role
            FROM shared_workflows sw
            JOIN projects p ON p.id = sw.project_id
            JOIN project_relations pr ON pr.project_id = p.id
            JOIN users u ON u.id = pr.user_id
            WHERE sw.workflow_id = ? AND sw.role = 'owner'
              AND p.kind = ? AND pr.role = ?
            """,
            (workflow_id, str(ProjectKind.PERSONAL), str(ProjectRole.PERSONAL_OWNER)),
        ).fetchone()
        return None if row is None else _row_to_user(row)
