"""credgate.credentials.store

Credential rows and the sharing edges that hang off them.

The store knows nothing about users or plaintext: it moves encrypted blobs
and (credential, project, role) triples. Every write accepts an optional
transaction handle so callers can compose several steps into one commit.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from credgate.core.database import Database, Transaction
from credgate.core.exceptions import InvariantViolation, NotFoundError
from credgate.core.permissions import (
    ProjectKind,
    Scope,
    SharingRole,
    project_roles_with,
    sharing_roles_with,
)
from credgate.core.time import parse_dt, to_iso, utc_now
from credgate.core.types import Credential, Sharing


def _row_to_credential(row: sqlite3.Row) -> Credential:
    return Credential(
        id=str(row["id"]),
        name=str(row["name"]),
        type=str(row["type"]),
        data=str(row["data"]),
        is_managed=bool(row["is_managed"]),
        created_at=parse_dt(str(row["created_at"])),
        updated_at=parse_dt(str(row["updated_at"])),
    )


def _row_to_sharing(row: sqlite3.Row) -> Sharing:
    return Sharing(
        credential_id=str(row["credential_id"]),
        project_id=str(row["project_id"]),
        role=str(row["role"]),
    )


def _marks(values: Sequence[object]) -> str:
    return ",".join("?" for _ in values)


@dataclass(frozen=True, slots=True)
class CredentialQuery:
    """Listing filter. `ids=None` means unrestricted; an empty set matches nothing."""

    project_id: str | None = None
    name: str | None = None
    type: str | None = None
    ids: frozenset[str] | None = None


_CREDENTIAL_COLUMNS = "c.id, c.name, c.type, c.data, c.is_managed, c.created_at, c.updated_at"


class CredentialStore:
    def __init__(self, db: Database):
        self._db = db

    # --- credentials ---

    def create_credential(self, credential: Credential, *, trx: Transaction | None = None) -> Credential:
        now = utc_now()
        created = credential.created_at or now
        updated = credential.updated_at or now
        with self._db.using(trx) as t:
            t.execute(
                """
                INSERT INTO credentials (id, name, type, data, is_managed, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    credential.id,
                    credential.name,
                    credential.type,
                    credential.data,
                    int(credential.is_managed),
                    to_iso(created),
                    to_iso(updated),
                ),
            )
        return Credential(
            id=credential.id,
            name=credential.name,
            type=credential.type,
            data=credential.data,
            is_managed=credential.is_managed,
            created_at=created,
            updated_at=updated,
        )

    def find_credential(self, credential_id: str, *, trx: Transaction | None = None) -> Credential | None:
        row = (trx or self._db).execute(
            f"SELECT {_CREDENTIAL_COLUMNS} FROM credentials c WHERE c.id = ?",
            (credential_id,),
        ).fetchone()
        return None if row is None else _row_to_credential(row)

    def find_credentials(self, credential_ids: Iterable[str], *, trx: Transaction | None = None) -> list[Credential]:
        ids = sorted(set(credential_ids))
        if not ids:
            return []
        rows = (trx or self._db).execute(
            f"SELECT {_CREDENTIAL_COLUMNS} FROM credentials c WHERE c.id IN ({_marks(ids)}) ORDER BY c.name, c.id",
            ids,
        ).fetchall()
        return [_row_to_credential(r) for r in rows]

    def find_many(self, query: CredentialQuery | None = None, *, trx: Transaction | None = None) -> list[Credential]:
        query = query or CredentialQuery()
        if query.ids is not None and not query.ids:
            return []

        sql = f"SELECT DISTINCT {_CREDENTIAL_COLUMNS} FROM credentials c"
        params: list[object] = []
        if query.project_id is not None:
            sql += " JOIN shared_credentials sc ON sc.credential_id = c.id AND sc.project_id = ?"
            params.append(query.project_id)
        sql += " WHERE 1=1"
        if query.name:
            sql += " AND lower(c.name) LIKE ? ESCAPE '\\'"
            escaped = query.name.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            params.append(f"%{escaped}%")
        if query.type:
            sql += " AND c.type = ?"
            params.append(query.type)
        if query.ids is not None:
            ids = sorted(query.ids)
            sql += f" AND c.id IN ({_marks(ids)})"
            params.extend(ids)
        sql += " ORDER BY c.name, c.id"

        rows = (trx or self._db).execute(sql, params).fetchall()
        return [_row_to_credential(r) for r in rows]

    def update_credential(
        self,
        credential_id: str,
        *,
        name: str,
        type: str,
        data: str,
        trx: Transaction | None = None,
    ) -> Credential:
        with self._db.using(trx) as t:
            cur = t.execute(
                "UPDATE credentials SET name = ?, type = ?, data = ?, updated_at = ? WHERE id = ?",
                (name, type, data, to_iso(utc_now()), credential_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f'Credential with ID "{credential_id}" could not be found.')
            updated = self.find_credential(credential_id, trx=t)
        if updated is None:
            raise NotFoundError(f'Credential with ID "{credential_id}" could not be found.')
        return updated

    def delete_credential(self, credential_id: str, *, trx: Transaction | None = None) -> bool:
        """Delete the row. Sharing rows go with it (ON DELETE CASCADE)."""
        with self._db.using(trx) as t:
            cur = t.execute("DELETE FROM credentials WHERE id = ?", (credential_id,))
        return cur.rowcount > 0

    def count_credentials(self) -> int:
        row = self._db.execute("SELECT count(*) FROM credentials").fetchone()
        return int(row[0]) if row else 0

    def all_credential_ids(self, *, trx: Transaction | None = None) -> set[str]:
        rows = (trx or self._db).execute("SELECT id FROM credentials").fetchall()
        return {str(r["id"]) for r in rows}

    # --- sharing ---

    def create_sharing(self, sharing: Sharing, *, trx: Transaction | None = None) -> Sharing:
        with self._db.using(trx) as t:
            t.execute(
                "INSERT INTO shared_credentials (credential_id, project_id, role) VALUES (?, ?, ?)",
                (sharing.credential_id, sharing.project_id, str(SharingRole(sharing.role))),
            )
        return sharing

    def insert_sharings(self, sharings: Sequence[Sharing], *, trx: Transaction | None = None) -> int:
        if not sharings:
            return 0
        with self._db.using(trx) as t:
            t.executemany(
                "INSERT INTO shared_credentials (credential_id, project_id, role) VALUES (?, ?, ?)",
                [(s.credential_id, s.project_id, str(SharingRole(s.role))) for s in sharings],
            )
        return len(sharings)

    def find_sharings(
        self,
        *,
        project_ids: Iterable[str] | None = None,
        credential_ids: Iterable[str] | None = None,
        role: str | None = None,
        trx: Transaction | None = None,
    ) -> list[Sharing]:
        sql = "SELECT credential_id, project_id, role FROM shared_credentials WHERE 1=1"
        params: list[object] = []
        if project_ids is not None:
            pids = sorted(set(project_ids))
            if not pids:
                return []
            sql += f" AND project_id IN ({_marks(pids)})"
            params.extend(pids)
        if credential_ids is not None:
            cids = sorted(set(credential_ids))
            if not cids:
                return []
            sql += f" AND credential_id IN ({_marks(cids)})"
            params.extend(cids)
        if role is not None:
            sql += " AND role = ?"
            params.append(role)
        sql += " ORDER BY credential_id, project_id"
        rows = (trx or self._db).execute(sql, params).fetchall()
        return [_row_to_sharing(r) for r in rows]

    def find_owner_sharing(self, credential_id: str, *, trx: Transaction | None = None) -> Sharing | None:
        found = self.find_sharings(credential_ids=[credential_id], role=SharingRole.OWNER, trx=trx)
        if len(found) > 1:
            raise InvariantViolation(f"credential {credential_id} has {len(found)} owners")
        return found[0] if found else None

    def delete_sharings(
        self,
        credential_ids: Iterable[str],
        project_id: str,
        *,
        trx: Transaction | None = None,
    ) -> int:
        cids = sorted(set(credential_ids))
        if not cids:
            return 0
        with self._db.using(trx) as t:
            cur = t.execute(
                f"DELETE FROM shared_credentials WHERE project_id = ? AND credential_id IN ({_marks(cids)})",
                (project_id, *cids),
            )
        return cur.rowcount

    def delete_all_sharings_of_project(self, project_id: str, *, trx: Transaction | None = None) -> int:
        with self._db.using(trx) as t:
            cur = t.execute("DELETE FROM shared_credentials WHERE project_id = ?", (project_id,))
        return cur.rowcount

    def make_owner(
        self,
        credential_ids: Iterable[str],
        project_id: str,
        *,
        trx: Transaction | None = None,
    ) -> int:
        """Give `project_id` the owner role, replacing whatever relation it had.

        The previous owner row must already be gone: the single-owner index
        is checked per statement.
        """
        cids = sorted(set(credential_ids))
        if not cids:
            return 0
        with self._db.using(trx) as t:
            t.executemany(
                """
                INSERT INTO shared_credentials (credential_id, project_id, role) VALUES (?, ?, 'owner')
                ON CONFLICT(credential_id, project_id) DO UPDATE SET role = 'owner'
                """,
                [(cid, project_id) for cid in cids],
            )
        return len(cids)

    # --- access queries ---

    def credential_ids_for_user(
        self,
        user_id: str,
        scopes: Iterable[Scope],
        *,
        trx: Transaction | None = None,
    ) -> set[str]:
        """Ids reachable through a membership whose project role and sharing
        role both grant every scope in `scopes`."""
        wanted = list(scopes)
        project_roles = [str(r) for r in project_roles_with(wanted)]
        sharing_roles = [str(r) for r in sharing_roles_with(wanted)]
        if not project_roles or not sharing_roles:
            return set()
        rows = (trx or self._db).execute(
            f"""
            SELECT DISTINCT sc.credential_id
            FROM shared_credentials sc
            JOIN project_relations pr ON pr.project_id = sc.project_id
            WHERE pr.user_id = ?
              AND pr.role IN ({_marks(project_roles)})
              AND sc.role IN ({_marks(sharing_roles)})
            """,
            (user_id, *project_roles, *sharing_roles),
        ).fetchall()
        return {str(r["credential_id"]) for r in rows}

    def credential_ids_for_projects(self, project_ids: Iterable[str], *, trx: Transaction | None = None) -> set[str]:
        return {s.credential_id for s in self.find_sharings(project_ids=project_ids, trx=trx)}

    def all_personal_credential_ids(self, *, trx: Transaction | None = None) -> set[str]:
        """Every credential with some relation to some personal project."""
        rows = (trx or self._db).execute(
            """
            SELECT DISTINCT sc.credential_id
            FROM shared_credentials sc
            JOIN projects p ON p.id = sc.project_id
            WHERE p.kind = ?
            """,
            (str(ProjectKind.PERSONAL),),
        ).fetchall()
        return {str(r["credential_id"]) for r in rows}
