"""credgate.security.audit

Database-backed audit logger.

Who touched which credential, when, and through which project. Details are
scrubbed before they are written; a payload never reaches this table.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from credgate.core.database import Database, Transaction
from credgate.core.time import to_iso
from credgate.security.redaction import sanitize_for_log


@dataclass
class AuditLogger:
    """Writes security-relevant actions to the `audit_log` table."""

    db: Database
    component: str = "credentials"

    def log_action(
        self,
        action: str,
        actor: str | None,
        details: dict[str, Any] | None = None,
        *,
        trx: Transaction | None = None,
    ) -> None:
        """Record an action. With `trx`, the row commits or rolls back with it."""
        payload = json.dumps(sanitize_for_log(details or {}), sort_keys=True, default=str)
        sql = "INSERT INTO audit_log (action, actor, component, details) VALUES (?, ?, ?, ?)"
        params = (action, actor, self.component, payload)
        if trx is not None:
            trx.execute(sql, params)
            return
        with self.db.transaction() as t:
            t.execute(sql, params)

    def query(
        self,
        action_type: str | None = None,
        since: datetime | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        q = "SELECT ts, action, actor, component, details FROM audit_log WHERE 1=1"
        params: list[Any] = []

        if action_type is not None:
            q += " AND action = ?"
            params.append(action_type)

        if actor is not None:
            q += " AND actor = ?"
            params.append(actor)

        if since is not None:
            q += " AND ts >= ?"
            params.append(to_iso(since))

        q += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        rows = self.db.conn.execute(q, tuple(params)).fetchall()
        out: list[dict[str, Any]] = []
        for r in rows:
            out.append(
                {
                    "ts": r[0],
                    "action": r[1],
                    "actor": r[2],
                    "component": r[3],
                    "details": json.loads(r[4]) if r[4] else {},
                }
            )
        return out
