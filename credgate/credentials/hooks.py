"""credgate.credentials.hooks

External hooks around credential writes.

The service is a coordinator. Hooks are where integration lives: a hook sees
the credential as it is about to be persisted (blob already encrypted) and
may veto the write by raising. Hooks run inside the write transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from credgate.core.types import Credential, User

logger = logging.getLogger(__name__)


class HookEvent(StrEnum):
    CREATE = "credentials.create"
    UPDATE = "credentials.update"
    DELETE = "credentials.delete"


@dataclass(frozen=True, slots=True)
class HookContext:
    event: HookEvent
    credential: Credential
    user: User | None = None


Hook = Callable[[HookContext], None]


class CredentialHooks:
    def __init__(self) -> None:
        self._hooks: dict[HookEvent, list[Hook]] = {e: [] for e in HookEvent}

    def register(self, event: str, hook: Hook) -> None:
        self._hooks[HookEvent(event)].append(hook)

    def count(self, event: str) -> int:
        return len(self._hooks[HookEvent(event)])

    def run(self, event: str, credential: Credential, user: User | None = None) -> None:
        """Run every hook for `event` in registration order. The first raise aborts."""
        hooks = self._hooks[HookEvent(event)]
        if not hooks:
            return
        ctx = HookContext(event=HookEvent(event), credential=credential, user=user)
        for hook in hooks:
            hook(ctx)
        logger.debug("credential_hooks_ran", extra={"hook_event": str(event), "hooks": len(hooks)})
