from __future__ import annotations

import pytest

from credgate.core.types import Credential
from credgate.credentials.hooks import CredentialHooks, HookContext, HookEvent


def _credential() -> Credential:
    return Credential(id="c1", name="n", type="httpBasicAuth", data="blob")


def test_hooks_run_in_registration_order() -> None:
    hooks = CredentialHooks()
    seen: list[str] = []
    hooks.register(HookEvent.CREATE, lambda ctx: seen.append("first"))
    hooks.register("credentials.create", lambda ctx: seen.append("second"))

    hooks.run(HookEvent.CREATE, _credential())

    assert seen == ["first", "second"]
    assert hooks.count(HookEvent.CREATE) == 2
    assert hooks.count(HookEvent.DELETE) == 0


def test_first_raise_aborts_the_chain() -> None:
    hooks = CredentialHooks()
    seen: list[HookContext] = []

    def veto(ctx: HookContext) -> None:
        raise PermissionError(f"no {ctx.event}")

    hooks.register(HookEvent.UPDATE, veto)
    hooks.register(HookEvent.UPDATE, seen.append)

    with pytest.raises(PermissionError, match="credentials.update"):
        hooks.run(HookEvent.UPDATE, _credential())
    assert seen == []


def test_unknown_event_is_rejected() -> None:
    with pytest.raises(ValueError):
        CredentialHooks().register("credentials.explode", lambda ctx: None)
