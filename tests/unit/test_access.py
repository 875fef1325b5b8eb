from __future__ import annotations

import pytest

from credgate.bootstrap import Container
from credgate.core.exceptions import NotFoundError
from credgate.core.permissions import GlobalRole, Scope, SharingRole
from credgate.core.types import CredentialSummary, ProjectContext, WorkflowContext


def test_global_reader_reaches_everything(container: Container, world, make_credential) -> None:
    ids = {make_credential(p.id).id for p in (world.alice_personal, world.bob_personal, world.team)}
    assert container.access.credential_ids_for_user(world.owner) == ids


def test_member_reaches_only_through_memberships(container: Container, world, make_credential) -> None:
    mine = make_credential(world.carol_personal.id)
    make_credential(world.alice_personal.id)
    assert container.access.credential_ids_for_user(world.carol) == {mine.id}


def test_usable_is_the_intersection(container: Container, world, make_credential, share_credential) -> None:
    """bob can read a team credential, but a workflow in carol's personal project cannot."""
    team_cred = make_credential(world.team.id)
    carol_cred = make_credential(world.carol_personal.id)
    wf = container.directory.create_workflow("carol-flow", world.carol_personal.id)

    access = container.access
    # bob cannot launder carol's credential through her workflow
    assert access.usable_credential_ids(world.bob, WorkflowContext(wf.id)) == set()

    # once the workflow is shared into the team and the credential is shared with bob's team,
    # both sides reach it
    container.directory.share_workflow(wf.id, world.team.id)
    share_credential(carol_cred.id, world.team.id, SharingRole.USER)
    usable = access.usable_credential_ids(world.bob, WorkflowContext(wf.id))
    assert usable == {team_cred.id, carol_cred.id}

    for u in (world.alice, world.bob, world.carol, world.owner):
        mine = access.credential_ids_for_user(u)
        theirs = access.credential_ids_for_context(WorkflowContext(wf.id))
        assert access.usable_credential_ids(u, WorkflowContext(wf.id)) <= mine & theirs


def test_global_owner_workflow_reaches_personal_credentials(container: Container, world, make_credential) -> None:
    personal = make_credential(world.bob_personal.id)
    team_only = make_credential(world.team.id)
    wf = container.directory.create_workflow("admin-flow", world.owner_personal.id)

    theirs = container.access.credential_ids_for_context(WorkflowContext(wf.id))
    assert personal.id in theirs
    assert team_only.id not in theirs

    # the caller side still applies: carol sees neither
    assert container.access.usable_credential_ids(world.carol, WorkflowContext(wf.id)) == set()
    assert container.access.usable_credential_ids(world.owner, WorkflowContext(wf.id)) == {personal.id}


def test_project_context(container: Container, world, make_credential) -> None:
    team_cred = make_credential(world.team.id)
    make_credential(world.alice_personal.id)
    access = container.access

    assert access.credential_ids_for_context(ProjectContext(world.team.id)) == {team_cred.id}
    assert access.usable_credential_ids(world.alice, ProjectContext(world.team.id)) == {team_cred.id}
    assert access.usable_credential_ids(world.carol, ProjectContext(world.team.id)) == set()
    with pytest.raises(NotFoundError):
        access.credential_ids_for_context(ProjectContext("missing"))


def test_unknown_workflow_reaches_nothing(container: Container, world) -> None:
    assert container.access.credential_ids_for_context(WorkflowContext("missing")) == set()


def test_scopes_merge_global_and_resource(container: Container, world, make_credential, share_credential) -> None:
    c = make_credential(world.carol_personal.id)
    share_credential(c.id, world.team.id, SharingRole.EDITOR)
    access = container.access

    # carol: personalOwner x owner
    assert access.scopes_for(world.carol, c.id) == tuple(
        sorted(
            {
                Scope.CREDENTIAL_READ,
                Scope.CREDENTIAL_UPDATE,
                Scope.CREDENTIAL_DELETE,
                Scope.CREDENTIAL_SHARE,
                Scope.CREDENTIAL_MOVE,
            }
        )
    )
    # alice: admin of team x editor share -> read + update
    assert access.scopes_for(world.alice, c.id) == tuple(sorted({Scope.CREDENTIAL_READ, Scope.CREDENTIAL_UPDATE}))
    # bob: viewer x editor -> read
    assert Scope.CREDENTIAL_UPDATE not in access.scopes_for(world.bob, c.id)
    # owner: global
    assert set(access.scopes_for(world.owner, c.id)) == {str(s) for s in Scope}


def test_add_scopes_only_counts_the_credentials_own_rows(container: Container, world, make_credential) -> None:
    a = make_credential(world.alice_personal.id)
    b = make_credential(world.carol_personal.id)
    sharings = container.store.find_sharings(credential_ids=[a.id, b.id])
    relations = container.directory.project_relations_for_user(world.carol.id)

    summary = container.access.add_scopes(CredentialSummary.from_credential(a), world.carol, sharings, relations)
    assert summary.scopes == ()


def test_get_sharing_prefers_owner_and_honours_intersection(
    container: Container, world, make_credential, share_credential
) -> None:
    c = make_credential(world.team.id)
    share_credential(c.id, world.alice_personal.id, SharingRole.USER)
    access = container.access

    got = access.get_sharing(world.alice, c.id, [Scope.CREDENTIAL_READ])
    assert got.role == SharingRole.OWNER and got.project_id == world.team.id

    assert access.get_sharing(world.bob, c.id, [Scope.CREDENTIAL_UPDATE]) is None
    assert access.get_sharing(world.carol, c.id, [Scope.CREDENTIAL_READ]) is None
    assert access.get_sharing(world.owner, c.id, [Scope.CREDENTIAL_DELETE]).project_id == world.team.id


def test_admin_global_role_bypasses_membership(container: Container, world, make_credential) -> None:
    admin = container.directory.create_user("admin@example.com", GlobalRole.ADMIN)
    c = make_credential(world.carol_personal.id)
    assert c.id in container.access.credential_ids_for_user(admin)
