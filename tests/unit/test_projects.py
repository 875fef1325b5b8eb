from __future__ import annotations

import pytest

from credgate.bootstrap import Container
from credgate.core.exceptions import BadRequestError, InvariantViolation, NotFoundError
from credgate.core.permissions import ProjectKind, ProjectRole, Scope


def test_create_user_gets_a_personal_project(container: Container) -> None:
    d = container.directory
    user = d.create_user("dana@example.com")
    assert d.get_user(user.id) == user
    assert d.get_user("ghost") is None
    project = d.get_personal_project_or_fail(user.id)

    assert project.kind == ProjectKind.PERSONAL
    assert d.personal_owner_for_project(project.id) == user
    relations = d.project_relations_for_user(user.id)
    assert [(r.project_id, r.role) for r in relations] == [(project.id, ProjectRole.PERSONAL_OWNER)]


def test_duplicate_email_is_rejected_without_leftovers(container: Container) -> None:
    d = container.directory
    d.create_user("dana@example.com")
    with pytest.raises(BadRequestError) as exc:
        d.create_user("dana@example.com")
    assert exc.value.code == "user.duplicate"
    count = container.db.execute("SELECT count(*) FROM projects WHERE kind = 'personal'").fetchone()[0]
    assert count == 1


def test_personal_projects_cannot_gain_members(container: Container, world) -> None:
    with pytest.raises(BadRequestError):
        container.directory.add_member(world.alice_personal.id, world.bob.id, ProjectRole.EDITOR)
    with pytest.raises(BadRequestError):
        container.directory.add_member(world.team.id, world.bob.id, ProjectRole.PERSONAL_OWNER)


def test_add_member_upserts_role(container: Container, world) -> None:
    d = container.directory
    d.add_member(world.team.id, world.bob.id, ProjectRole.EDITOR)
    roles = {r.project_id: r.role for r in d.project_relations_for_user(world.bob.id)}
    assert roles[world.team.id] == ProjectRole.EDITOR


def test_add_member_unknown_targets(container: Container, world) -> None:
    with pytest.raises(NotFoundError):
        container.directory.add_member("nope", world.bob.id, ProjectRole.EDITOR)
    with pytest.raises(NotFoundError):
        container.directory.add_member(world.team.id, "ghost", ProjectRole.EDITOR)


def test_remove_member_never_removes_personal_owner(container: Container, world) -> None:
    d = container.directory
    assert d.remove_member(world.team.id, world.bob.id) is True
    assert d.remove_member(world.alice_personal.id, world.alice.id) is False
    assert d.get_personal_project(world.alice.id) is not None


def test_missing_personal_project_is_an_invariant_violation(container: Container) -> None:
    with pytest.raises(InvariantViolation):
        container.directory.get_personal_project_or_fail("no-such-user")


def test_project_with_scope(container: Container, world) -> None:
    d = container.directory
    create = [Scope.CREDENTIAL_CREATE]
    assert d.get_project_with_scope(world.alice, world.team.id, create) == world.team
    assert d.get_project_with_scope(world.bob, world.team.id, create) is None  # viewer
    assert d.get_project_with_scope(world.carol, world.team.id, create) is None  # not a member
    assert d.get_project_with_scope(world.owner, world.team.id, create) == world.team  # global


def test_workflow_edges(container: Container, world) -> None:
    d = container.directory
    wf = d.create_workflow("sync", world.alice_personal.id)
    d.share_workflow(wf.id, world.team.id)
    d.share_workflow(wf.id, world.team.id)  # idempotent

    assert d.workflow_project_ids(wf.id) == sorted([world.alice_personal.id, world.team.id])
    assert d.personal_owner_for_workflow(wf.id) == world.alice

    team_wf = d.create_workflow("team-sync", world.team.id)
    assert d.personal_owner_for_workflow(team_wf.id) is None

    with pytest.raises(NotFoundError):
        d.create_workflow("orphan", "missing-project")
