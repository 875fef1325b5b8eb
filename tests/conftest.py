from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest

# pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from credgate.bootstrap import Container, build_container  # noqa: E402
from credgate.core.config import Config  # noqa: E402
from credgate.core.permissions import GlobalRole, ProjectRole, SharingRole  # noqa: E402
from credgate.core.types import Credential, Project, Sharing, User  # noqa: E402
from credgate.security.cipher import FernetCipher  # noqa: E402

TEST_KDF_ITERATIONS = 1_000


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture()
def test_config(temp_dir: Path) -> Config:
    """Config fixture that points data_dir to a temp directory."""

    cfg_dst_dir = temp_dir / "config"
    cfg_dst_dir.mkdir(parents=True, exist_ok=True)

    shutil.copy2(REPO_ROOT / "config" / "default.yaml", cfg_dst_dir / "default.yaml")
    shutil.copy2(REPO_ROOT / "config" / "credential_types.yaml", cfg_dst_dir / "credential_types.yaml")

    c = Config.from_yaml(cfg_dst_dir / "default.yaml")
    return c.model_copy(
        update={
            "data_dir": temp_dir / "data",
            "config_dir": cfg_dst_dir,
            "cipher": c.cipher.model_copy(update={"kdf_iterations": TEST_KDF_ITERATIONS}),
        }
    )


@pytest.fixture()
def cipher() -> FernetCipher:
    return FernetCipher(password="test-encryption-key", salt=b"credgate-test-salt", iterations=TEST_KDF_ITERATIONS)


@pytest.fixture()
def container(test_config: Config, cipher: FernetCipher) -> Iterator[Container]:
    c = build_container(test_config, cipher=cipher)
    try:
        yield c
    finally:
        c.close()


@dataclass
class World:
    """A small instance: an owner, two members, one team project.

    alice is admin of `team`, bob is a viewer there. carol is in no team.
    """

    owner: User
    alice: User
    bob: User
    carol: User
    team: Project
    owner_personal: Project
    alice_personal: Project
    bob_personal: Project
    carol_personal: Project


@pytest.fixture()
def world(container: Container) -> World:
    d = container.directory
    owner = d.create_user("owner@example.com", GlobalRole.OWNER)
    alice = d.create_user("alice@example.com")
    bob = d.create_user("bob@example.com")
    carol = d.create_user("carol@example.com")
    team = d.create_team_project("Platform", admins=[alice])
    d.add_member(team.id, bob.id, ProjectRole.VIEWER)

    return World(
        owner=owner,
        alice=alice,
        bob=bob,
        carol=carol,
        team=team,
        owner_personal=d.get_personal_project_or_fail(owner.id),
        alice_personal=d.get_personal_project_or_fail(alice.id),
        bob_personal=d.get_personal_project_or_fail(bob.id),
        carol_personal=d.get_personal_project_or_fail(carol.id),
    )


@pytest.fixture()
def make_credential(container: Container):
    """Persist a credential owned by `project_id`, bypassing the service."""

    counter = {"n": 0}

    def _make(project_id: str, *, name: str | None = None, type: str = "httpBasicAuth", data: dict | None = None):
        counter["n"] += 1
        credential_id = f"cred-{counter['n']}"
        payload = data if data is not None else {"user": "u", "password": f"p{counter['n']}"}
        credential = Credential(
            id=credential_id,
            name=name or credential_id,
            type=type,
            data=container.cipher.encrypt(payload, credential_id, type),
        )
        with container.db.transaction() as t:
            created = container.store.create_credential(credential, trx=t)
            container.store.create_sharing(
                Sharing(credential_id=credential_id, project_id=project_id, role=SharingRole.OWNER), trx=t
            )
        return created

    return _make


@pytest.fixture()
def share_credential(container: Container):
    def _share(credential_id: str, project_id: str, role: str = SharingRole.USER) -> Sharing:
        return container.store.create_sharing(Sharing(credential_id=credential_id, project_id=project_id, role=role))

    return _share
