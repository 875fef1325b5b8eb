from __future__ import annotations

from pathlib import Path

import pytest

from credgate.core.config import Config
from credgate.core.exceptions import ConfigError, DecryptionError
from credgate.security.cipher import FernetCipher, get_or_create_salt


def _cipher(password: str | None = "k") -> FernetCipher:
    return FernetCipher(password=password, salt=b"0123456789abcdef", iterations=1_000)


def test_encrypt_decrypt_round_trip() -> None:
    c = _cipher()
    blob = c.encrypt({"password": "hunter2", "nested": {"a": [1, 2]}}, "cred-1", "postgres")
    assert "hunter2" not in blob
    assert c.decrypt(blob, credential_id="cred-1", credential_type="postgres") == {
        "password": "hunter2",
        "nested": {"a": [1, 2]},
    }


def test_blob_is_bound_to_its_credential() -> None:
    c = _cipher()
    blob = c.encrypt({"x": 1}, "cred-1", "postgres")
    with pytest.raises(DecryptionError):
        c.decrypt(blob, credential_id="cred-2")
    with pytest.raises(DecryptionError):
        c.decrypt(blob, credential_type="smtp")


def test_wrong_key_is_a_decryption_error() -> None:
    blob = _cipher("one").encrypt({"x": 1}, "c", "t")
    with pytest.raises(DecryptionError):
        _cipher("two").decrypt(blob)


def test_corrupt_blob_is_a_decryption_error() -> None:
    with pytest.raises(DecryptionError):
        _cipher().decrypt("not-a-fernet-token")


def test_missing_key_material() -> None:
    c = _cipher(None)
    assert not c.has_key
    with pytest.raises(ConfigError):
        c.encrypt({"x": 1}, "c", "t")
    with pytest.raises(DecryptionError):
        c.decrypt("anything")


def test_salt_is_created_once(temp_dir: Path) -> None:
    path = temp_dir / "data" / "cipher.salt"
    first = get_or_create_salt(path)
    assert path.exists()
    assert get_or_create_salt(path) == first


def test_from_config_reads_key_from_env(test_config: Config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(test_config.cipher.key_env_var, "from-env")
    c = FernetCipher.from_config(test_config)
    assert c.has_key
    assert test_config.salt_path.exists()

    monkeypatch.delenv(test_config.cipher.key_env_var)
    assert not FernetCipher.from_config(test_config).has_key
