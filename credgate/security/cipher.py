"""credgate.security.cipher

Opaque encrypt/decrypt of credential payloads.

The rest of the system only sees the `Cipher` protocol. The shipped
implementation is Fernet with a PBKDF2-derived key:

- key material: environment only (never config files, never the database)
- salt: a per-installation file next to the database, created on first use
- envelope: the plaintext binds the payload to its credential id and type,
  so a blob copied onto another credential row fails to decrypt
"""

from __future__ import annotations

import base64
import contextlib
import json
import os
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from credgate.core.config import Config
from credgate.core.exceptions import ConfigError, DecryptionError

_ITERATIONS = 480_000
_SALT_SIZE = 32
_ENVELOPE_VERSION = 1


@runtime_checkable
class Cipher(Protocol):
    def encrypt(self, payload: dict[str, Any], credential_id: str, credential_type: str) -> str: ...

    def decrypt(
        self,
        blob: str,
        *,
        credential_id: str | None = None,
        credential_type: str | None = None,
    ) -> dict[str, Any]: ...


def _derive_fernet_key(password: str, salt: bytes, iterations: int = _ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))


def get_or_create_salt(path: Path) -> bytes:
    path = Path(path)
    if path.exists():
        return path.read_bytes()
    path.parent.mkdir(parents=True, exist_ok=True)
    salt = os.urandom(_SALT_SIZE)
    path.write_bytes(salt)
    with contextlib.suppress(OSError):
        os.chmod(path, 0o600)
    return salt


class FernetCipher:
    """Fernet (AES-128-CBC + HMAC-SHA256) over a JSON envelope."""

    def __init__(self, *, password: str | None, salt: bytes, iterations: int = _ITERATIONS):
        # Derive once: PBKDF2 at this cost is deliberately slow.
        self._fernet: Fernet | None = None
        if password:
            self._fernet = Fernet(_derive_fernet_key(password, salt, iterations))

    @classmethod
    def from_config(cls, config: Config) -> FernetCipher:
        return cls(
            password=os.environ.get(config.cipher.key_env_var) or None,
            salt=get_or_create_salt(config.salt_path),
            iterations=config.cipher.kdf_iterations,
        )

    @property
    def has_key(self) -> bool:
        return self._fernet is not None

    def encrypt(self, payload: dict[str, Any], credential_id: str, credential_type: str) -> str:
        if self._fernet is None:
            raise ConfigError("Missing encryption key material; cannot encrypt credentials")
        envelope = {
            "v": _ENVELOPE_VERSION,
            "id": credential_id,
            "type": credential_type,
            "data": payload,
        }
        plaintext = json.dumps(envelope, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return self._fernet.encrypt(plaintext).decode("ascii")

    def decrypt(
        self,
        blob: str,
        *,
        credential_id: str | None = None,
        credential_type: str | None = None,
    ) -> dict[str, Any]:
        if self._fernet is None:
            raise DecryptionError("Missing encryption key material; cannot decrypt credentials")

        try:
            plaintext = self._fernet.decrypt(blob.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as e:
            raise DecryptionError("Credential blob is corrupt or was encrypted with another key") from e

        try:
            envelope = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecryptionError("Credential envelope is not valid JSON") from e

        if not isinstance(envelope, dict) or not isinstance(envelope.get("data"), dict):
            raise DecryptionError("Credential envelope is malformed")
        if envelope.get("v") != _ENVELOPE_VERSION:
            raise DecryptionError(f"Unsupported credential envelope version: {envelope.get('v')}")
        if credential_id is not None and envelope.get("id") != credential_id:
            raise DecryptionError("Credential blob is bound to a different credential")
        if credential_type is not None and envelope.get("type") != credential_type:
            raise DecryptionError("Credential blob is bound to a different credential type")

        return envelope["data"]
