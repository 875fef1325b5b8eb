"""credgate.core.config

Two config surfaces only:
1) `config/default.yaml` (+ optional `config/user.yaml` overlay)
2) Environment variables (`CREDGATE_` prefix; the encryption key lives only here)

Everything else is derived.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from credgate.core.exceptions import ConfigError


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class DatabaseConfig(BaseModel):
    filename: str = "credgate.db"
    busy_timeout_ms: int = 5000
    transaction_timeout_seconds: float = 30.0

    @field_validator("transaction_timeout_seconds")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("transaction_timeout_seconds must be > 0")
        return v


class CipherConfig(BaseModel):
    key_env_var: str = "CREDGATE_ENCRYPTION_KEY"
    salt_filename: str = "cipher.salt"
    kdf_iterations: int = 480_000

    @field_validator("kdf_iterations")
    @classmethod
    def iterations_floor(cls, v: int) -> int:
        if v < 1:
            raise ValueError("kdf_iterations must be >= 1")
        return v


class RedactionConfig(BaseModel):
    # Unknown/removed credential types cannot be masked. True returns the
    # payload as stored; False raises SchemaNotFound instead.
    fail_open_on_unknown_type: bool = True


class TypesConfig(BaseModel):
    catalog: str = "credential_types.yaml"


class TransferConfig(BaseModel):
    # Transfers touch every sharing of a project; give them their own deadline.
    timeout_seconds: float = 60.0

    @field_validator("timeout_seconds")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    data_dir: Path = Path("data")
    config_dir: Path = Path("config")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cipher: CipherConfig = Field(default_factory=CipherConfig)
    redaction: RedactionConfig = Field(default_factory=RedactionConfig)
    types: TypesConfig = Field(default_factory=TypesConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "CREDGATE_", "env_nested_delimiter": "__"}

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.database.filename

    @property
    def salt_path(self) -> Path:
        return self.data_dir / self.cipher.salt_filename

    @property
    def types_path(self) -> Path:
        p = Path(self.types.catalog)
        return p if p.is_absolute() else self.config_dir / p

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            raw = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {path}") from e

        # user.yaml overlays default.yaml when both sit in the same directory
        if path.name == "default.yaml":
            user_path = path.parent / "user.yaml"
            if user_path.exists():
                user_data = yaml.safe_load(user_path.read_text()) or {}
                raw = _deep_merge(raw, user_data)

        raw.setdefault("config_dir", str(path.parent))
        return cls(**raw)

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        return cls.from_yaml(root / "config" / "default.yaml")
