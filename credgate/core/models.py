"""credgate.core.models

Input shapes at the service boundary.

Whatever the outer layer hands in is validated here, once.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from credgate.core.exceptions import ValidationError


def _strip_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("name must not be blank")
    return v


class CredentialCreate(BaseModel):
    """A new credential as submitted by a caller."""

    name: str = Field(min_length=1, max_length=128)
    type: str = Field(min_length=1, max_length=128)
    data: dict[str, Any] = Field(default_factory=dict)
    project_id: str | None = None
    is_managed: bool = False

    model_config = {"extra": "ignore"}

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _strip_name(v)


class CredentialUpdate(BaseModel):
    """A partial update. Omitted fields keep their stored value.

    `data` may contain redaction sentinels; they are restored from the
    stored payload before anything is persisted.
    """

    name: str | None = Field(default=None, min_length=1, max_length=128)
    type: str | None = Field(default=None, min_length=1, max_length=128)
    data: dict[str, Any] | None = None

    model_config = {"extra": "ignore"}

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        return None if v is None else _strip_name(v)


class DecryptedCredential(BaseModel):
    """Plaintext credential handed to the external tester."""

    id: str | None = None
    name: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class CredentialFilter(BaseModel):
    project_id: str | None = None
    name: str | None = None
    type: str | None = None


class ListOptions(BaseModel):
    filter: CredentialFilter = Field(default_factory=CredentialFilter)
    include_scopes: bool = False


M = TypeVar("M", bound=BaseModel)


def parse_model(model: type[M], raw: M | dict[str, Any]) -> M:
    """Validate `raw` into `model`, translating pydantic errors to ours."""
    if isinstance(raw, model):
        return raw
    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(f"Invalid {model.__name__}: {', '.join(fields)}") from e
