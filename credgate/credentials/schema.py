"""credgate.credentials.schema

Credential type definitions and their flattened field-sensitivity schema.

A type lists its own fields and the types it `extends`. Resolving a type
merges its ancestors depth-first, then its own fields; a field declared again
further down the chain replaces the inherited one *in place*, so field order
is the order of first appearance.

The registry is filled once at startup and never mutated afterwards.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from credgate.core.exceptions import ConfigError, SchemaCycleError, SchemaNotFound
from credgate.core.types import CredentialField, CredentialTypeSchema

logger = logging.getLogger(__name__)


def _field_from_raw(raw: Mapping[str, Any], type_name: str) -> CredentialField:
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigError(f"credential type {type_name}: field without a name")
    return CredentialField(
        name=name,
        is_password=bool(raw.get("password", False)),
        no_data_expression=bool(raw.get("no_data_expression", False)),
    )


def schema_from_raw(raw: Mapping[str, Any]) -> CredentialTypeSchema:
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigError("credential type without a name")

    extends = raw.get("extends") or []
    if isinstance(extends, str):
        extends = [extends]

    return CredentialTypeSchema(
        name=name,
        display_name=raw.get("display_name"),
        properties=tuple(_field_from_raw(p, name) for p in raw.get("properties") or []),
        extends=tuple(str(e) for e in extends),
    )


class TypeRegistry:
    """Raw (non-flattened) credential type definitions, keyed by name."""

    def __init__(self, schemas: Iterable[CredentialTypeSchema] = ()):
        self._types: dict[str, CredentialTypeSchema] = {}
        for s in schemas:
            self.register(s)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TypeRegistry:
        types = raw.get("types")
        if not isinstance(types, list):
            raise ConfigError("credential type catalog must have a `types` list")
        return cls(schema_from_raw(t) for t in types)

    @classmethod
    def from_yaml(cls, path: Path) -> TypeRegistry:
        if not path.exists():
            raise ConfigError(f"Credential type catalog not found: {path}")
        try:
            raw = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Credential type catalog is not valid YAML: {path}") from e
        registry = cls.from_mapping(raw)
        logger.info("credential_types_loaded", extra={"path": str(path), "count": len(registry)})
        return registry

    def register(self, schema: CredentialTypeSchema) -> None:
        existing = self._types.get(schema.name)
        if existing is not None and existing != schema:
            raise ConfigError(f"credential type already registered: {schema.name}")
        self._types[schema.name] = schema

    def get(self, name: str) -> CredentialTypeSchema:
        try:
            return self._types[name]
        except KeyError:
            raise SchemaNotFound(name) from None

    def names(self) -> list[str]:
        return sorted(self._types)

    def __len__(self) -> int:
        return len(self._types)


def merge_fields(target: list[CredentialField], incoming: Iterable[CredentialField]) -> None:
    """Override-by-name merge, in place. Replaced fields keep their index."""
    index = {f.name: i for i, f in enumerate(target)}
    for f in incoming:
        i = index.get(f.name)
        if i is None:
            index[f.name] = len(target)
            target.append(f)
        else:
            target[i] = f


class TypeSchemaResolver:
    """Flattens `extends` chains. Memoized per type name."""

    def __init__(self, registry: TypeRegistry):
        self._registry = registry
        self._cache: dict[str, tuple[CredentialField, ...]] = {}
        self._lock = threading.Lock()

    def resolve(self, type_name: str) -> tuple[CredentialField, ...]:
        cached = self._cache.get(type_name)
        if cached is not None:
            return cached
        with self._lock:
            return self._resolve(type_name, [])

    def _resolve(self, type_name: str, chain: list[str]) -> tuple[CredentialField, ...]:
        cached = self._cache.get(type_name)
        if cached is not None:
            return cached
        if type_name in chain:
            raise SchemaCycleError([*chain[chain.index(type_name) :], type_name])

        schema = self._registry.get(type_name)
        chain.append(type_name)
        fields: list[CredentialField] = []
        for parent in schema.extends:
            merge_fields(fields, self._resolve(parent, chain))
        merge_fields(fields, schema.properties)
        chain.pop()

        resolved = tuple(fields)
        self._cache[type_name] = resolved
        return resolved

    def find_field(self, type_name: str, field_name: str) -> CredentialField | None:
        for f in self.resolve(type_name):
            if f.name == field_name:
                return f
        return None

    def validate_all(self) -> None:
        """Resolve every registered type. Surfaces cycles and dangling parents at startup."""
        for name in self._registry.names():
            self.resolve(name)
