from __future__ import annotations

from pathlib import Path

import pytest

from credgate.core.exceptions import ConfigError, SchemaCycleError, SchemaNotFound
from credgate.core.types import CredentialField, CredentialTypeSchema
from credgate.credentials.schema import TypeRegistry, TypeSchemaResolver, merge_fields

REPO_ROOT = Path(__file__).resolve().parents[2]


def _registry(*raw: dict) -> TypeRegistry:
    return TypeRegistry.from_mapping({"types": list(raw)})


def test_redeclared_field_overrides_inherited_sensitivity() -> None:
    registry = _registry(
        {"name": "a", "properties": [{"name": "x", "password": True}, {"name": "y"}]},
        {"name": "b", "extends": ["a"], "properties": [{"name": "x", "password": False}]},
    )
    resolver = TypeSchemaResolver(registry)

    fields = resolver.resolve("b")
    assert [f.name for f in fields] == ["x", "y"]  # position of first appearance
    assert resolver.find_field("b", "x") == CredentialField(name="x", is_password=False)
    assert resolver.find_field("a", "x").is_password is True


def test_multi_level_chain_resolves_depth_first() -> None:
    registry = TypeRegistry.from_yaml(REPO_ROOT / "config" / "credential_types.yaml")
    resolver = TypeSchemaResolver(registry)

    fields = {f.name: f for f in resolver.resolve("microsoftOutlookOAuth2Api")}
    assert fields["clientSecret"].is_password  # from oAuth2Api, two levels up
    assert "tenantId" in fields
    assert "userPrincipalName" in fields
    assert resolver.find_field("microsoftOutlookOAuth2Api", "nope") is None


def test_multiple_parents_merge_in_order() -> None:
    registry = _registry(
        {"name": "p1", "properties": [{"name": "a"}, {"name": "shared", "password": True}]},
        {"name": "p2", "properties": [{"name": "b"}, {"name": "shared"}]},
        {"name": "child", "extends": ["p1", "p2"], "properties": [{"name": "c"}]},
    )
    fields = TypeSchemaResolver(registry).resolve("child")
    assert [f.name for f in fields] == ["a", "shared", "b", "c"]
    assert fields[1].is_password is False  # p2 came later and won


def test_unknown_type_raises_schema_not_found() -> None:
    resolver = TypeSchemaResolver(_registry({"name": "a"}))
    with pytest.raises(SchemaNotFound) as exc:
        resolver.resolve("gone")
    assert exc.value.type_name == "gone"


def test_missing_parent_raises_schema_not_found() -> None:
    resolver = TypeSchemaResolver(_registry({"name": "orphan", "extends": ["ghost"]}))
    with pytest.raises(SchemaNotFound) as exc:
        resolver.resolve("orphan")
    assert exc.value.type_name == "ghost"


def test_cycle_is_a_config_error_naming_the_chain() -> None:
    registry = _registry(
        {"name": "a", "extends": ["b"]},
        {"name": "b", "extends": ["c"]},
        {"name": "c", "extends": ["a"]},
    )
    resolver = TypeSchemaResolver(registry)
    with pytest.raises(SchemaCycleError) as exc:
        resolver.resolve("a")
    assert isinstance(exc.value, ConfigError)
    assert exc.value.chain == ["a", "b", "c", "a"]

    with pytest.raises(SchemaCycleError):
        resolver.validate_all()


def test_self_extension_is_a_cycle() -> None:
    resolver = TypeSchemaResolver(_registry({"name": "loop", "extends": "loop"}))
    with pytest.raises(SchemaCycleError):
        resolver.resolve("loop")


def test_resolution_is_memoized() -> None:
    resolver = TypeSchemaResolver(_registry({"name": "a", "properties": [{"name": "x"}]}))
    assert resolver.resolve("a") is resolver.resolve("a")


def test_registry_rejects_conflicting_duplicates() -> None:
    registry = TypeRegistry()
    schema = CredentialTypeSchema(name="a", properties=(CredentialField("x"),))
    registry.register(schema)
    registry.register(schema)  # identical re-registration is harmless
    with pytest.raises(ConfigError):
        registry.register(CredentialTypeSchema(name="a"))


def test_registry_requires_types_list() -> None:
    with pytest.raises(ConfigError):
        TypeRegistry.from_mapping({"nope": []})


def test_field_without_name_is_rejected() -> None:
    with pytest.raises(ConfigError):
        _registry({"name": "a", "properties": [{"password": True}]})


def test_merge_fields_replaces_in_place() -> None:
    target = [CredentialField("a"), CredentialField("b", is_password=True)]
    merge_fields(target, [CredentialField("b"), CredentialField("c")])
    assert [f.name for f in target] == ["a", "b", "c"]
    assert target[1].is_password is False


def test_shipped_catalog_has_no_cycles_or_dangling_parents() -> None:
    registry = TypeRegistry.from_yaml(REPO_ROOT / "config" / "credential_types.yaml")
    TypeSchemaResolver(registry).validate_all()
    assert "httpBasicAuth" in registry.names()
    assert len(registry) >= 10
