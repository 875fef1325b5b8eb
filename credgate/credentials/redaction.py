"""credgate.credentials.redaction

Mask secret fields of a decrypted payload for display, and put them back
when the payload comes home.

Two sentinels, never equal:
- CREDENTIAL_BLANKING_VALUE: a value exists and is hidden
- CREDENTIAL_EMPTY_VALUE: the field is present but was empty

Unredaction only ever restores values the caller could not have seen; any
field the caller actually changed is kept as submitted.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from credgate.core.exceptions import SchemaNotFound
from credgate.core.types import Credential, CredentialField
from credgate.credentials.schema import TypeSchemaResolver

logger = logging.getLogger(__name__)

CREDENTIAL_BLANKING_VALUE = "__CREDGATE_BLANK_VALUE_e5362baf-c777-4d57-a609-6eaf1f9e87f6"
CREDENTIAL_EMPTY_VALUE = "__CREDGATE_EMPTY_VALUE_7b1af746-3729-4c60-9b9b-e08eb29e58da"

SENTINELS = frozenset({CREDENTIAL_BLANKING_VALUE, CREDENTIAL_EMPTY_VALUE})

# Always masked, whatever the type schema says.
ALWAYS_SECRET_FIELDS = frozenset({"oauthTokenData", "csrfSecret"})

EXPRESSION_PREFIX = "={{"


def is_sentinel(value: Any) -> bool:
    return isinstance(value, str) and value in SENTINELS


def is_expression(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(EXPRESSION_PREFIX)


def mask(value: Any) -> str:
    if value is None or value == "":
        return CREDENTIAL_EMPTY_VALUE
    return CREDENTIAL_BLANKING_VALUE


def should_mask(spec: CredentialField, value: Any) -> bool:
    if not spec.is_password:
        return False
    # Expressions are references, not secrets, unless the field forbids them.
    return not is_expression(value) or not spec.is_expression_allowed


class RedactionEngine:
    def __init__(self, resolver: TypeSchemaResolver, *, fail_open_on_unknown_type: bool = True):
        self._resolver = resolver
        self.fail_open_on_unknown_type = fail_open_on_unknown_type

    def redact(self, data: dict[str, Any], credential: Credential) -> dict[str, Any]:
        """Return a copy of `data` with every secret field replaced by a sentinel.

        If the credential's type (or one of its ancestors) is unknown there is
        no way to tell which fields are secret. With `fail_open_on_unknown_type`
        the payload is returned unchanged; otherwise SchemaNotFound propagates.
        """

        try:
            fields = {f.name: f for f in self._resolver.resolve(credential.type)}
        except SchemaNotFound as e:
            if not self.fail_open_on_unknown_type:
                raise
            logger.warning(
                "redaction_skipped_unknown_type",
                extra={"credential_id": credential.id, "credential_type": e.type_name},
            )
            return data

        out = copy.deepcopy(data)
        for key, value in out.items():
            if key in ALWAYS_SECRET_FIELDS:
                out[key] = mask(value)
                continue
            spec = fields.get(key)
            if spec is None:
                continue
            if should_mask(spec, value):
                out[key] = mask(value)
        return out

    def unredact(self, incoming: dict[str, Any], saved: dict[str, Any]) -> dict[str, Any]:
        """Restore sentinel values in `incoming` from `saved`. Returns a new dict."""
        merged = copy.deepcopy(incoming)
        _restore(merged, saved)
        return merged


def _restore(node: dict[str, Any] | list[Any], saved: Any) -> None:
    if isinstance(node, dict):
        if not isinstance(saved, dict):
            _strip_sentinels(node)
            return
        for key in list(node):
            value = node[key]
            if is_sentinel(value):
                if key in saved:
                    node[key] = copy.deepcopy(saved[key])
                else:
                    # nothing to restore: a sentinel must never be persisted
                    del node[key]
            elif isinstance(value, (dict, list)):
                if key in saved:
                    _restore(value, saved[key])
                else:
                    _strip_sentinels(value)
        return

    if not isinstance(saved, list):
        _strip_sentinels(node)
        return
    kept: list[Any] = []
    for i, value in enumerate(node):
        if i >= len(saved):
            if isinstance(value, (dict, list)):
                _strip_sentinels(value)
            if not is_sentinel(value):
                kept.append(value)
            continue
        if is_sentinel(value):
            kept.append(copy.deepcopy(saved[i]))
            continue
        if isinstance(value, (dict, list)):
            _restore(value, saved[i])
        kept.append(value)
    node[:] = kept


def _strip_sentinels(node: dict[str, Any] | list[Any]) -> None:
    """Drop sentinels from a subtree that has no stored counterpart."""
    if isinstance(node, dict):
        for key in list(node):
            value = node[key]
            if is_sentinel(value):
                del node[key]
            elif isinstance(value, (dict, list)):
                _strip_sentinels(value)
        return

    node[:] = [v for v in node if not is_sentinel(v)]
    for value in node:
        if isinstance(value, (dict, list)):
            _strip_sentinels(value)
