"""
Document codec -- flat JSON-compatible form of the ledger entities.

Responsibility:
    Converts entities to and from the persisted document layout consumed by
    external collaborators (reporting, UI): camelCase keys, a ``type``
    discriminator (plus ``transactionType`` for transactions), ISO-8601
    timestamps and dates, GUIDs and decimal amounts as strings.

Architecture position:
    Ledger > Domain -- pure, zero I/O.

Failure modes:
    - ValidationError on an unknown ``type``/``transactionType`` or a
      missing required key.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from functools import cache
from typing import Any
from uuid import UUID

from envelope_ledger.domain.entities import (
    ENTITY_CLASSES,
    TRANSACTION_CLASSES,
    Budget,
    Document,
    EntityType,
    TransactionBase,
    TransactionType,
)
from envelope_ledger.exceptions import ValidationError

SCHEMA_VERSION = "1.0"

# Read-only derived values emitted for consumers, ignored on input.
_DERIVED_FIELDS: dict[type, tuple[str, ...]] = {
    Budget: ("savings_actual",),
}


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _encode(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    raise TypeError(f"Cannot encode {type(value).__name__}")


def to_document(entity: Document) -> dict[str, Any]:
    """Serialize *entity* to its flat document form."""
    doc: dict[str, Any] = {
        "type": entity.entity_type.value,
        "schemaVersion": SCHEMA_VERSION,
        "partitionKey": str(entity.routing_key),
    }
    if isinstance(entity, TransactionBase):
        doc["transactionType"] = entity.transaction_type.value
    for f in dataclasses.fields(entity):
        doc[to_camel(f.name)] = _encode(getattr(entity, f.name))
    for name in _DERIVED_FIELDS.get(type(entity), ()):
        doc[to_camel(name)] = _encode(getattr(entity, name))
    return doc


@cache
def _hints(cls: type) -> dict[str, Any]:
    return typing.get_type_hints(cls)


def _decode(value: Any, hint: Any) -> Any:
    if value is None:
        return None
    origin = typing.get_origin(hint)
    if origin in (typing.Union, types.UnionType):
        inner = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        return _decode(value, inner[0])
    if origin is frozenset:
        (item_hint,) = typing.get_args(hint)
        return frozenset(_decode(item, item_hint) for item in value)
    if hint is UUID:
        return value if isinstance(value, UUID) else UUID(value)
    if hint is Decimal:
        return Decimal(str(value))
    if hint is datetime:
        return value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if hint is date:
        return value if isinstance(value, date) else date.fromisoformat(value)
    if isinstance(hint, type) and issubclass(hint, Enum):
        return hint(value)
    return value


def from_document(doc: dict[str, Any]) -> Document:
    """
    Rebuild an entity from its document form.

    Raises:
        ValidationError: on unknown discriminators or missing required keys.
    """
    try:
        entity_type = EntityType(doc["type"])
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown document type: {doc.get('type')!r}", field="type") from None

    cls = ENTITY_CLASSES[entity_type]
    if entity_type is EntityType.TRANSACTION:
        try:
            cls = TRANSACTION_CLASSES[TransactionType(doc["transactionType"])]
        except (KeyError, ValueError):
            raise ValidationError(
                f"Unknown transaction type: {doc.get('transactionType')!r}",
                field="transactionType",
            ) from None

    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        key = to_camel(f.name)
        if key not in doc:
            if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                raise ValidationError(f"Missing required field {key!r}", field=key)
            continue
        kwargs[f.name] = _decode(doc[key], hints[f.name])
    return cls(**kwargs)
