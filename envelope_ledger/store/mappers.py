"""
Row mappers -- translate between ORM rows and domain entities.

Column names on the models match field names on the entities, so the
generic copy handles most fields; only enums, the shared_with set and the
transaction discriminator need explicit conversion.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any
from uuid import UUID

from envelope_ledger.db.base import DocumentBase
from envelope_ledger.db.types import normalize_money
from envelope_ledger.domain.entities import (
    TRANSACTION_CLASSES,
    Budget,
    BudgetPeriodType,
    BudgetStatus,
    Document,
    EntityType,
    Envelope,
    EnvelopeCategory,
    EnvelopeStatus,
    TransactionBase,
    TransactionStatus,
    TransactionType,
    User,
)
from envelope_ledger.models import BudgetModel, EnvelopeModel, TransactionModel, UserModel

MODEL_FOR: dict[EntityType, type[DocumentBase]] = {
    EntityType.USER: UserModel,
    EntityType.BUDGET: BudgetModel,
    EntityType.ENVELOPE: EnvelopeModel,
    EntityType.TRANSACTION: TransactionModel,
}

_MONEY_FIELDS = frozenset({
    "total_income",
    "total_allocated",
    "total_spent",
    "total_remaining",
    "rollover_amount",
    "savings_goal",
    "spending_limit",
    "allocated_amount",
    "spent_amount",
    "current_balance",
    "max_overspend_amount",
    "amount",
})

_ENUM_FIELDS: dict[str, type] = {
    "default_budget_period": BudgetPeriodType,
    "budget_period_type": BudgetPeriodType,
    "category": EnvelopeCategory,
}

_STATUS_ENUM: dict[type, type] = {
    Budget: BudgetStatus,
    Envelope: EnvelopeStatus,
}


def _column_value(name: str, value: Any) -> Any:
    if name == "shared_with":
        return sorted(str(principal) for principal in value)
    if isinstance(value, Enum):
        return value.value
    return value


def entity_to_values(entity: Document) -> dict[str, Any]:
    """Column values for *entity*, including partition key and discriminator."""
    values = {
        f.name: _column_value(f.name, getattr(entity, f.name))
        for f in dataclasses.fields(entity)
    }
    values["partition_key"] = entity.routing_key
    if isinstance(entity, TransactionBase):
        values["transaction_type"] = entity.transaction_type.value
        values.setdefault("envelope_id", None)
        values.setdefault("from_envelope_id", None)
        values.setdefault("to_envelope_id", None)
    return values


def row_to_entity(entity_type: EntityType, row: DocumentBase) -> Document:
    """Build the frozen domain entity for an ORM row."""
    if entity_type is EntityType.TRANSACTION:
        cls: type[Document] = TRANSACTION_CLASSES[TransactionType(row.transaction_type)]
        status_enum: type | None = TransactionStatus
    else:
        cls = {EntityType.USER: User, EntityType.BUDGET: Budget, EntityType.ENVELOPE: Envelope}[entity_type]
        status_enum = _STATUS_ENUM.get(cls)

    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        value = getattr(row, f.name)
        if f.name in _MONEY_FIELDS and value is not None:
            value = normalize_money(value)
        elif f.name in _ENUM_FIELDS:
            value = _ENUM_FIELDS[f.name](value)
        elif f.name == "status" and status_enum is not None:
            value = status_enum(value)
        elif f.name == "shared_with":
            value = frozenset(UUID(principal) for principal in (value or ()))
        kwargs[f.name] = value
    return cls(**kwargs)
