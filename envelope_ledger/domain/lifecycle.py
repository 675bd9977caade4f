"""
Lifecycle state machines for budgets, envelopes and transactions.

Transitions are declared as data (allowed-target sets per state); services
call ``require_transition`` before mutating a status field.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from envelope_ledger.domain.entities import BudgetStatus, EnvelopeStatus, TransactionStatus
from envelope_ledger.exceptions import InvalidStateTransitionError

BUDGET_TRANSITIONS: dict[BudgetStatus, frozenset[BudgetStatus]] = {
    BudgetStatus.DRAFT: frozenset({BudgetStatus.ACTIVE}),
    # ACTIVE -> DRAFT is additionally guarded: only without transactions
    BudgetStatus.ACTIVE: frozenset({BudgetStatus.CLOSED, BudgetStatus.DRAFT}),
    BudgetStatus.CLOSED: frozenset({BudgetStatus.ARCHIVED}),
    BudgetStatus.ARCHIVED: frozenset(),  # Terminal
}

ENVELOPE_TRANSITIONS: dict[EnvelopeStatus, frozenset[EnvelopeStatus]] = {
    EnvelopeStatus.ACTIVE: frozenset({EnvelopeStatus.PAUSED, EnvelopeStatus.CLOSED}),
    EnvelopeStatus.PAUSED: frozenset({EnvelopeStatus.ACTIVE, EnvelopeStatus.CLOSED}),
    EnvelopeStatus.CLOSED: frozenset(),  # Terminal
}

TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({TransactionStatus.CLEARED, TransactionStatus.VOID}),
    TransactionStatus.CLEARED: frozenset({TransactionStatus.RECONCILED, TransactionStatus.VOID}),
    TransactionStatus.RECONCILED: frozenset({TransactionStatus.VOID}),
    TransactionStatus.VOID: frozenset(),  # Terminal, one-way
}

_TABLES: dict[type[Enum], dict] = {
    BudgetStatus: BUDGET_TRANSITIONS,
    EnvelopeStatus: ENVELOPE_TRANSITIONS,
    TransactionStatus: TRANSACTION_TRANSITIONS,
}


def validate_transition(current: Enum, target: Enum) -> bool:
    """Check if a status transition is valid."""
    table = _TABLES[type(current)]
    return target in table.get(current, frozenset())


def require_transition(
    entity_type: str,
    entity_id: UUID,
    current: Enum,
    target: Enum,
    reason: str | None = None,
) -> None:
    """
    Raise unless ``current -> target`` is an allowed transition.

    Raises:
        InvalidStateTransitionError: if the transition is not declared.
    """
    if not validate_transition(current, target):
        raise InvalidStateTransitionError(
            entity_type=entity_type,
            entity_id=str(entity_id),
            current=current.value,
            target=target.value,
            reason=reason,
        )
