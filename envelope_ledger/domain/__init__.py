"""Pure domain core: entities, lifecycles, balance calculator, document codec."""

from envelope_ledger.domain.entities import (
    Budget,
    BudgetPeriodType,
    BudgetStatus,
    Document,
    EntityType,
    Envelope,
    EnvelopeCategory,
    EnvelopeStatus,
    ExpenseTransaction,
    IncomeTransaction,
    Transaction,
    TransactionBase,
    TransactionStatus,
    TransactionType,
    TransferTransaction,
    User,
)

__all__ = [
    "Budget",
    "BudgetPeriodType",
    "BudgetStatus",
    "Document",
    "EntityType",
    "Envelope",
    "EnvelopeCategory",
    "EnvelopeStatus",
    "ExpenseTransaction",
    "IncomeTransaction",
    "Transaction",
    "TransactionBase",
    "TransactionStatus",
    "TransactionType",
    "TransferTransaction",
    "User",
]
