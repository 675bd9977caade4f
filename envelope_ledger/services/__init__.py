"""Write-side services of the envelope ledger."""

from envelope_ledger.services.access_control import (
    AccessCache,
    AccessControlResolver,
    AccessGrant,
    AccessOperation,
)
from envelope_ledger.services.base import SYSTEM_ACTOR_ID, BaseService
from envelope_ledger.services.budget_service import BudgetDraft, BudgetService
from envelope_ledger.services.envelope_service import EnvelopeChange, EnvelopeDraft, EnvelopeService
from envelope_ledger.services.rollover_engine import PeriodTemplate, RolloverEngine, RolloverResult
from envelope_ledger.services.transaction_processor import (
    ClearTransaction,
    ReconcileTransaction,
    RecordExpense,
    RecordIncome,
    RecordTransfer,
    TransactionCommand,
    TransactionOutcome,
    TransactionProcessor,
    UpdateTransaction,
    VoidTransaction,
)
from envelope_ledger.services.user_service import UserService

__all__ = [
    "AccessCache",
    "AccessControlResolver",
    "AccessGrant",
    "AccessOperation",
    "BaseService",
    "BudgetDraft",
    "BudgetService",
    "ClearTransaction",
    "EnvelopeChange",
    "EnvelopeDraft",
    "EnvelopeService",
    "PeriodTemplate",
    "ReconcileTransaction",
    "RecordExpense",
    "RecordIncome",
    "RecordTransfer",
    "RolloverEngine",
    "RolloverResult",
    "SYSTEM_ACTOR_ID",
    "TransactionCommand",
    "TransactionOutcome",
    "TransactionProcessor",
    "UpdateTransaction",
    "UserService",
    "VoidTransaction",
]
