"""ORM models for the four ledger documents and the membership index."""

from envelope_ledger.models.budget import BudgetMembershipModel, BudgetModel
from envelope_ledger.models.envelope import EnvelopeModel
from envelope_ledger.models.transaction import TransactionModel
from envelope_ledger.models.user import UserModel

__all__ = [
    "BudgetMembershipModel",
    "BudgetModel",
    "EnvelopeModel",
    "TransactionModel",
    "UserModel",
]
