"""Read-only selectors."""

from envelope_ledger.selectors.base import BaseSelector
from envelope_ledger.selectors.query_router import QueryPlan, QueryRouter, TransactionQuery

__all__ = [
    "BaseSelector",
    "QueryPlan",
    "QueryRouter",
    "TransactionQuery",
]
