"""Entity Store: routing-key addressed document persistence."""

from envelope_ledger.store.entity_store import QUERY_BATCH_SIZE, EntityStore, Filter, Order
from envelope_ledger.store.mappers import MODEL_FOR, entity_to_values, row_to_entity

__all__ = [
    "EntityStore",
    "Filter",
    "Order",
    "QUERY_BATCH_SIZE",
    "MODEL_FOR",
    "entity_to_values",
    "row_to_entity",
]
