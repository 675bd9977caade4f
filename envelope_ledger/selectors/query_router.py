"""
QueryRouter -- routing-key scoped read plans for the hot access paths.

Responsibility:
    Turns list requests into ``QueryPlan`` values and executes them through
    the Entity Store:

      - envelopes of a budget, ordered by sort order then name
      - transactions of a budget, newest first, optionally narrowed to one
        envelope (as target, source or destination), a type, a status or a
        date window
      - budgets visible to a principal, served by the membership index

Architecture position:
    Ledger > Selectors.  Read-only; the façade authorizes before calling.

Invariants enforced:
    - Envelope and transaction plans carry exactly one routing key (the
      budget id).  A plan without one is logged as
      ``cross_partition_query_rejected`` and raises CrossPartitionQueryError.
    - Page size is bounded by ``max_query_limit``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from envelope_ledger.domain.entities import (
    Budget,
    BudgetStatus,
    Document,
    EntityType,
    Envelope,
    TransactionBase,
    TransactionStatus,
    TransactionType,
)
from envelope_ledger.exceptions import CrossPartitionQueryError, ValidationError
from envelope_ledger.logging_config import get_logger
from envelope_ledger.selectors.base import BaseSelector
from envelope_ledger.store import Filter, Order

logger = get_logger("selectors.query_router")

DEFAULT_MAX_QUERY_LIMIT = 500

_PARTITIONED = frozenset({EntityType.ENVELOPE, EntityType.TRANSACTION})

MEMBERSHIP_INDEX = "budget_memberships"


@dataclass(frozen=True)
class QueryPlan:
    """
    A resolved read: which partition, which predicates, which order.

    ``index`` names the access path the plan relies on; it is informational
    and shows up in the plan log line.
    """

    entity_type: EntityType
    routing_key: UUID | None
    filters: tuple[Filter, ...] = ()
    order_by: tuple[Order, ...] = ()
    limit: int | None = None
    index: str = "partition"
    principal_id: UUID | None = None

    @property
    def is_single_partition(self) -> bool:
        return self.routing_key is not None


@dataclass(frozen=True)
class TransactionQuery:
    """Optional narrowing for transaction listings."""

    envelope_id: UUID | None = None
    transaction_type: TransactionType | None = None
    status: TransactionStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    include_void: bool = True


class QueryRouter(BaseSelector):
    """Plans and executes partition-scoped list reads."""

    def __init__(self, session: Session, max_query_limit: int = DEFAULT_MAX_QUERY_LIMIT):
        super().__init__(session)
        self._max_limit = max_query_limit

    def _bounded(self, limit: int | None) -> int:
        if limit is None:
            return self._max_limit
        if limit <= 0:
            raise ValidationError("limit must be positive", field="limit")
        return min(limit, self._max_limit)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan_envelopes(self, budget_id: UUID | None, limit: int | None = None) -> QueryPlan:
        return QueryPlan(
            entity_type=EntityType.ENVELOPE,
            routing_key=budget_id,
            filters=(Filter("is_active", "eq", True),),
            order_by=(Order("sort_order"), Order("name")),
            limit=self._bounded(limit),
            index="idx_envelope_partition_sort",
        )

    def plan_transactions(
        self,
        budget_id: UUID | None,
        query: TransactionQuery | None = None,
        limit: int | None = None,
    ) -> QueryPlan:
        query = query or TransactionQuery()
        filters = [Filter("is_active", "eq", True)]
        index = "idx_transaction_partition_date"
        if query.envelope_id is not None:
            filters.append(
                Filter(
                    "envelope_id",
                    "eq",
                    query.envelope_id,
                    alternates=("from_envelope_id", "to_envelope_id"),
                )
            )
            index = "idx_transaction_partition_envelope"
        if query.transaction_type is not None:
            filters.append(Filter("transaction_type", "eq", query.transaction_type))
        if query.status is not None:
            filters.append(Filter("status", "eq", query.status))
        elif not query.include_void:
            filters.append(Filter("status", "ne", TransactionStatus.VOID))
        if query.date_from is not None:
            filters.append(Filter("transaction_date", "gte", query.date_from))
        if query.date_to is not None:
            filters.append(Filter("transaction_date", "lte", query.date_to))
        if query.date_from and query.date_to and query.date_from > query.date_to:
            raise ValidationError("date_from must not be after date_to", field="date_from")
        return QueryPlan(
            entity_type=EntityType.TRANSACTION,
            routing_key=budget_id,
            filters=tuple(filters),
            order_by=(Order("transaction_date", descending=True), Order("created_at", descending=True)),
            limit=self._bounded(limit),
            index=index,
        )

    def plan_budgets_for_principal(self, principal_id: UUID) -> QueryPlan:
        return QueryPlan(
            entity_type=EntityType.BUDGET,
            routing_key=None,
            order_by=(Order("start_date", descending=True),),
            index=MEMBERSHIP_INDEX,
            principal_id=principal_id,
        )

    def validate(self, plan: QueryPlan) -> None:
        """
        Reject plans that would fan out across partitions.

        Raises:
            CrossPartitionQueryError: for an envelope or transaction plan
                without a routing key, or a budget plan that bypasses the
                membership index.
        """
        if plan.entity_type in _PARTITIONED and not plan.is_single_partition:
            reason = "no routing key; listing requires the owning budget id"
        elif plan.entity_type is EntityType.BUDGET and not plan.is_single_partition and (
            plan.index != MEMBERSHIP_INDEX or plan.principal_id is None
        ):
            reason = "budget listing must go through the membership index"
        elif plan.entity_type is EntityType.USER and not plan.is_single_partition:
            reason = "users are only addressable by id"
        else:
            return
        logger.warning(
            "cross_partition_query_rejected",
            extra={"entity_type": plan.entity_type.value, "index": plan.index, "reason": reason},
        )
        raise CrossPartitionQueryError(plan.entity_type.value, reason)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, plan: QueryPlan) -> Iterator[Document]:
        self.validate(plan)
        logger.debug(
            "query_plan_executed",
            extra={
                "entity_type": plan.entity_type.value,
                "routing_key": plan.routing_key,
                "index": plan.index,
                "limit": plan.limit,
            },
        )
        if plan.index == MEMBERSHIP_INDEX:
            return iter(self._budgets_via_index(plan))
        return self.store.query(
            plan.entity_type,
            plan.routing_key,
            filters=plan.filters,
            order_by=plan.order_by,
            limit=plan.limit,
        )

    def _budgets_via_index(self, plan: QueryPlan) -> list[Budget]:
        budgets = list(self.store.budgets_for_principal(plan.principal_id))
        budgets.sort(key=lambda b: (b.start_date, str(b.id)), reverse=True)
        return budgets

    # ------------------------------------------------------------------
    # Convenience readers
    # ------------------------------------------------------------------

    def list_envelopes(self, budget_id: UUID, limit: int | None = None) -> list[Envelope]:
        return list(self.execute(self.plan_envelopes(budget_id, limit)))

    def list_transactions(
        self,
        budget_id: UUID,
        query: TransactionQuery | None = None,
        limit: int | None = None,
    ) -> list[TransactionBase]:
        return list(self.execute(self.plan_transactions(budget_id, query, limit)))

    def list_budgets_for_principal(
        self,
        principal_id: UUID,
        status: BudgetStatus | None = None,
    ) -> list[Budget]:
        budgets = self.execute(self.plan_budgets_for_principal(principal_id))
        return [b for b in budgets if status is None or b.status == status]
