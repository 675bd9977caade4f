"""
EntityStore -- typed, routing-key addressed persistence for ledger documents.

Responsibility:
    The only component that touches document tables.  Exposes a small
    document-store contract over SQLAlchemy:

        get(type, id, routing_key)              -> entity | *NotFoundError
        put(entity, expected_version)           -> entity | ConcurrencyConflictError
        query(type, routing_key, filters, ...)  -> lazy iterator of entities

    and maintains the ``budget_memberships`` secondary index that serves the
    one acknowledged cross-routing-key read ("all budgets for a principal").

Architecture position:
    Ledger > Store.  Imports db/, models/ and domain/.  Services and
    selectors call it; it never calls them.

Invariants enforced:
    - Every read and write is scoped by (id, partition_key); a document is
      never visible under a foreign routing key.
    - Optimistic concurrency: an update is a compare-and-swap on
      ``version``.  Zero rows matched means another writer got there first
      and ConcurrencyConflictError is raised; nothing is retried here.
    - Budget membership rows are rewritten in the same flush as the budget
      document, so the index never lags the sharing set it mirrors.

Failure modes:
    - UserNotFoundError / BudgetNotFoundError / EnvelopeNotFoundError /
      TransactionNotFoundError from ``get`` for missing or soft-deleted
      documents.
    - ConcurrencyConflictError from ``put`` on a stale version or a
      duplicate insert.
    - CrossPartitionQueryError from ``query`` without a routing key.
    - SQLAlchemyError propagates; the unit of work owning the session rolls
      back.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from envelope_ledger.domain.entities import Budget, Document, EntityType
from envelope_ledger.exceptions import (
    BudgetNotFoundError,
    ConcurrencyConflictError,
    CrossPartitionQueryError,
    EnvelopeNotFoundError,
    ReferenceNotFoundError,
    TransactionNotFoundError,
    UserNotFoundError,
)
from envelope_ledger.logging_config import get_logger
from envelope_ledger.models import BudgetMembershipModel
from envelope_ledger.store.mappers import MODEL_FOR, entity_to_values, row_to_entity

logger = get_logger("store.entity_store")

_NOT_FOUND: dict[EntityType, type[ReferenceNotFoundError]] = {
    EntityType.USER: UserNotFoundError,
    EntityType.BUDGET: BudgetNotFoundError,
    EntityType.ENVELOPE: EnvelopeNotFoundError,
    EntityType.TRANSACTION: TransactionNotFoundError,
}

# Rows fetched per round trip when a query result is iterated lazily.
QUERY_BATCH_SIZE = 100


@dataclass(frozen=True)
class Filter:
    """
    Column predicate: ``field <op> value``.

    With ``alternates`` the predicate matches when any of ``field`` or the
    alternate columns satisfies it.
    """

    field: str
    op: str
    value: Any
    alternates: tuple[str, ...] = ()

    OPERATORS = ("eq", "ne", "in", "gte", "lte")

    def __post_init__(self) -> None:
        if self.op not in self.OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op!r}")


@dataclass(frozen=True)
class Order:
    field: str
    descending: bool = False


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(item) for item in value]
    return value


class EntityStore:
    """
    Document store over the ledger tables.

    Contract:
        Accepts a Session from the caller and only flushes; commit and
        rollback belong to the unit of work that opened the session.

    Guarantees:
        - Returned entities are frozen domain values carrying the version
          they were read or written at.
        - ``query`` results are produced lazily, batch by batch.

    Non-goals:
        - Does NOT authorize; callers check access before reaching here.
        - Does NOT recompute derived balances.
    """

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------
    # Point reads
    # ------------------------------------------------------------------

    def find(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        routing_key: UUID,
        *,
        include_inactive: bool = False,
    ) -> Document | None:
        """Point read by id within one partition; None when absent."""
        model = MODEL_FOR[entity_type]
        stmt = (
            select(model)
            .where(model.id == entity_id, model.partition_key == routing_key)
            .execution_options(populate_existing=True)
        )
        row = self._session.execute(stmt).scalar_one_or_none()
        if row is None or (not row.is_active and not include_inactive):
            return None
        return row_to_entity(entity_type, row)

    def get(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        routing_key: UUID,
        *,
        include_inactive: bool = False,
    ) -> Document:
        """
        Point read by id within one partition.

        Raises:
            ReferenceNotFoundError subclass matching *entity_type* when the
            document is absent, soft-deleted, or lives under another
            routing key.
        """
        entity = self.find(entity_type, entity_id, routing_key, include_inactive=include_inactive)
        if entity is None:
            raise _NOT_FOUND[entity_type](str(entity_id))
        return entity

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, entity: Document, expected_version: int | None = None) -> Document:
        """
        Insert or compare-and-swap update a document.

        Args:
            entity: The full document to store.
            expected_version: None inserts a new document; otherwise the
                version the caller read, which must still be current.

        Returns:
            The stored entity carrying its new version.

        Raises:
            ConcurrencyConflictError: if the stored version differs from
                *expected_version* or the id is already taken on insert.
        """
        entity_type = entity.entity_type
        model = MODEL_FOR[entity_type]
        values = entity_to_values(entity)

        if expected_version is None:
            new_version = 1
            values["version"] = new_version
            # The failed statement poisons the unit of work; the session
            # owner rolls back when the conflict propagates.
            try:
                self._session.execute(insert(model).values(**values))
            except IntegrityError:
                logger.warning(
                    "entity_insert_conflict",
                    extra={"entity_type": entity_type.value, "entity_id": str(entity.id)},
                )
                raise ConcurrencyConflictError(entity_type.value, str(entity.id), None) from None
        else:
            new_version = expected_version + 1
            values.pop("id")
            values["version"] = new_version
            stmt = (
                update(model)
                .where(
                    model.id == entity.id,
                    model.partition_key == entity.routing_key,
                    model.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self._session.execute(stmt)
            if result.rowcount != 1:
                logger.warning(
                    "entity_version_conflict",
                    extra={
                        "entity_type": entity_type.value,
                        "entity_id": str(entity.id),
                        "expected_version": expected_version,
                    },
                )
                raise ConcurrencyConflictError(entity_type.value, str(entity.id), expected_version)

        if isinstance(entity, Budget):
            self._sync_memberships(entity)

        logger.debug(
            "entity_stored",
            extra={
                "entity_type": entity_type.value,
                "entity_id": str(entity.id),
                "version": new_version,
            },
        )
        return replace(entity, version=new_version)

    def _sync_memberships(self, budget: Budget) -> None:
        self._session.execute(
            delete(BudgetMembershipModel).where(BudgetMembershipModel.budget_id == budget.id)
        )
        if not budget.is_active:
            return
        self._session.execute(
            insert(BudgetMembershipModel),
            [
                {
                    "principal_id": principal_id,
                    "budget_id": budget.id,
                    "is_owner": principal_id == budget.owner_id,
                }
                for principal_id in sorted(budget.participants, key=str)
            ],
        )

    # ------------------------------------------------------------------
    # Partition-scoped queries
    # ------------------------------------------------------------------

    @staticmethod
    def _clause(column, op: str, value: Any):
        if op == "eq":
            return column.is_(None) if value is None else column == value
        if op == "ne":
            return column.is_not(None) if value is None else column != value
        if op == "in":
            return column.in_(value)
        if op == "gte":
            return column >= value
        return column <= value

    def _where(self, model, filters: Sequence[Filter]) -> list:
        clauses = []
        for flt in filters:
            value = _plain(flt.value)
            alternatives = [
                self._clause(getattr(model, name), flt.op, value)
                for name in (flt.field, *flt.alternates)
            ]
            clauses.append(alternatives[0] if len(alternatives) == 1 else or_(*alternatives))
        return clauses

    def query(
        self,
        entity_type: EntityType,
        routing_key: UUID,
        filters: Sequence[Filter] = (),
        order_by: Sequence[Order] = (),
        limit: int | None = None,
    ) -> Iterator[Document]:
        """
        Lazily iterate documents of one partition.

        Rows are fetched in batches of ``QUERY_BATCH_SIZE`` as the iterator
        is consumed.

        Raises:
            CrossPartitionQueryError: if *routing_key* is None.
        """
        if routing_key is None:
            raise CrossPartitionQueryError(entity_type.value, "routing key is required")
        model = MODEL_FOR[entity_type]
        stmt = select(model).where(model.partition_key == routing_key, *self._where(model, filters))
        for order in order_by:
            column = getattr(model, order.field)
            stmt = stmt.order_by(column.desc() if order.descending else column.asc())
        stmt = stmt.order_by(model.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        stmt = stmt.execution_options(yield_per=QUERY_BATCH_SIZE, populate_existing=True)
        return (row_to_entity(entity_type, row) for row in self._session.scalars(stmt))

    def count(
        self,
        entity_type: EntityType,
        routing_key: UUID,
        filters: Sequence[Filter] = (),
    ) -> int:
        model = MODEL_FOR[entity_type]
        stmt = select(func.count()).select_from(model).where(
            model.partition_key == routing_key, *self._where(model, filters)
        )
        return self._session.execute(stmt).scalar_one()

    # ------------------------------------------------------------------
    # Secondary index reads
    # ------------------------------------------------------------------

    def budget_ids_for_principal(self, principal_id: UUID, *, owned_only: bool = False) -> list[UUID]:
        """Budget ids the principal owns or shares, from the membership index."""
        stmt = select(BudgetMembershipModel.budget_id).where(
            BudgetMembershipModel.principal_id == principal_id
        )
        if owned_only:
            stmt = stmt.where(BudgetMembershipModel.is_owner.is_(True))
        return list(self._session.scalars(stmt.order_by(BudgetMembershipModel.budget_id)))

    def budgets_for_principal(self, principal_id: UUID, *, owned_only: bool = False) -> Iterator[Budget]:
        """Resolve the membership index into budgets, one point read each."""
        for budget_id in self.budget_ids_for_principal(principal_id, owned_only=owned_only):
            budget = self.find(EntityType.BUDGET, budget_id, budget_id)
            if budget is not None:
                yield budget

    def closed_budgets_ended_before(self, cutoff) -> list[Budget]:
        """
        Maintenance lookup on the (status, end_date) index for the archival
        sweep.  This is the one sanctioned read across budget partitions.
        """
        model = MODEL_FOR[EntityType.BUDGET]
        stmt = (
            select(model)
            .where(model.status == "closed", model.end_date < cutoff, model.is_active.is_(True))
            .order_by(model.end_date, model.id)
            .execution_options(populate_existing=True)
        )
        return [row_to_entity(EntityType.BUDGET, row) for row in self._session.scalars(stmt)]
