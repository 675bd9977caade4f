"""
BaseService -- abstract base for the ledger's write services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service.  Services receive a SQLAlchemy ``Session`` from the
    caller, write through the Entity Store, and never commit.

Architecture position:
    Ledger > Services -- imperative shell around the pure domain core.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's unit of
      work and never commit or roll back themselves, so a multi-document
      mutation (transfer, rollover, current-budget switch) lands or fails
      as one.
    - Derived budget totals are recomputed from the stored envelopes in the
      same unit of work as the mutation that changed them.
"""

from __future__ import annotations

from abc import ABC
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from envelope_ledger.db.types import ZERO
from envelope_ledger.domain.balances import recompute_budget
from envelope_ledger.domain.clock import Clock, SystemClock
from envelope_ledger.domain.entities import Budget, BudgetStatus, EntityType, Envelope
from envelope_ledger.exceptions import BudgetOverlapError, ValidationError
from envelope_ledger.logging_config import get_logger
from envelope_ledger.store import EntityStore, Filter

logger = get_logger("services.base")

# Actor recorded for unattended maintenance writes (archival sweep).
SYSTEM_ACTOR_ID = UUID(int=0)

_OPEN_STATUSES = (BudgetStatus.DRAFT, BudgetStatus.ACTIVE)


class BaseService(ABC):
    """
    Abstract base class for all ledger services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller; writes go through
        ``self.store`` which only flushes.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT authorize; the façade resolves access first.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.store = EntityStore(session)
        self.clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _get_budget(self, budget_id: UUID) -> Budget:
        return self.store.get(EntityType.BUDGET, budget_id, budget_id)

    def _envelopes_of(self, budget_id: UUID) -> list[Envelope]:
        return list(
            self.store.query(
                EntityType.ENVELOPE,
                budget_id,
                filters=(Filter("is_active", "eq", True),),
            )
        )

    def _require_open_budget(self, budget: Budget) -> None:
        if not budget.accepts_transactions:
            raise ValidationError(
                f"Budget {budget.id} is {budget.status.value}; it no longer accepts changes",
                field="budget_id",
            )

    def _save_budget_totals(
        self,
        budget: Budget,
        actor_id: UUID,
        income_delta: Decimal = ZERO,
        changed: list[Envelope] | tuple[Envelope, ...] = (),
    ) -> Budget:
        """
        Re-derive the budget aggregates and store them.

        *changed* holds envelopes written earlier in this unit of work; they
        take precedence over the stored copies (a soft-deleted envelope
        drops out of the sums this way).
        """
        by_id = {env.id: env for env in self._envelopes_of(budget.id)}
        for env in changed:
            by_id[env.id] = env
        updated = recompute_budget(budget, by_id.values(), income_delta=income_delta)
        updated = updated.touched(actor_id, self.clock.now())
        stored = self.store.put(updated, expected_version=budget.version)
        if stored.is_over_allocated:
            logger.warning(
                "budget_over_allocated",
                extra={
                    "budget_id": str(stored.id),
                    "total_income": stored.total_income,
                    "total_allocated": stored.total_allocated,
                },
            )
        return stored

    def _ensure_no_overlap(
        self,
        owner_id: UUID,
        start_date: date,
        end_date: date,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Reject a date range that overlaps another draft or active budget of
        the same owner.  Ranges are inclusive on both ends.
        """
        for other in self.store.budgets_for_principal(owner_id, owned_only=True):
            if other.id == exclude_id or other.status not in _OPEN_STATUSES:
                continue
            if other.overlaps(start_date, end_date):
                logger.warning(
                    "budget_overlap_rejected",
                    extra={"owner_id": str(owner_id), "existing_budget_id": str(other.id)},
                )
                raise BudgetOverlapError(
                    owner_id=str(owner_id),
                    existing_budget_id=str(other.id),
                    overlap_start=str(max(start_date, other.start_date)),
                    overlap_end=str(min(end_date, other.end_date)),
                )


def over_allocation_warnings(budget: Budget) -> tuple[str, ...]:
    if not budget.is_over_allocated:
        return ()
    return (
        f"Budget {budget.id} is over-allocated: allocated {budget.total_allocated} "
        f"exceeds income {budget.total_income}",
    )
