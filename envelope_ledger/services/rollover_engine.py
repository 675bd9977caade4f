"""
RolloverEngine -- period close and carry-forward into the next period.

Responsibility:
    ``close_budget`` freezes a budget at the end of its period.
    ``open_next_period`` seeds a new draft budget from a closed one: every
    recurring envelope is copied, and where both the budget and the
    envelope allow rollover the final balance (negative included) becomes
    the new envelope's rollover amount, linked through previous_envelope_id.

Architecture position:
    Ledger > Services -- imperative shell.

Invariants enforced:
    - Only an active budget can be closed; closing clears is_current and
      the owner's current-budget pointer in the same unit of work.
    - The previous budget must be closed or archived before rolling over.
    - Copied envelope names and sort orders are unique in the new budget;
      a collision rejects the whole rollover before anything is written.
    - The new budget's range must not overlap another draft/active budget
      of the owner.

Failure modes:
    - InvalidStateTransitionError, ValidationError, EnvelopeConflictError,
      BudgetOverlapError, ConcurrencyConflictError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from envelope_ledger.db.types import ZERO, parse_amount
from envelope_ledger.domain.balances import recompute_envelope
from envelope_ledger.domain.entities import (
    Budget,
    BudgetPeriodType,
    BudgetStatus,
    EntityType,
    Envelope,
    EnvelopeStatus,
    User,
)
from envelope_ledger.domain.lifecycle import require_transition
from envelope_ledger.exceptions import EnvelopeConflictError, ValidationError
from envelope_ledger.logging_config import get_logger
from envelope_ledger.services.base import BaseService, over_allocation_warnings

logger = get_logger("services.rollover_engine")

_ROLLABLE = (BudgetStatus.CLOSED, BudgetStatus.ARCHIVED)


@dataclass(frozen=True)
class PeriodTemplate:
    """Shape of the next period; unset fields are inherited from the previous budget."""

    name: str
    start_date: date
    end_date: date
    fiscal_year: int | None = None
    fiscal_month: int | None = None
    budget_period_type: BudgetPeriodType | None = None
    description: str | None = None
    savings_goal: Decimal | str | int | None = None
    spending_limit: Decimal | str | int | None = None
    budget_id: UUID | None = None


@dataclass(frozen=True)
class RolloverResult:
    budget: Budget
    envelopes: tuple[Envelope, ...]
    carried_total: Decimal
    warnings: tuple[str, ...] = field(default_factory=tuple)


def carries_balance(previous_budget: Budget, envelope: Envelope) -> bool:
    return previous_budget.allow_rollover and envelope.allow_rollover


class RolloverEngine(BaseService):

    def close_budget(self, budget_id: UUID, actor_id: UUID) -> Budget:
        budget = self._get_budget(budget_id)
        require_transition("budget", budget.id, budget.status, BudgetStatus.CLOSED)

        # Totals are re-derived once more so the frozen figures are exact.
        budget = self._save_budget_totals(budget, actor_id)
        now = self.clock.now()
        closed = budget.touched(
            actor_id,
            now,
            status=BudgetStatus.CLOSED,
            is_current=False,
            closed_at=now,
        )
        closed = self.store.put(closed, expected_version=budget.version)

        owner: User | None = self.store.find(EntityType.USER, budget.owner_id, budget.owner_id)
        if owner is not None and owner.current_budget_id == budget.id:
            self.store.put(
                owner.touched(actor_id, now, current_budget_id=None),
                expected_version=owner.version,
            )

        logger.info(
            "budget_closed",
            extra={
                "budget_id": str(closed.id),
                "total_allocated": closed.total_allocated,
                "total_spent": closed.total_spent,
                "actor_id": str(actor_id),
            },
        )
        return closed

    def open_next_period(
        self,
        previous_budget_id: UUID,
        template: PeriodTemplate,
        actor_id: UUID,
    ) -> RolloverResult:
        previous = self._get_budget(previous_budget_id)
        if previous.status not in _ROLLABLE:
            raise ValidationError(
                f"Budget {previous.id} is {previous.status.value}; close it before opening the next period",
                field="previous_budget_id",
            )

        now = self.clock.now()
        new_budget = Budget(
            id=template.budget_id or uuid4(),
            created_at=now,
            created_by=actor_id,
            updated_at=now,
            updated_by=actor_id,
            owner_id=previous.owner_id,
            name=template.name,
            description=template.description if template.description is not None else previous.description,
            budget_period_type=template.budget_period_type or previous.budget_period_type,
            start_date=template.start_date,
            end_date=template.end_date,
            fiscal_year=template.fiscal_year or template.start_date.year,
            fiscal_month=template.fiscal_month or template.start_date.month,
            currency=previous.currency,
            allow_rollover=previous.allow_rollover,
            previous_budget_id=previous.id,
            savings_goal=(
                parse_amount(template.savings_goal, field="savings_goal", allow_zero=True)
                if template.savings_goal is not None
                else previous.savings_goal
            ),
            spending_limit=(
                parse_amount(template.spending_limit, field="spending_limit")
                if template.spending_limit is not None
                else previous.spending_limit
            ),
            shared_with=previous.shared_with,
        )
        self._ensure_no_overlap(new_budget.owner_id, new_budget.start_date, new_budget.end_date)

        seeds = self._seed_envelopes(previous, new_budget, actor_id)
        self._check_collisions(new_budget.id, seeds)

        stored_budget = self.store.put(new_budget)
        stored_envelopes = tuple(self.store.put(seed) for seed in seeds)
        stored_budget = self._save_budget_totals(stored_budget, actor_id, changed=stored_envelopes)

        carried = sum((env.rollover_amount for env in stored_envelopes), ZERO)
        warnings = over_allocation_warnings(stored_budget)
        logger.info(
            "budget_rolled_over",
            extra={
                "previous_budget_id": str(previous.id),
                "budget_id": str(stored_budget.id),
                "envelopes": len(stored_envelopes),
                "carried_total": carried,
                "actor_id": str(actor_id),
            },
        )
        return RolloverResult(
            budget=stored_budget,
            envelopes=stored_envelopes,
            carried_total=carried,
            warnings=warnings,
        )

    def _seed_envelopes(self, previous: Budget, new_budget: Budget, actor_id: UUID) -> list[Envelope]:
        now = self.clock.now()
        seeds: list[Envelope] = []
        for envelope in sorted(self._envelopes_of(previous.id), key=lambda e: (e.sort_order, e.name)):
            if not envelope.is_recurring or envelope.status == EnvelopeStatus.CLOSED:
                continue
            carry = carries_balance(previous, envelope)
            seed = Envelope(
                id=uuid4(),
                created_at=now,
                created_by=actor_id,
                updated_at=now,
                updated_by=actor_id,
                budget_id=new_budget.id,
                name=envelope.name,
                category=envelope.category,
                description=envelope.description,
                icon=envelope.icon,
                color=envelope.color,
                sort_order=envelope.sort_order,
                allocated_amount=envelope.allocated_amount,
                rollover_amount=envelope.current_balance if carry else ZERO,
                is_recurring=True,
                allow_rollover=envelope.allow_rollover,
                is_overspend_allowed=envelope.is_overspend_allowed,
                max_overspend_amount=envelope.max_overspend_amount,
                previous_envelope_id=envelope.id if carry else None,
            )
            seeds.append(recompute_envelope(seed))
        return seeds

    @staticmethod
    def _check_collisions(budget_id: UUID, seeds: list[Envelope]) -> None:
        names: set[str] = set()
        orders: set[int] = set()
        for seed in seeds:
            key = seed.name.strip().casefold()
            if key in names:
                raise EnvelopeConflictError(str(budget_id), "name", seed.name)
            if seed.sort_order in orders:
                raise EnvelopeConflictError(str(budget_id), "sort_order", str(seed.sort_order))
            names.add(key)
            orders.add(seed.sort_order)
