"""
BudgetService -- budget lifecycle, current-budget switch and sharing.

Responsibility:
    Creates budgets, moves them through draft -> active (and back while
    empty), switches the owner's current budget, maintains the shared
    participant set, and archives closed budgets past retention.

Architecture position:
    Ledger > Services -- imperative shell.  Closing and rolling over live
    in RolloverEngine.

Invariants enforced:
    - start_date < end_date; no overlap with another draft/active budget of
      the same owner (inclusive ranges).
    - At most one current budget per owner.  The owner's User document
      holds the authoritative ``current_budget_id`` and is written under
      its version token, so two concurrent activations for one owner
      cannot both commit; the budgets' ``is_current`` flags are flipped in
      the same unit of work.
    - active -> draft only while the budget has no transactions.
    - The owner is never in ``shared_with``; its size is bounded.

Failure modes:
    - ValidationError family, BudgetOverlapError, SharingLimitExceededError,
      InvalidStateTransitionError, UserNotFoundError,
      ConcurrencyConflictError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from envelope_ledger.db.types import ZERO, parse_amount, validate_currency
from envelope_ledger.domain.entities import (
    Budget,
    BudgetPeriodType,
    BudgetStatus,
    EntityType,
    User,
)
from envelope_ledger.domain.lifecycle import require_transition
from envelope_ledger.exceptions import (
    ConcurrencyConflictError,
    InvalidDateRangeError,
    InvalidStateTransitionError,
    SharingLimitExceededError,
    ValidationError,
)
from envelope_ledger.logging_config import get_logger
from envelope_ledger.services.base import SYSTEM_ACTOR_ID, BaseService

logger = get_logger("services.budget_service")

DEFAULT_MAX_SHARED_PARTICIPANTS = 10


@dataclass(frozen=True)
class BudgetDraft:
    """Input for ``create_budget``; unset fields fall back to owner preferences."""

    name: str
    start_date: date
    end_date: date
    fiscal_year: int | None = None
    fiscal_month: int | None = None
    budget_period_type: BudgetPeriodType | None = None
    description: str | None = None
    currency: str | None = None
    allow_rollover: bool | None = None
    savings_goal: Decimal | str | int | None = None
    spending_limit: Decimal | str | int | None = None
    budget_id: UUID | None = None


class BudgetService(BaseService):

    def __init__(self, session, clock=None, max_shared_participants: int = DEFAULT_MAX_SHARED_PARTICIPANTS):
        super().__init__(session, clock)
        self._max_shared = max_shared_participants

    def _get_owner(self, owner_id: UUID) -> User:
        return self.store.get(EntityType.USER, owner_id, owner_id)

    def create_budget(self, owner_id: UUID, draft: BudgetDraft) -> Budget:
        if draft.start_date >= draft.end_date:
            raise InvalidDateRangeError(str(draft.start_date), str(draft.end_date))
        owner = self._get_owner(owner_id)
        currency = validate_currency(draft.currency or owner.currency)
        now = self.clock.now()
        budget = Budget(
            id=draft.budget_id or uuid4(),
            created_at=now,
            created_by=owner_id,
            updated_at=now,
            updated_by=owner_id,
            owner_id=owner_id,
            name=draft.name,
            description=draft.description,
            budget_period_type=draft.budget_period_type or owner.default_budget_period,
            start_date=draft.start_date,
            end_date=draft.end_date,
            fiscal_year=draft.fiscal_year or draft.start_date.year,
            fiscal_month=draft.fiscal_month or draft.start_date.month,
            currency=currency,
            allow_rollover=owner.enable_rollover if draft.allow_rollover is None else draft.allow_rollover,
            savings_goal=(
                parse_amount(draft.savings_goal, field="savings_goal", allow_zero=True)
                if draft.savings_goal is not None
                else ZERO
            ),
            spending_limit=(
                parse_amount(draft.spending_limit, field="spending_limit")
                if draft.spending_limit is not None
                else None
            ),
        )
        self._ensure_no_overlap(owner_id, budget.start_date, budget.end_date)
        stored = self.store.put(budget)
        logger.info(
            "budget_created",
            extra={
                "budget_id": str(stored.id),
                "owner_id": str(owner_id),
                "start_date": stored.start_date,
                "end_date": stored.end_date,
            },
        )
        return stored

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate_budget(self, budget_id: UUID, actor_id: UUID) -> Budget:
        """
        Make *budget_id* the owner's active, current budget.

        A draft is activated first; an already-active budget just becomes
        current.  The previous current budget loses its flag in the same
        unit of work.
        """
        budget = self._get_budget(budget_id)
        if budget.status != BudgetStatus.ACTIVE:
            require_transition("budget", budget.id, budget.status, BudgetStatus.ACTIVE)

        owner = self._get_owner(budget.owner_id)
        now = self.clock.now()
        previous_id = owner.current_budget_id
        if previous_id is not None and previous_id != budget.id:
            previous = self.store.find(EntityType.BUDGET, previous_id, previous_id)
            if previous is not None and previous.is_current:
                self.store.put(
                    previous.touched(actor_id, now, is_current=False),
                    expected_version=previous.version,
                )

        activated = self.store.put(
            budget.touched(actor_id, now, status=BudgetStatus.ACTIVE, is_current=True),
            expected_version=budget.version,
        )
        # The owner's version token serializes current-budget switches.
        self.store.put(
            owner.touched(actor_id, now, current_budget_id=budget.id),
            expected_version=owner.version,
        )
        logger.info(
            "budget_activated",
            extra={
                "budget_id": str(budget.id),
                "owner_id": str(budget.owner_id),
                "previous_current_budget_id": str(previous_id) if previous_id else None,
                "actor_id": str(actor_id),
            },
        )
        return activated

    def revert_to_draft(self, budget_id: UUID, actor_id: UUID) -> Budget:
        budget = self._get_budget(budget_id)
        require_transition("budget", budget.id, budget.status, BudgetStatus.DRAFT)
        if self.store.count(EntityType.TRANSACTION, budget.id) > 0:
            raise InvalidStateTransitionError(
                entity_type="budget",
                entity_id=str(budget.id),
                current=budget.status.value,
                target=BudgetStatus.DRAFT.value,
                reason="budget already has transactions",
            )

        now = self.clock.now()
        if budget.is_current:
            owner = self._get_owner(budget.owner_id)
            if owner.current_budget_id == budget.id:
                self.store.put(
                    owner.touched(actor_id, now, current_budget_id=None),
                    expected_version=owner.version,
                )
        reverted = self.store.put(
            budget.touched(actor_id, now, status=BudgetStatus.DRAFT, is_current=False),
            expected_version=budget.version,
        )
        logger.info(
            "budget_reverted_to_draft",
            extra={"budget_id": str(budget.id), "actor_id": str(actor_id)},
        )
        return reverted

    def archive_expired(self, as_of: date, retention_days: int) -> list[Budget]:
        """
        Archive closed budgets whose end date is older than the retention
        window.  A budget modified concurrently is skipped and picked up by
        the next sweep.
        """
        cutoff = as_of - timedelta(days=retention_days)
        archived: list[Budget] = []
        for budget in self.store.closed_budgets_ended_before(cutoff):
            require_transition("budget", budget.id, budget.status, BudgetStatus.ARCHIVED)
            now = self.clock.now()
            try:
                stored = self.store.put(
                    budget.touched(SYSTEM_ACTOR_ID, now, status=BudgetStatus.ARCHIVED, archived_at=now),
                    expected_version=budget.version,
                )
            except ConcurrencyConflictError:
                logger.warning("budget_archive_skipped", extra={"budget_id": str(budget.id)})
                continue
            archived.append(stored)
        logger.info(
            "budgets_archived",
            extra={"as_of": as_of, "cutoff": cutoff, "count": len(archived)},
        )
        return archived

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    def share_budget(self, budget_id: UUID, principal_ids, actor_id: UUID) -> Budget:
        budget = self._get_budget(budget_id)
        requested = frozenset(principal_ids)
        if budget.owner_id in requested:
            raise ValidationError("Budget owner cannot be a shared participant", field="shared_with")
        shared = budget.shared_with | requested
        if len(shared) > self._max_shared:
            logger.warning(
                "sharing_limit_exceeded",
                extra={"budget_id": str(budget.id), "limit": self._max_shared, "requested": len(shared)},
            )
            raise SharingLimitExceededError(str(budget.id), self._max_shared, len(shared))
        if shared == budget.shared_with:
            return budget

        stored = self.store.put(
            budget.touched(actor_id, self.clock.now(), shared_with=shared),
            expected_version=budget.version,
        )
        logger.info(
            "budget_shared",
            extra={
                "budget_id": str(budget.id),
                "added": sorted(str(p) for p in shared - budget.shared_with),
                "actor_id": str(actor_id),
            },
        )
        return stored

    def unshare_budget(self, budget_id: UUID, principal_id: UUID, actor_id: UUID) -> Budget:
        budget = self._get_budget(budget_id)
        if principal_id not in budget.shared_with:
            return budget
        stored = self.store.put(
            budget.touched(actor_id, self.clock.now(), shared_with=budget.shared_with - {principal_id}),
            expected_version=budget.version,
        )
        logger.info(
            "budget_unshared",
            extra={
                "budget_id": str(budget.id),
                "removed": str(principal_id),
                "actor_id": str(actor_id),
            },
        )
        return stored
