"""
EnvelopeService -- envelope setup, allocation and lifecycle.

Creating an envelope, changing its allocation or deleting it re-derives
the parent budget's totals in the same unit of work.  Over-allocation
(allocated beyond income) is allowed; it is logged and returned as a
warning on the ``EnvelopeChange``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID, uuid4

from envelope_ledger.db.types import ZERO, parse_amount
from envelope_ledger.domain.balances import adjust_envelope, ensure_can_debit, recompute_envelope
from envelope_ledger.domain.entities import (
    Budget,
    EntityType,
    Envelope,
    EnvelopeCategory,
    EnvelopeStatus,
    TransactionStatus,
)
from envelope_ledger.domain.lifecycle import require_transition
from envelope_ledger.exceptions import EnvelopeConflictError, ValidationError
from envelope_ledger.logging_config import get_logger
from envelope_ledger.services.base import BaseService, over_allocation_warnings
from envelope_ledger.store import Filter

logger = get_logger("services.envelope_service")


@dataclass(frozen=True)
class EnvelopeDraft:
    name: str
    allocated_amount: Decimal | str | int = ZERO
    category: EnvelopeCategory = EnvelopeCategory.ESSENTIAL
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    sort_order: int | None = None
    is_recurring: bool = True
    allow_rollover: bool = True
    is_overspend_allowed: bool = False
    max_overspend_amount: Decimal | str | int | None = None
    envelope_id: UUID | None = None


@dataclass(frozen=True)
class EnvelopeChange:
    envelope: Envelope
    budget: Budget
    warnings: tuple[str, ...] = field(default_factory=tuple)


class EnvelopeService(BaseService):

    def _get_envelope(self, budget_id: UUID, envelope_id: UUID) -> Envelope:
        return self.store.get(EntityType.ENVELOPE, envelope_id, budget_id)

    def create_envelope(self, budget_id: UUID, draft: EnvelopeDraft, actor_id: UUID) -> EnvelopeChange:
        allocated = parse_amount(draft.allocated_amount, field="allocated_amount", allow_zero=True)
        max_overspend = (
            parse_amount(draft.max_overspend_amount, field="max_overspend_amount", allow_zero=True)
            if draft.max_overspend_amount is not None
            else None
        )
        if draft.sort_order is not None and draft.sort_order < 0:
            raise ValidationError("sort_order must not be negative", field="sort_order")

        budget = self._get_budget(budget_id)
        self._require_open_budget(budget)
        siblings = self._envelopes_of(budget.id)
        name_key = draft.name.strip().casefold()
        if any(env.name.strip().casefold() == name_key for env in siblings):
            raise EnvelopeConflictError(str(budget.id), "name", draft.name)
        if draft.sort_order is None:
            sort_order = max((env.sort_order for env in siblings), default=-1) + 1
        elif any(env.sort_order == draft.sort_order for env in siblings):
            raise EnvelopeConflictError(str(budget.id), "sort_order", str(draft.sort_order))
        else:
            sort_order = draft.sort_order

        now = self.clock.now()
        envelope = recompute_envelope(
            Envelope(
                id=draft.envelope_id or uuid4(),
                created_at=now,
                created_by=actor_id,
                updated_at=now,
                updated_by=actor_id,
                budget_id=budget.id,
                name=draft.name.strip(),
                category=draft.category,
                description=draft.description,
                icon=draft.icon,
                color=draft.color,
                sort_order=sort_order,
                allocated_amount=allocated,
                is_recurring=draft.is_recurring,
                allow_rollover=draft.allow_rollover,
                is_overspend_allowed=draft.is_overspend_allowed,
                max_overspend_amount=max_overspend,
            )
        )
        stored = self.store.put(envelope)
        budget = self._save_budget_totals(budget, actor_id, changed=[stored])
        logger.info(
            "envelope_created",
            extra={
                "budget_id": str(budget.id),
                "envelope_id": str(stored.id),
                "allocated_amount": allocated,
                "actor_id": str(actor_id),
            },
        )
        return EnvelopeChange(stored, budget, over_allocation_warnings(budget))

    def set_allocation(
        self,
        budget_id: UUID,
        envelope_id: UUID,
        amount: Decimal | str | int,
        actor_id: UUID,
    ) -> EnvelopeChange:
        """
        Replace the envelope's allocation.

        Lowering the allocation is a debit against the envelope balance and
        is held to the overspend policy.
        """
        allocated = parse_amount(amount, field="allocated_amount", allow_zero=True)
        budget = self._get_budget(budget_id)
        self._require_open_budget(budget)
        envelope = self._get_envelope(budget.id, envelope_id)
        if envelope.status == EnvelopeStatus.CLOSED:
            raise ValidationError(f"Envelope {envelope.id} is closed", field="envelope_id")

        delta = allocated - envelope.allocated_amount
        if delta < ZERO:
            ensure_can_debit(envelope, -delta)
        changed = adjust_envelope(envelope, allocated_delta=delta).touched(actor_id, self.clock.now())
        stored = self.store.put(changed, expected_version=envelope.version)
        budget = self._save_budget_totals(budget, actor_id, changed=[stored])
        logger.info(
            "envelope_allocation_set",
            extra={
                "budget_id": str(budget.id),
                "envelope_id": str(envelope.id),
                "previous_amount": envelope.allocated_amount,
                "allocated_amount": allocated,
                "actor_id": str(actor_id),
            },
        )
        return EnvelopeChange(stored, budget, over_allocation_warnings(budget))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _transition(self, budget_id: UUID, envelope_id: UUID, target: EnvelopeStatus, actor_id: UUID) -> Envelope:
        budget = self._get_budget(budget_id)
        self._require_open_budget(budget)
        envelope = self._get_envelope(budget.id, envelope_id)
        require_transition("envelope", envelope.id, envelope.status, target)
        stored = self.store.put(
            envelope.touched(actor_id, self.clock.now(), status=target),
            expected_version=envelope.version,
        )
        logger.info(
            "envelope_status_changed",
            extra={
                "envelope_id": str(envelope.id),
                "from_status": envelope.status.value,
                "to_status": target.value,
                "actor_id": str(actor_id),
            },
        )
        return stored

    def pause_envelope(self, budget_id: UUID, envelope_id: UUID, actor_id: UUID) -> Envelope:
        return self._transition(budget_id, envelope_id, EnvelopeStatus.PAUSED, actor_id)

    def resume_envelope(self, budget_id: UUID, envelope_id: UUID, actor_id: UUID) -> Envelope:
        return self._transition(budget_id, envelope_id, EnvelopeStatus.ACTIVE, actor_id)

    def close_envelope(self, budget_id: UUID, envelope_id: UUID, actor_id: UUID) -> Envelope:
        return self._transition(budget_id, envelope_id, EnvelopeStatus.CLOSED, actor_id)

    def delete_envelope(self, budget_id: UUID, envelope_id: UUID, actor_id: UUID) -> EnvelopeChange:
        """Soft delete; refused while pending transactions still point at it."""
        budget = self._get_budget(budget_id)
        self._require_open_budget(budget)
        envelope = self._get_envelope(budget.id, envelope_id)
        pending = self.store.count(
            EntityType.TRANSACTION,
            budget.id,
            filters=(
                Filter("envelope_id", "eq", envelope.id, alternates=("from_envelope_id", "to_envelope_id")),
                Filter("status", "eq", TransactionStatus.PENDING),
            ),
        )
        if pending:
            logger.warning(
                "envelope_delete_rejected",
                extra={"envelope_id": str(envelope.id), "pending_transactions": pending},
            )
            raise ValidationError(
                f"Envelope {envelope.id} has {pending} pending transaction(s)",
                field="envelope_id",
            )

        stored = self.store.put(
            envelope.touched(actor_id, self.clock.now(), is_active=False),
            expected_version=envelope.version,
        )
        budget = self._save_budget_totals(budget, actor_id, changed=[stored])
        logger.info(
            "envelope_deleted",
            extra={"budget_id": str(budget.id), "envelope_id": str(envelope.id), "actor_id": str(actor_id)},
        )
        return EnvelopeChange(stored, budget, over_allocation_warnings(budget))
