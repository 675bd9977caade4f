"""
Balance Calculator -- pure derivation of envelope and budget aggregates.

Responsibility:
    Computes every derived money field in the ledger:
      currentBalance = allocatedAmount + rolloverAmount - spentAmount
      totalRemaining = totalIncome - totalAllocated
    plus the per-transaction balance effect, the overspend floor, and the
    rollover carry chain across periods.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.  Called by the
    Transaction Processor, Envelope Service and Rollover Engine in the same
    unit of work as the mutation, so a stored document never carries a stale
    derived field.

Invariants enforced:
    - Envelope balance formula holds on every envelope returned from here.
    - Budget remaining formula holds on every budget returned from here.
    - A voided transaction has a zero effect.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from uuid import UUID

from envelope_ledger.db.types import ZERO, round_money
from envelope_ledger.domain.entities import (
    Budget,
    Envelope,
    ExpenseTransaction,
    IncomeTransaction,
    TransactionBase,
    TransferTransaction,
)
from envelope_ledger.exceptions import InsufficientBalanceError


def envelope_balance(allocated: Decimal, rollover: Decimal, spent: Decimal) -> Decimal:
    return allocated + rollover - spent


def budget_remaining(income: Decimal, allocated: Decimal) -> Decimal:
    return income - allocated


def recompute_envelope(envelope: Envelope) -> Envelope:
    """Return *envelope* with current_balance re-derived from its components."""
    return replace(
        envelope,
        current_balance=round_money(
            envelope_balance(
                envelope.allocated_amount,
                envelope.rollover_amount,
                envelope.spent_amount,
            )
        ),
    )


def adjust_envelope(
    envelope: Envelope,
    allocated_delta: Decimal = ZERO,
    spent_delta: Decimal = ZERO,
) -> Envelope:
    """Apply allocation/spend deltas and recompute the balance."""
    return recompute_envelope(
        replace(
            envelope,
            allocated_amount=envelope.allocated_amount + allocated_delta,
            spent_amount=envelope.spent_amount + spent_delta,
        )
    )


# ---------------------------------------------------------------------------
# Overspend policy
# ---------------------------------------------------------------------------


def overspend_floor(envelope: Envelope) -> Decimal | None:
    """
    Lowest balance the envelope may reach.

    Returns 0 when overspend is not allowed, ``-maxOverspendAmount`` when it
    is allowed with a bound, and None when it is allowed without a bound.
    """
    if not envelope.is_overspend_allowed:
        return ZERO
    if envelope.max_overspend_amount is None:
        return None
    return -envelope.max_overspend_amount


def projected_balance(envelope: Envelope, debit: Decimal) -> Decimal:
    return envelope.current_balance - debit


def ensure_can_debit(envelope: Envelope, debit: Decimal) -> Decimal:
    """
    Check a debit against the overspend policy.

    Returns:
        The projected balance after the debit.

    Raises:
        InsufficientBalanceError: if the projected balance falls below the
            envelope's overspend floor.
    """
    projected = projected_balance(envelope, debit)
    floor = overspend_floor(envelope)
    if floor is not None and projected < floor:
        raise InsufficientBalanceError(
            envelope_id=str(envelope.id),
            current_balance=envelope.current_balance,
            requested=debit,
            floor=floor,
        )
    return projected


# ---------------------------------------------------------------------------
# Transaction effects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionEffect:
    """
    How a transaction moves money.

    ``income_delta`` applies to the budget's totalIncome; the two maps apply
    per envelope to allocatedAmount and spentAmount respectively.
    """

    income_delta: Decimal = ZERO
    allocation_deltas: dict[UUID, Decimal] = field(default_factory=dict)
    spent_deltas: dict[UUID, Decimal] = field(default_factory=dict)

    def negated(self) -> "TransactionEffect":
        return TransactionEffect(
            income_delta=-self.income_delta,
            allocation_deltas={k: -v for k, v in self.allocation_deltas.items()},
            spent_deltas={k: -v for k, v in self.spent_deltas.items()},
        )

    @property
    def envelope_ids(self) -> frozenset[UUID]:
        return frozenset(self.allocation_deltas) | frozenset(self.spent_deltas)


NO_EFFECT = TransactionEffect()


def combine_effects(*effects: TransactionEffect) -> TransactionEffect:
    """Sum several effects into one; zero deltas are dropped."""
    income = ZERO
    allocations: dict[UUID, Decimal] = {}
    spent: dict[UUID, Decimal] = {}
    for effect in effects:
        income += effect.income_delta
        for envelope_id, delta in effect.allocation_deltas.items():
            allocations[envelope_id] = allocations.get(envelope_id, ZERO) + delta
        for envelope_id, delta in effect.spent_deltas.items():
            spent[envelope_id] = spent.get(envelope_id, ZERO) + delta
    return TransactionEffect(
        income_delta=income,
        allocation_deltas={k: v for k, v in allocations.items() if v != ZERO},
        spent_deltas={k: v for k, v in spent.items() if v != ZERO},
    )


def transaction_effect(txn: TransactionBase) -> TransactionEffect:
    """
    Balance contribution of *txn*.

    - income: credits totalIncome and, when an envelope is named, its allocation
    - expense: debits the envelope's spentAmount
    - transfer: moves allocation from source to destination
    - void: nothing
    """
    if txn.is_void:
        return NO_EFFECT
    amount = txn.amount
    if isinstance(txn, IncomeTransaction):
        allocations = {txn.envelope_id: amount} if txn.envelope_id is not None else {}
        return TransactionEffect(income_delta=amount, allocation_deltas=allocations)
    if isinstance(txn, ExpenseTransaction):
        return TransactionEffect(spent_deltas={txn.envelope_id: amount})
    if isinstance(txn, TransferTransaction):
        return TransactionEffect(
            allocation_deltas={
                txn.from_envelope_id: -amount,
                txn.to_envelope_id: amount,
            }
        )
    raise TypeError(f"Unknown transaction variant: {type(txn).__name__}")


def apply_effect(envelope: Envelope, effect: TransactionEffect) -> Envelope:
    return adjust_envelope(
        envelope,
        allocated_delta=effect.allocation_deltas.get(envelope.id, ZERO),
        spent_delta=effect.spent_deltas.get(envelope.id, ZERO),
    )


def debits(effect: TransactionEffect) -> dict[UUID, Decimal]:
    """Net amount by which each envelope's balance decreases under *effect*."""
    result: dict[UUID, Decimal] = {}
    for envelope_id in effect.envelope_ids:
        net = effect.spent_deltas.get(envelope_id, ZERO) - effect.allocation_deltas.get(envelope_id, ZERO)
        if net > ZERO:
            result[envelope_id] = net
    return result


# ---------------------------------------------------------------------------
# Budget aggregates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetTotals:
    total_allocated: Decimal
    total_spent: Decimal
    rollover_amount: Decimal


def budget_totals(envelopes: Iterable[Envelope]) -> BudgetTotals:
    """Sum allocation, spend and rollover over non-deleted envelopes."""
    allocated = spent = rollover = ZERO
    for envelope in envelopes:
        if not envelope.is_active:
            continue
        allocated += envelope.allocated_amount
        spent += envelope.spent_amount
        rollover += envelope.rollover_amount
    return BudgetTotals(
        total_allocated=round_money(allocated),
        total_spent=round_money(spent),
        rollover_amount=round_money(rollover),
    )


def recompute_budget(
    budget: Budget,
    envelopes: Iterable[Envelope],
    income_delta: Decimal = ZERO,
) -> Budget:
    """Return *budget* with every aggregate re-derived from *envelopes*."""
    totals = budget_totals(envelopes)
    total_income = round_money(budget.total_income + income_delta)
    return replace(
        budget,
        total_income=total_income,
        total_allocated=totals.total_allocated,
        total_spent=totals.total_spent,
        total_remaining=round_money(budget_remaining(total_income, totals.total_allocated)),
        rollover_amount=totals.rollover_amount,
    )


# ---------------------------------------------------------------------------
# Verification and history
# ---------------------------------------------------------------------------


def envelope_is_consistent(envelope: Envelope) -> bool:
    return envelope.current_balance == envelope_balance(
        envelope.allocated_amount, envelope.rollover_amount, envelope.spent_amount
    )


def budget_is_consistent(budget: Budget) -> bool:
    return budget.total_remaining == budget_remaining(budget.total_income, budget.total_allocated)


def derive_spent(envelope_id: UUID, transactions: Iterable[TransactionBase]) -> Decimal:
    """Spend of one envelope re-derived from its transaction history."""
    total = ZERO
    for txn in transactions:
        total += transaction_effect(txn).spent_deltas.get(envelope_id, ZERO)
    return round_money(total)


@dataclass(frozen=True)
class PeriodActivity:
    """Allocation and spend of one envelope in one period."""

    allocated: Decimal
    spent: Decimal


def rollover_chain(
    periods: Sequence[PeriodActivity],
    opening_rollover: Decimal = ZERO,
) -> list[Decimal]:
    """
    Closing balance of each period when every balance carries forward.

    closing[n] = allocated[n] + carry[n] - spent[n], carry[n+1] = closing[n].
    Computing the chain in one pass gives the same closing balances as
    rolling over period by period.
    """
    closings: list[Decimal] = []
    carry = opening_rollover
    for period in periods:
        carry = round_money(envelope_balance(period.allocated, carry, period.spent))
        closings.append(carry)
    return closings
