"""
Property-based tests for the Balance Calculator.

Properties checked:
- Any sequence of accepted debits keeps the balance at or above the
  overspend floor, and the balance formula holds after every step.
- Applying an effect and then its negation restores the envelope exactly.
- Spend re-derived from history ignores void transactions.
- The one-pass rollover chain matches rolling over one period at a time.
"""

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from envelope_ledger.domain.balances import (
    NO_EFFECT,
    PeriodActivity,
    apply_effect,
    combine_effects,
    derive_spent,
    ensure_can_debit,
    envelope_is_consistent,
    overspend_floor,
    recompute_envelope,
    rollover_chain,
    transaction_effect,
)
from envelope_ledger.domain.entities import Envelope, ExpenseTransaction, TransactionStatus, TransferTransaction
from envelope_ledger.exceptions import InsufficientBalanceError

NOW = datetime(2026, 1, 15, tzinfo=timezone.utc)
ACTOR = uuid4()
BUDGET_ID = uuid4()

money = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("99999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
non_negative_money = st.decimals(
    min_value=Decimal("0.00"),
    max_value=Decimal("99999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@composite
def envelopes(draw):
    """Envelopes with a random allocation and overspend policy."""
    overspend = draw(st.booleans())
    bound = draw(st.one_of(st.none(), non_negative_money)) if overspend else None
    return recompute_envelope(
        Envelope(
            id=uuid4(),
            created_at=NOW,
            created_by=ACTOR,
            updated_at=NOW,
            updated_by=ACTOR,
            budget_id=BUDGET_ID,
            name="Fuzz",
            allocated_amount=draw(non_negative_money),
            rollover_amount=draw(st.decimals(
                min_value=Decimal("-500.00"),
                max_value=Decimal("500.00"),
                places=2,
                allow_nan=False,
                allow_infinity=False,
            )),
            is_overspend_allowed=overspend,
            max_overspend_amount=bound,
        )
    )


def _expense(envelope_id, amount, void=False) -> ExpenseTransaction:
    return ExpenseTransaction(
        id=uuid4(),
        created_at=NOW,
        created_by=ACTOR,
        updated_at=NOW,
        updated_by=ACTOR,
        budget_id=BUDGET_ID,
        owner_id=ACTOR,
        amount=amount,
        transaction_date=date(2026, 1, 15),
        created_by_user_id=ACTOR,
        envelope_id=envelope_id,
        status=TransactionStatus.VOID if void else TransactionStatus.PENDING,
        is_void=void,
    )


@settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture])
@given(envelope=envelopes(), debits=st.lists(money, max_size=20))
def test_accepted_debits_respect_floor(envelope, debits):
    floor = overspend_floor(envelope)
    starting_below_floor = floor is not None and envelope.current_balance < floor
    for debit in debits:
        try:
            projected = ensure_can_debit(envelope, debit)
        except InsufficientBalanceError:
            continue
        envelope = apply_effect(envelope, transaction_effect(_expense(envelope.id, debit)))
        assert envelope.current_balance == projected
        assert envelope_is_consistent(envelope)
        if floor is not None and not starting_below_floor:
            assert envelope.current_balance >= floor


@settings(max_examples=200, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(envelope=envelopes(), amount=money, as_transfer=st.booleans())
def test_negated_effect_restores_envelope(envelope, amount, as_transfer):
    if as_transfer:
        txn = TransferTransaction(
            id=uuid4(),
            created_at=NOW,
            created_by=ACTOR,
            updated_at=NOW,
            updated_by=ACTOR,
            budget_id=BUDGET_ID,
            owner_id=ACTOR,
            amount=amount,
            transaction_date=date(2026, 1, 15),
            created_by_user_id=ACTOR,
            from_envelope_id=envelope.id,
            to_envelope_id=uuid4(),
        )
    else:
        txn = _expense(envelope.id, amount)
    effect = transaction_effect(txn)

    restored = apply_effect(apply_effect(envelope, effect), effect.negated())

    assert restored == envelope
    assert combine_effects(effect, effect.negated()) == NO_EFFECT


@settings(max_examples=200, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(history=st.lists(st.tuples(money, st.booleans()), max_size=30))
def test_derived_spend_ignores_voids(history):
    envelope_id = uuid4()
    transactions = [_expense(envelope_id, amount, void) for amount, void in history]
    transactions.append(_expense(uuid4(), Decimal("1.00")))

    expected = sum((amount for amount, void in history if not void), Decimal("0"))
    assert derive_spent(envelope_id, transactions) == expected


@settings(max_examples=200, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    periods=st.lists(st.tuples(non_negative_money, non_negative_money), min_size=1, max_size=12),
    opening=non_negative_money,
)
def test_rollover_chain_matches_stepwise_rollover(periods, opening):
    activity = [PeriodActivity(allocated=a, spent=s) for a, s in periods]

    closings = []
    carry = opening
    for allocated, spent in periods:
        seeded = Envelope(
            id=uuid4(),
            created_at=NOW,
            created_by=ACTOR,
            updated_at=NOW,
            updated_by=ACTOR,
            budget_id=BUDGET_ID,
            name="Chain",
            allocated_amount=allocated,
            rollover_amount=carry,
        )
        closed = recompute_envelope(replace(seeded, spent_amount=spent))
        closings.append(closed.current_balance)
        carry = closed.current_balance

    assert rollover_chain(activity, opening) == closings
