"""
Tests for the Entity Store (``envelope_ledger.store.entity_store``).

Invariants tested:
- Point reads are scoped by routing key; a foreign key never resolves.
- put() is a compare-and-swap on ``version``; stale writers conflict.
- The budget membership index mirrors owner_id plus shared_with.
- Queries require a routing key and are ordered deterministically.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from envelope_ledger.domain.balances import recompute_envelope
from envelope_ledger.domain.entities import (
    Budget,
    BudgetStatus,
    EntityType,
    Envelope,
    ExpenseTransaction,
    IncomeTransaction,
    User,
)
from envelope_ledger.exceptions import (
    BudgetNotFoundError,
    ConcurrencyConflictError,
    CrossPartitionQueryError,
    EnvelopeNotFoundError,
    UserNotFoundError,
)
from envelope_ledger.store import EntityStore, Filter, Order

NOW = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


def _audit(actor) -> dict:
    return dict(id=uuid4(), created_at=NOW, created_by=actor, updated_at=NOW, updated_by=actor)


def _budget(owner, **kwargs) -> Budget:
    fields = dict(
        _audit(owner),
        owner_id=owner,
        name="January",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 1, 31),
        fiscal_year=2026,
        fiscal_month=1,
    )
    fields.update(kwargs)
    return Budget(**fields)


def _envelope(budget: Budget, name: str, sort_order: int = 0, **kwargs) -> Envelope:
    return recompute_envelope(
        Envelope(
            **_audit(budget.owner_id),
            budget_id=budget.id,
            name=name,
            sort_order=sort_order,
            **kwargs,
        )
    )


class TestPointReads:

    def test_put_then_get(self, store):
        owner = uuid4()
        stored = store.put(_budget(owner, total_income=Decimal("5000.00")))
        assert stored.version == 1

        loaded = store.get(EntityType.BUDGET, stored.id, stored.id)
        assert loaded == stored
        assert loaded.total_income == Decimal("5000.00")
        assert loaded.created_at.tzinfo is not None

    def test_missing_raises_typed_not_found(self, store):
        with pytest.raises(BudgetNotFoundError):
            store.get(EntityType.BUDGET, uuid4(), uuid4())
        with pytest.raises(UserNotFoundError):
            store.get(EntityType.USER, uuid4(), uuid4())

    def test_foreign_routing_key_does_not_resolve(self, store):
        budget = store.put(_budget(uuid4()))
        other = store.put(_budget(uuid4()))
        envelope = store.put(_envelope(budget, "Rent"))

        assert store.get(EntityType.ENVELOPE, envelope.id, budget.id).id == envelope.id
        with pytest.raises(EnvelopeNotFoundError):
            store.get(EntityType.ENVELOPE, envelope.id, other.id)

    def test_soft_deleted_hidden_unless_requested(self, store):
        budget = store.put(_budget(uuid4()))
        envelope = store.put(_envelope(budget, "Rent"))
        store.put(envelope.touched(budget.owner_id, NOW, is_active=False), expected_version=envelope.version)

        assert store.find(EntityType.ENVELOPE, envelope.id, budget.id) is None
        deleted = store.get(EntityType.ENVELOPE, envelope.id, budget.id, include_inactive=True)
        assert deleted.is_active is False

    def test_transaction_variant_round_trip(self, store):
        budget = store.put(_budget(uuid4()))
        envelope = store.put(_envelope(budget, "Groceries"))
        expense = ExpenseTransaction(
            **_audit(budget.owner_id),
            budget_id=budget.id,
            owner_id=budget.owner_id,
            amount=Decimal("127.43"),
            transaction_date=date(2026, 1, 10),
            created_by_user_id=budget.owner_id,
            envelope_id=envelope.id,
        )
        store.put(expense)
        loaded = store.get(EntityType.TRANSACTION, expense.id, budget.id)
        assert isinstance(loaded, ExpenseTransaction)
        assert loaded.envelope_id == envelope.id
        assert loaded.amount == Decimal("127.43")

    def test_money_survives_storage_exactly(self, session_factory):
        owner = uuid4()
        amount = Decimal("1234567890123456.78")
        budget = _budget(owner, total_income=amount, total_remaining=amount)
        income = IncomeTransaction(
            **_audit(owner),
            budget_id=budget.id,
            owner_id=owner,
            amount=amount,
            transaction_date=date(2026, 1, 10),
            created_by_user_id=owner,
        )
        with session_factory() as session:
            writer = EntityStore(session)
            writer.put(budget)
            writer.put(income)
            session.commit()

        with session_factory() as session:
            reader = EntityStore(session)
            assert reader.get(EntityType.TRANSACTION, income.id, budget.id).amount == amount
            loaded = reader.get(EntityType.BUDGET, budget.id, budget.id)
            assert loaded.total_income == amount
            assert loaded.total_remaining == amount


class TestOptimisticConcurrency:

    def test_update_increments_version(self, store):
        budget = store.put(_budget(uuid4()))
        renamed = store.put(budget.touched(budget.owner_id, NOW, name="Renamed"), expected_version=1)
        assert renamed.version == 2
        assert store.get(EntityType.BUDGET, budget.id, budget.id).name == "Renamed"

    def test_stale_version_conflicts(self, store, captured_logs):
        budget = store.put(_budget(uuid4()))
        store.put(budget.touched(budget.owner_id, NOW, name="First"), expected_version=1)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            store.put(budget.touched(budget.owner_id, NOW, name="Second"), expected_version=1)

        assert exc_info.value.expected_version == 1
        assert exc_info.value.code == "CONCURRENCY_CONFLICT"
        assert store.get(EntityType.BUDGET, budget.id, budget.id).name == "First"
        assert any(r["message"] == "entity_version_conflict" for r in captured_logs())

    def test_update_of_missing_document_conflicts(self, store):
        with pytest.raises(ConcurrencyConflictError):
            store.put(_budget(uuid4()), expected_version=1)

    def test_duplicate_insert_conflicts(self, session_factory):
        user = User(**_audit(uuid4()), email="a@example.com", display_name="A")
        with session_factory() as first:
            EntityStore(first).put(user)
            first.commit()
        with session_factory() as second:
            with pytest.raises(ConcurrencyConflictError):
                EntityStore(second).put(user)
            second.rollback()


class TestMembershipIndex:

    def test_owner_and_participants_indexed(self, store):
        owner, partner = uuid4(), uuid4()
        budget = store.put(_budget(owner, shared_with=frozenset({partner})))

        assert store.budget_ids_for_principal(owner) == [budget.id]
        assert store.budget_ids_for_principal(partner) == [budget.id]
        assert store.budget_ids_for_principal(partner, owned_only=True) == []
        assert store.budget_ids_for_principal(owner, owned_only=True) == [budget.id]

    def test_unshare_removes_row(self, store):
        owner, partner = uuid4(), uuid4()
        budget = store.put(_budget(owner, shared_with=frozenset({partner})))
        store.put(budget.touched(owner, NOW, shared_with=frozenset()), expected_version=budget.version)
        assert store.budget_ids_for_principal(partner) == []
        assert store.budget_ids_for_principal(owner) == [budget.id]

    def test_soft_deleted_budget_leaves_index(self, store):
        owner = uuid4()
        budget = store.put(_budget(owner))
        store.put(budget.touched(owner, NOW, is_active=False), expected_version=budget.version)
        assert list(store.budgets_for_principal(owner)) == []

    def test_closed_budgets_ended_before(self, store):
        owner = uuid4()
        old = store.put(_budget(owner, status=BudgetStatus.CLOSED))
        store.put(
            _budget(
                owner,
                status=BudgetStatus.CLOSED,
                start_date=date(2026, 2, 1),
                end_date=date(2026, 2, 28),
                fiscal_month=2,
            )
        )
        store.put(_budget(owner, start_date=date(2025, 1, 1), end_date=date(2025, 1, 31), fiscal_year=2025))

        found = store.closed_budgets_ended_before(date(2026, 2, 1))
        assert [b.id for b in found] == [old.id]


class TestPartitionQueries:

    def test_requires_routing_key(self, store):
        with pytest.raises(CrossPartitionQueryError):
            list(store.query(EntityType.ENVELOPE, None))

    def test_query_stays_in_partition(self, store):
        first = store.put(_budget(uuid4()))
        second = store.put(_budget(uuid4()))
        store.put(_envelope(first, "Rent", 0))
        store.put(_envelope(second, "Rent", 0))

        names = [(e.budget_id, e.name) for e in store.query(EntityType.ENVELOPE, first.id)]
        assert names == [(first.id, "Rent")]

    def test_filters_and_order(self, store):
        budget = store.put(_budget(uuid4()))
        store.put(_envelope(budget, "Utilities", 2))
        store.put(_envelope(budget, "Rent", 0))
        store.put(_envelope(budget, "Fun", 1, is_active=False))

        result = store.query(
            EntityType.ENVELOPE,
            budget.id,
            filters=(Filter("is_active", "eq", True),),
            order_by=(Order("sort_order", descending=True),),
        )
        assert [e.name for e in result] == ["Utilities", "Rent"]

    def test_alternate_columns(self, store):
        budget = store.put(_budget(uuid4()))
        envelope = store.put(_envelope(budget, "Savings"))
        income = IncomeTransaction(
            **_audit(budget.owner_id),
            budget_id=budget.id,
            owner_id=budget.owner_id,
            amount=Decimal("10.00"),
            transaction_date=date(2026, 1, 2),
            created_by_user_id=budget.owner_id,
            envelope_id=envelope.id,
        )
        store.put(income)

        assert store.count(
            EntityType.TRANSACTION,
            budget.id,
            filters=(Filter("envelope_id", "eq", envelope.id, alternates=("from_envelope_id", "to_envelope_id")),),
        ) == 1
        assert store.count(EntityType.TRANSACTION, budget.id, filters=(Filter("envelope_id", "eq", uuid4()),)) == 0

    def test_limit(self, store):
        budget = store.put(_budget(uuid4()))
        for position in range(5):
            store.put(_envelope(budget, f"Env {position}", position))
        assert len(list(store.query(EntityType.ENVELOPE, budget.id, limit=3))) == 3

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            Filter("name", "like", "R%")
