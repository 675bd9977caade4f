"""
Tests for the document codec (``envelope_ledger.domain.documents``).

The persisted layout is consumed by reporting and UI collaborators, so the
key names, discriminators and scalar encodings are checked directly.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from envelope_ledger.domain.documents import SCHEMA_VERSION, from_document, to_camel, to_document
from envelope_ledger.domain.entities import (
    Budget,
    BudgetStatus,
    Envelope,
    TransferTransaction,
    User,
)
from envelope_ledger.exceptions import ValidationError

NOW = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)
ACTOR = uuid4()


def _audit() -> dict:
    return dict(id=uuid4(), created_at=NOW, created_by=ACTOR, updated_at=NOW, updated_by=ACTOR)


class TestCamelCase:

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("name", "name"),
            ("current_balance", "currentBalance"),
            ("max_overspend_amount", "maxOverspendAmount"),
        ],
    )
    def test_to_camel(self, name, expected):
        assert to_camel(name) == expected


class TestToDocument:

    def test_budget_layout(self):
        partner = uuid4()
        budget = Budget(
            **_audit(),
            owner_id=ACTOR,
            name="January",
            start_date=date(2026, 1, 1),
            end_date=date(2026, 1, 31),
            fiscal_year=2026,
            fiscal_month=1,
            status=BudgetStatus.ACTIVE,
            total_income=Decimal("5000.00"),
            total_spent=Decimal("127.43"),
            shared_with=frozenset({partner}),
        )
        doc = to_document(budget)
        assert doc["type"] == "budget"
        assert doc["schemaVersion"] == SCHEMA_VERSION
        assert doc["partitionKey"] == str(budget.id)
        assert doc["status"] == "active"
        assert doc["startDate"] == "2026-01-01"
        assert doc["totalIncome"] == "5000.00"
        assert doc["sharedWith"] == [str(partner)]
        assert doc["savingsActual"] == "4872.57"
        assert doc["createdAt"] == NOW.isoformat()

    def test_envelope_partition_is_budget(self):
        budget_id = uuid4()
        doc = to_document(Envelope(**_audit(), budget_id=budget_id, name="Rent"))
        assert doc["partitionKey"] == str(budget_id)
        assert doc["budgetId"] == str(budget_id)

    def test_transaction_discriminator(self):
        txn = TransferTransaction(
            **_audit(),
            budget_id=uuid4(),
            owner_id=ACTOR,
            amount=Decimal("100.00"),
            transaction_date=date(2026, 1, 5),
            created_by_user_id=ACTOR,
            from_envelope_id=uuid4(),
            to_envelope_id=uuid4(),
        )
        doc = to_document(txn)
        assert doc["type"] == "transaction"
        assert doc["transactionType"] == "transfer"
        assert doc["amount"] == "100.00"
        assert doc["status"] == "pending"


class TestFromDocument:

    def test_rebuilds_entity(self):
        user = User(**_audit(), email="a@example.com", display_name="A", current_budget_id=uuid4())
        assert from_document(to_document(user)) == user

    def test_rebuilds_transfer_variant(self):
        txn = TransferTransaction(
            **_audit(),
            budget_id=uuid4(),
            owner_id=ACTOR,
            amount=Decimal("12.50"),
            transaction_date=date(2026, 1, 5),
            created_by_user_id=ACTOR,
            from_envelope_id=uuid4(),
            to_envelope_id=uuid4(),
        )
        rebuilt = from_document(to_document(txn))
        assert isinstance(rebuilt, TransferTransaction)
        assert rebuilt.amount == Decimal("12.50")

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            from_document({"type": "ledger"})

    def test_unknown_transaction_type(self):
        with pytest.raises(ValidationError):
            from_document({"type": "transaction", "transactionType": "refund"})

    def test_missing_required_key(self):
        doc = to_document(Envelope(**_audit(), budget_id=uuid4(), name="Rent"))
        del doc["name"]
        with pytest.raises(ValidationError) as exc_info:
            from_document(doc)
        assert exc_info.value.field == "name"
