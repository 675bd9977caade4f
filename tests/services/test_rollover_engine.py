"""
Tests for period close and carry-forward into the next period.
"""

from datetime import date
from decimal import Decimal

import pytest

from envelope_ledger.domain.entities import BudgetStatus
from envelope_ledger.exceptions import BudgetOverlapError, ValidationError
from envelope_ledger.services import BudgetDraft, PeriodTemplate, RecordExpense
from tests.conftest import FEB_END, FEB_START, JAN_END, JAN_START, OWNER_ID, PARTNER_ID

FEBRUARY = PeriodTemplate(name="February", start_date=FEB_START, end_date=FEB_END)


def _spend(ledger, budget, envelope, amount):
    ledger.record_expense(
        OWNER_ID,
        RecordExpense(budget_id=budget.id, envelope_id=envelope.id, amount=amount, transaction_date=JAN_START),
    )


class TestOpenNextPeriod:

    def test_carries_balances_and_links_envelopes(self, ledger, funded_budget, make_envelope, captured_logs):
        groceries = make_envelope(funded_budget.id, "Groceries", "600.00")
        rent = make_envelope(funded_budget.id, "Rent", "1500.00", allow_rollover=False)
        make_envelope(funded_budget.id, "Gift", "50.00", is_recurring=False)
        closed_env = make_envelope(funded_budget.id, "Old", "10.00")
        ledger.close_envelope(OWNER_ID, funded_budget.id, closed_env.id)
        _spend(ledger, funded_budget, groceries, "127.43")
        ledger.share_budget(OWNER_ID, funded_budget.id, [PARTNER_ID])
        ledger.close_budget(OWNER_ID, funded_budget.id)

        result = ledger.open_next_period(OWNER_ID, funded_budget.id, FEBRUARY)

        by_name = {env.name: env for env in result.envelopes}
        assert set(by_name) == {"Groceries", "Rent"}

        assert by_name["Groceries"].rollover_amount == Decimal("472.57")
        assert by_name["Groceries"].allocated_amount == Decimal("600.00")
        assert by_name["Groceries"].current_balance == Decimal("1072.57")
        assert by_name["Groceries"].previous_envelope_id == groceries.id
        assert by_name["Groceries"].sort_order == groceries.sort_order

        assert by_name["Rent"].rollover_amount == Decimal("0")
        assert by_name["Rent"].previous_envelope_id is None
        assert rent.id != by_name["Rent"].id

        assert result.carried_total == Decimal("472.57")
        assert result.budget.status == BudgetStatus.DRAFT
        assert result.budget.previous_budget_id == funded_budget.id
        assert result.budget.rollover_amount == Decimal("472.57")
        assert result.budget.total_allocated == Decimal("2100.00")
        assert result.budget.shared_with == {PARTNER_ID}
        assert result.warnings
        assert any(r["message"] == "budget_rolled_over" for r in captured_logs())

        # Copied sharing reaches the membership index as well
        assert result.budget.id in {b.id for b in ledger.list_budgets_for_user(PARTNER_ID)}

    def test_negative_balance_carries(self, ledger, funded_budget, make_envelope):
        dining = make_envelope(funded_budget.id, "Dining", "100.00", is_overspend_allowed=True)
        _spend(ledger, funded_budget, dining, "130.00")
        ledger.close_budget(OWNER_ID, funded_budget.id)

        result = ledger.open_next_period(OWNER_ID, funded_budget.id, FEBRUARY)

        (seeded,) = result.envelopes
        assert seeded.rollover_amount == Decimal("-30.00")
        assert seeded.current_balance == Decimal("70.00")

    def test_budget_without_rollover_carries_nothing(self, ledger, make_envelope):
        budget = ledger.create_budget(
            OWNER_ID,
            BudgetDraft(name="January", start_date=JAN_START, end_date=JAN_END, allow_rollover=False),
        )
        ledger.activate_budget(OWNER_ID, budget.id)
        make_envelope(budget.id, "Groceries", "0")
        ledger.close_budget(OWNER_ID, budget.id)

        result = ledger.open_next_period(OWNER_ID, budget.id, FEBRUARY)
        assert [env.rollover_amount for env in result.envelopes] == [Decimal("0")]
        assert result.budget.allow_rollover is False

    def test_previous_must_be_closed(self, ledger, funded_budget):
        with pytest.raises(ValidationError):
            ledger.open_next_period(OWNER_ID, funded_budget.id, FEBRUARY)

    def test_next_period_may_not_overlap(self, ledger, funded_budget):
        ledger.create_budget(OWNER_ID, BudgetDraft(name="Feb", start_date=FEB_START, end_date=FEB_END))
        ledger.close_budget(OWNER_ID, funded_budget.id)

        with pytest.raises(BudgetOverlapError):
            ledger.open_next_period(OWNER_ID, funded_budget.id, FEBRUARY)

    def test_chained_periods(self, ledger, funded_budget, make_envelope):
        groceries = make_envelope(funded_budget.id, "Groceries", "100.00")
        _spend(ledger, funded_budget, groceries, "80.00")
        ledger.close_budget(OWNER_ID, funded_budget.id)

        february = ledger.open_next_period(OWNER_ID, funded_budget.id, FEBRUARY).budget
        ledger.activate_budget(OWNER_ID, february.id)
        ledger.close_budget(OWNER_ID, february.id)
        march = ledger.open_next_period(
            OWNER_ID,
            february.id,
            PeriodTemplate(name="March", start_date=date(2026, 3, 1), end_date=date(2026, 3, 31)),
        )

        (seeded,) = march.envelopes
        assert seeded.rollover_amount == Decimal("120.00")
