"""
Tests for budget authorization and the access grant cache.

Invariants tested:
- Only the owner and shared participants reach a budget or its children.
- Denials are never cached; grants expire after the TTL.
- Sharing changes invalidate cached grants for the budget.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from envelope_ledger.exceptions import AccessDeniedError, BudgetNotFoundError
from envelope_ledger.services import (
    AccessCache,
    AccessControlResolver,
    AccessGrant,
    AccessOperation,
    RecordExpense,
)
from envelope_ledger.store import EntityStore
from tests.conftest import JAN_START, OWNER_ID, PARTNER_ID, STRANGER_ID


class FakeTimer:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestAccessCache:

    def test_grant_expires_after_ttl(self):
        timer = FakeTimer()
        cache = AccessCache(ttl_seconds=10, timer=timer)
        grant = AccessGrant(principal_id=uuid4(), budget_id=uuid4(), is_owner=True)
        cache.put(grant)

        timer.now = 9.9
        assert cache.get(grant.principal_id, grant.budget_id) == grant
        timer.now = 10.0
        assert cache.get(grant.principal_id, grant.budget_id) is None
        assert len(cache) == 0

    def test_lru_bound(self):
        cache = AccessCache(max_entries=2, timer=FakeTimer())
        budget_id = uuid4()
        grants = [AccessGrant(uuid4(), budget_id, False) for _ in range(3)]
        cache.put(grants[0])
        cache.put(grants[1])
        cache.get(grants[0].principal_id, budget_id)
        cache.put(grants[2])

        assert cache.get(grants[1].principal_id, budget_id) is None
        assert cache.get(grants[0].principal_id, budget_id) == grants[0]
        assert len(cache) == 2

    def test_invalidate_budget(self):
        cache = AccessCache(timer=FakeTimer())
        budget_id, other_id = uuid4(), uuid4()
        cache.put(AccessGrant(uuid4(), budget_id, True))
        cache.put(AccessGrant(uuid4(), budget_id, False))
        cache.put(AccessGrant(uuid4(), other_id, True))

        assert cache.invalidate_budget(budget_id) == 2
        assert len(cache) == 1


class TestResolver:

    def test_owner_and_participant_granted(self, ledger, budget, session):
        ledger.share_budget(OWNER_ID, budget.id, [PARTNER_ID])
        resolver = AccessControlResolver(EntityStore(session))

        assert resolver.authorize(OWNER_ID, budget.id).is_owner
        assert not resolver.authorize(PARTNER_ID, budget.id, AccessOperation.WRITE).is_owner

    def test_stranger_denied(self, ledger, budget, session, captured_logs):
        resolver = AccessControlResolver(EntityStore(session))
        with pytest.raises(AccessDeniedError) as exc_info:
            resolver.authorize(STRANGER_ID, budget.id, AccessOperation.WRITE)
        assert exc_info.value.operation == "write"
        assert any(r["message"] == "access_denied" for r in captured_logs())

    def test_missing_budget(self, session):
        with pytest.raises(BudgetNotFoundError):
            AccessControlResolver(EntityStore(session)).authorize(OWNER_ID, uuid4())

    def test_denial_not_cached(self, ledger, budget, session):
        cache = AccessCache()
        resolver = AccessControlResolver(EntityStore(session), cache)
        with pytest.raises(AccessDeniedError):
            resolver.authorize(STRANGER_ID, budget.id)
        assert len(cache) == 0


class TestFacadeAuthorization:

    def test_stranger_cannot_read_or_write(self, ledger, funded_budget, make_envelope):
        groceries = make_envelope(funded_budget.id, "Groceries", "600.00")

        with pytest.raises(AccessDeniedError):
            ledger.get_budget(STRANGER_ID, funded_budget.id)
        with pytest.raises(AccessDeniedError):
            ledger.list_envelopes(STRANGER_ID, funded_budget.id)
        with pytest.raises(AccessDeniedError):
            ledger.get_envelope(STRANGER_ID, funded_budget.id, groceries.id)
        with pytest.raises(AccessDeniedError):
            ledger.record_expense(
                STRANGER_ID,
                RecordExpense(
                    budget_id=funded_budget.id,
                    envelope_id=groceries.id,
                    amount="1.00",
                    transaction_date=JAN_START,
                ),
            )
        assert ledger.get_envelope(OWNER_ID, funded_budget.id, groceries.id).current_balance == Decimal("600.00")

    def test_unshare_revokes_immediately_on_this_replica(self, ledger, budget):
        ledger.share_budget(OWNER_ID, budget.id, [PARTNER_ID])
        assert ledger.get_budget(PARTNER_ID, budget.id).id == budget.id
        assert ledger.access_cache.get(PARTNER_ID, budget.id) is not None

        ledger.unshare_budget(OWNER_ID, budget.id, PARTNER_ID)
        assert ledger.access_cache.get(PARTNER_ID, budget.id) is None
        with pytest.raises(AccessDeniedError):
            ledger.get_budget(PARTNER_ID, budget.id)

    def test_authorize_helper(self, ledger, budget):
        assert ledger.authorize(OWNER_ID, budget.id) is True
        with pytest.raises(AccessDeniedError):
            ledger.authorize(STRANGER_ID, budget.id, AccessOperation.WRITE)
