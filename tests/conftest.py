"""
Pytest fixtures for the envelope ledger test suite.

Provides:
- A file-backed SQLite database per test (tmp_path), schema created fresh
- A deterministic clock and fixed principal ids
- A ready EnvelopeLedger plus a seeded active budget
- Structured log capture
"""

import json
import logging
from datetime import date, datetime, UTC
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from envelope_config import LedgerConfig
from envelope_ledger.db.engine import build_engine, create_tables
from envelope_ledger.domain.clock import DeterministicClock
from envelope_ledger.ledger import EnvelopeLedger
from envelope_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from envelope_ledger.services import BudgetDraft, EnvelopeDraft, RecordIncome
from envelope_ledger.store import EntityStore

OWNER_ID = UUID("11111111-1111-4111-8111-111111111111")
PARTNER_ID = UUID("22222222-2222-4222-8222-222222222222")
STRANGER_ID = UUID("33333333-3333-4333-8333-333333333333")

JAN_START = date(2026, 1, 1)
JAN_END = date(2026, 1, 31)
FEB_START = date(2026, 2, 1)
FEB_END = date(2026, 2, 28)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture envelope_ledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ...
            logs = captured_logs()
            assert any(r["message"] == "expense_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("envelope_ledger")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    eng = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A raw session for store/service level tests; rolled back afterwards."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def store(session):
    return EntityStore(session)


# =============================================================================
# Engine objects
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2026, 1, 15, 9, 0, tzinfo=UTC))


@pytest.fixture
def config(tmp_path):
    return LedgerConfig(
        database_url=f"sqlite:///{tmp_path / 'ledger.db'}",
        max_shared_participants=3,
        conflict_retry_backoff_seconds=0.0,
    )


@pytest.fixture
def ledger(session_factory, config, clock):
    led = EnvelopeLedger(session_factory, config, clock)
    led.ensure_user(OWNER_ID, "owner@example.com", "Owner")
    led.ensure_user(PARTNER_ID, "partner@example.com", "Partner")
    led.ensure_user(STRANGER_ID, "stranger@example.com", "Stranger")
    return led


@pytest.fixture
def budget(ledger):
    """An active, current January budget owned by OWNER_ID with no money yet."""
    created = ledger.create_budget(OWNER_ID, BudgetDraft(name="January", start_date=JAN_START, end_date=JAN_END))
    return ledger.activate_budget(OWNER_ID, created.id)


@pytest.fixture
def funded_budget(ledger, budget):
    """January budget with $5000 unallocated income."""
    ledger.record_income(
        OWNER_ID,
        RecordIncome(budget_id=budget.id, amount=Decimal("5000.00"), transaction_date=JAN_START, description="Salary"),
    )
    return ledger.get_budget(OWNER_ID, budget.id)


@pytest.fixture
def make_envelope(ledger):
    """Factory: create an envelope in a budget and return it."""

    def _make(budget_id, name, allocated="0", **kwargs):
        change = ledger.create_envelope(
            OWNER_ID,
            budget_id,
            EnvelopeDraft(name=name, allocated_amount=Decimal(allocated), **kwargs),
        )
        return change.envelope

    return _make


@pytest.fixture
def new_id():
    return uuid4
