"""
Tests for engine setup and the transactional session scope.
"""

import logging
from datetime import datetime, UTC
from uuid import uuid4

import pytest
from sqlalchemy import inspect

from envelope_config import LedgerConfig
from envelope_ledger.db import (
    build_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from envelope_ledger.domain.entities import EntityType, User
from envelope_ledger.ledger import EnvelopeLedger
from envelope_ledger.logging_config import configure_logging, reset_logging
from envelope_ledger.store import EntityStore
from tests.conftest import OWNER_ID

NOW = datetime(2026, 1, 15, 9, 0, tzinfo=UTC)


def _user(email: str) -> User:
    actor = uuid4()
    return User(
        id=actor,
        created_at=NOW,
        created_by=actor,
        updated_at=NOW,
        updated_by=actor,
        email=email,
        display_name=email.split("@")[0],
    )


@pytest.fixture
def registered_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'registered.db'}")
    create_tables()
    yield engine
    reset_engine()


class TestEngineRegistry:

    def test_uninitialized_access_fails(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_registered_engine_serves_sessions(self, registered_engine):
        assert get_engine() is registered_engine
        with get_session() as session:
            assert session.get_bind() is registered_engine

    def test_tables_created_and_dropped(self, registered_engine):
        tables = set(inspect(registered_engine).get_table_names())
        assert {"users", "budgets", "envelopes", "transactions"} <= tables

        drop_tables()
        assert "envelopes" not in inspect(registered_engine).get_table_names()


class TestSessionScope:

    def test_commits_on_success(self, engine, session_factory):
        user = _user("committed@example.com")
        with session_scope(session_factory) as session:
            EntityStore(session).put(user)

        with session_factory() as session:
            assert EntityStore(session).get(EntityType.USER, user.id, user.id).version == 1

    def test_rolls_back_on_error(self, engine, session_factory, captured_logs):
        user = _user("rolled-back@example.com")
        with pytest.raises(ZeroDivisionError):
            with session_scope(session_factory) as session:
                EntityStore(session).put(user)
                1 / 0

        with session_factory() as session:
            assert EntityStore(session).find(EntityType.USER, user.id, user.id) is None
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())

    def test_uses_registered_factory_by_default(self, registered_engine):
        user = _user("default@example.com")
        with session_scope() as session:
            EntityStore(session).put(user)
        with get_session() as session:
            assert EntityStore(session).find(EntityType.USER, user.id, user.id) is not None


class TestLedgerFromConfig:

    def test_builds_schema_and_serves_requests(self, tmp_path, clock):
        config = LedgerConfig(database_url=f"sqlite:///{tmp_path / 'from_config.db'}")
        ledger = EnvelopeLedger.from_config(config, clock)

        user = ledger.ensure_user(OWNER_ID, "owner@example.com", "Owner")
        assert ledger.get_user(OWNER_ID) == user
        assert ledger.config is config

    def test_build_engine_for_sqlite(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'plain.db'}")
        create_tables(engine)
        assert engine.dialect.name == "sqlite"
        engine.dispose()

    def test_applies_configured_log_level(self, tmp_path, clock):
        reset_logging()
        try:
            config = LedgerConfig(database_url=f"sqlite:///{tmp_path / 'quiet.db'}", log_level="error")
            EnvelopeLedger.from_config(config, clock)
            assert logging.getLogger("envelope_ledger").level == logging.ERROR
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)
