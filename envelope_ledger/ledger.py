"""
EnvelopeLedger -- operation-level façade over the ledger services.

Responsibility:
    Exposes every ledger operation as one method taking the authenticated
    principal id.  Each call is one unit of work:

        bind LogContext -> open session scope -> authorize against the
        parent budget -> delegate to a service -> commit

    The access cache lives here and survives across requests; sharing
    changes invalidate it after their commit.

Architecture position:
    Ledger > Façade -- the outermost layer of the engine.  External
    collaborators (API handlers, jobs) call this and nothing below it.

Concurrency:
    Safe to share across worker threads.  Every call opens its own session
    from the factory; the only shared mutable state is the access cache,
    which is internally locked.  ConcurrencyConflictError is surfaced to the
    caller; ``with_retry`` re-runs a whole call under the configured retry
    budget.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from envelope_config import LedgerConfig
from envelope_ledger.db.engine import build_engine, create_tables, session_scope
from envelope_ledger.domain.clock import Clock, SystemClock
from envelope_ledger.domain.entities import (
    Budget,
    BudgetStatus,
    EntityType,
    Envelope,
    TransactionBase,
    User,
)
from envelope_ledger.logging_config import LogContext, configure_logging, get_logger
from envelope_ledger.retry import run_with_retry
from envelope_ledger.selectors import QueryRouter, TransactionQuery
from envelope_ledger.services import (
    AccessCache,
    AccessControlResolver,
    AccessOperation,
    BudgetDraft,
    BudgetService,
    ClearTransaction,
    EnvelopeChange,
    EnvelopeDraft,
    EnvelopeService,
    PeriodTemplate,
    ReconcileTransaction,
    RecordExpense,
    RecordIncome,
    RecordTransfer,
    RolloverEngine,
    RolloverResult,
    TransactionCommand,
    TransactionOutcome,
    TransactionProcessor,
    UpdateTransaction,
    UserService,
    VoidTransaction,
)
from envelope_ledger.store import EntityStore

logger = get_logger("ledger")

T = TypeVar("T")


class EnvelopeLedger:
    """
    Entry point of the envelope-budgeting engine.

    Contract:
        Every public method is atomic: it commits on success and rolls back
        on any error.  Envelope and transaction operations name their
        budget, which is both the routing key and the object authorized.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or LedgerConfig()
        self._clock = clock or SystemClock()
        self._access_cache = AccessCache(
            ttl_seconds=self._config.access_cache_ttl_seconds,
            max_entries=self._config.access_cache_max_entries,
        )
        logger.debug(
            "ledger_initialized",
            extra={
                "access_cache_ttl_seconds": self._config.access_cache_ttl_seconds,
                "max_shared_participants": self._config.max_shared_participants,
            },
        )

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        clock: Clock | None = None,
        create_schema: bool = True,
    ) -> "EnvelopeLedger":
        """
        Build an engine for ``config.database_url`` and wrap it.

        Also configures the ``envelope_ledger`` log tree at
        ``config.log_level`` unless logging was configured already.
        """
        configure_logging(level=config.log_level)
        engine = build_engine(config.database_url)
        if create_schema:
            create_tables(engine)
        return cls(sessionmaker(bind=engine, expire_on_commit=False), config, clock)

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def access_cache(self) -> AccessCache:
        return self._access_cache

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(
        self,
        principal_id: UUID | None,
        budget_id: UUID | None = None,
        operation: AccessOperation = AccessOperation.WRITE,
    ) -> Iterator[Session]:
        request_id = LogContext.get_all().get("request_id") or uuid4().hex
        with LogContext.bind(request_id=request_id, principal_id=principal_id, budget_id=budget_id):
            with session_scope(self._session_factory) as session:
                if budget_id is not None and principal_id is not None:
                    AccessControlResolver(EntityStore(session), self._access_cache).authorize(
                        principal_id, budget_id, operation
                    )
                yield session

    def with_retry(self, operation: Callable[[], T]) -> T:
        """Run *operation* under the configured conflict-retry budget."""
        return run_with_retry(
            operation,
            attempts=self._config.conflict_retry_attempts,
            backoff=self._config.conflict_retry_backoff_seconds,
        )

    def authorize(
        self,
        principal_id: UUID,
        budget_id: UUID,
        operation: AccessOperation = AccessOperation.READ,
    ) -> bool:
        with self._unit_of_work(principal_id, budget_id, operation):
            return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def ensure_user(self, principal_id: UUID, email: str, display_name: str) -> User:
        with self._unit_of_work(principal_id) as session:
            return UserService(session, self._clock).ensure_user(
                principal_id, email, display_name, currency=self._config.default_currency
            )

    def get_user(self, principal_id: UUID) -> User:
        with self._unit_of_work(principal_id) as session:
            return UserService(session, self._clock).get_user(principal_id)

    def update_user_preferences(self, principal_id: UUID, **changes) -> User:
        with self._unit_of_work(principal_id) as session:
            return UserService(session, self._clock).update_preferences(principal_id, **changes)

    def deactivate_user(self, principal_id: UUID) -> User:
        with self._unit_of_work(principal_id) as session:
            return UserService(session, self._clock).deactivate_user(principal_id)

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def _budgets(self, session: Session) -> BudgetService:
        return BudgetService(session, self._clock, self._config.max_shared_participants)

    def create_budget(self, principal_id: UUID, draft: BudgetDraft) -> Budget:
        with self._unit_of_work(principal_id) as session:
            return self._budgets(session).create_budget(principal_id, draft)

    def activate_budget(self, principal_id: UUID, budget_id: UUID) -> Budget:
        with self._unit_of_work(principal_id, budget_id) as session:
            return self._budgets(session).activate_budget(budget_id, principal_id)

    def revert_budget_to_draft(self, principal_id: UUID, budget_id: UUID) -> Budget:
        with self._unit_of_work(principal_id, budget_id) as session:
            return self._budgets(session).revert_to_draft(budget_id, principal_id)

    def close_budget(self, principal_id: UUID, budget_id: UUID) -> Budget:
        with self._unit_of_work(principal_id, budget_id) as session:
            return RolloverEngine(session, self._clock).close_budget(budget_id, principal_id)

    def open_next_period(
        self,
        principal_id: UUID,
        previous_budget_id: UUID,
        template: PeriodTemplate,
    ) -> RolloverResult:
        with self._unit_of_work(principal_id, previous_budget_id) as session:
            return RolloverEngine(session, self._clock).open_next_period(
                previous_budget_id, template, principal_id
            )

    def share_budget(self, principal_id: UUID, budget_id: UUID, principal_ids: Iterable[UUID]) -> Budget:
        with self._unit_of_work(principal_id, budget_id) as session:
            budget = self._budgets(session).share_budget(budget_id, principal_ids, principal_id)
        self._access_cache.invalidate_budget(budget_id)
        return budget

    def unshare_budget(self, principal_id: UUID, budget_id: UUID, target_principal_id: UUID) -> Budget:
        with self._unit_of_work(principal_id, budget_id) as session:
            budget = self._budgets(session).unshare_budget(budget_id, target_principal_id, principal_id)
        self._access_cache.invalidate_budget(budget_id)
        return budget

    def archive_expired_budgets(self, as_of: date | None = None) -> list[Budget]:
        """Maintenance sweep; runs as the system actor without a principal."""
        as_of = as_of or self._clock.today()
        with self._unit_of_work(None) as session:
            return self._budgets(session).archive_expired(as_of, self._config.archive_retention_days)

    def get_budget(self, principal_id: UUID, budget_id: UUID) -> Budget:
        with self._unit_of_work(principal_id, budget_id, AccessOperation.READ) as session:
            return EntityStore(session).get(EntityType.BUDGET, budget_id, budget_id)

    def list_budgets_for_user(self, principal_id: UUID, status: BudgetStatus | None = None) -> list[Budget]:
        with self._unit_of_work(principal_id) as session:
            router = QueryRouter(session, self._config.max_query_limit)
            return router.list_budgets_for_principal(principal_id, status)

    # ------------------------------------------------------------------
    # Envelopes
    # ------------------------------------------------------------------

    def create_envelope(self, principal_id: UUID, budget_id: UUID, draft: EnvelopeDraft) -> EnvelopeChange:
        with self._unit_of_work(principal_id, budget_id) as session:
            return EnvelopeService(session, self._clock).create_envelope(budget_id, draft, principal_id)

    def set_envelope_allocation(
        self,
        principal_id: UUID,
        budget_id: UUID,
        envelope_id: UUID,
        amount: Decimal | str | int,
    ) -> EnvelopeChange:
        with self._unit_of_work(principal_id, budget_id) as session:
            return EnvelopeService(session, self._clock).set_allocation(
                budget_id, envelope_id, amount, principal_id
            )

    def pause_envelope(self, principal_id: UUID, budget_id: UUID, envelope_id: UUID) -> Envelope:
        with self._unit_of_work(principal_id, budget_id) as session:
            return EnvelopeService(session, self._clock).pause_envelope(budget_id, envelope_id, principal_id)

    def resume_envelope(self, principal_id: UUID, budget_id: UUID, envelope_id: UUID) -> Envelope:
        with self._unit_of_work(principal_id, budget_id) as session:
            return EnvelopeService(session, self._clock).resume_envelope(budget_id, envelope_id, principal_id)

    def close_envelope(self, principal_id: UUID, budget_id: UUID, envelope_id: UUID) -> Envelope:
        with self._unit_of_work(principal_id, budget_id) as session:
            return EnvelopeService(session, self._clock).close_envelope(budget_id, envelope_id, principal_id)

    def delete_envelope(self, principal_id: UUID, budget_id: UUID, envelope_id: UUID) -> EnvelopeChange:
        with self._unit_of_work(principal_id, budget_id) as session:
            return EnvelopeService(session, self._clock).delete_envelope(budget_id, envelope_id, principal_id)

    def get_envelope(self, principal_id: UUID, budget_id: UUID, envelope_id: UUID) -> Envelope:
        with self._unit_of_work(principal_id, budget_id, AccessOperation.READ) as session:
            return EntityStore(session).get(EntityType.ENVELOPE, envelope_id, budget_id)

    def list_envelopes(self, principal_id: UUID, budget_id: UUID, limit: int | None = None) -> list[Envelope]:
        with self._unit_of_work(principal_id, budget_id, AccessOperation.READ) as session:
            return QueryRouter(session, self._config.max_query_limit).list_envelopes(budget_id, limit)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def apply(self, principal_id: UUID, command: TransactionCommand) -> TransactionOutcome:
        """Validate, authorize and apply any transaction command."""
        TransactionProcessor.validate_command(command)
        with self._unit_of_work(principal_id, command.budget_id) as session:
            with LogContext.bind(transaction_id=getattr(command, "transaction_id", None)):
                return TransactionProcessor(session, self._clock).apply(command, principal_id)

    def record_income(self, principal_id: UUID, command: RecordIncome) -> TransactionOutcome:
        return self.apply(principal_id, command)

    def record_expense(self, principal_id: UUID, command: RecordExpense) -> TransactionOutcome:
        return self.apply(principal_id, command)

    def record_transfer(self, principal_id: UUID, command: RecordTransfer) -> TransactionOutcome:
        return self.apply(principal_id, command)

    def void_transaction(
        self,
        principal_id: UUID,
        budget_id: UUID,
        transaction_id: UUID,
        reason: str | None = None,
    ) -> TransactionOutcome:
        return self.apply(principal_id, VoidTransaction(budget_id, transaction_id, reason))

    def clear_transaction(self, principal_id: UUID, budget_id: UUID, transaction_id: UUID) -> TransactionOutcome:
        return self.apply(principal_id, ClearTransaction(budget_id, transaction_id))

    def reconcile_transaction(
        self,
        principal_id: UUID,
        budget_id: UUID,
        transaction_id: UUID,
    ) -> TransactionOutcome:
        return self.apply(principal_id, ReconcileTransaction(budget_id, transaction_id))

    def update_transaction(self, principal_id: UUID, command: UpdateTransaction) -> TransactionOutcome:
        return self.apply(principal_id, command)

    def get_transaction(self, principal_id: UUID, budget_id: UUID, transaction_id: UUID) -> TransactionBase:
        with self._unit_of_work(principal_id, budget_id, AccessOperation.READ) as session:
            return EntityStore(session).get(EntityType.TRANSACTION, transaction_id, budget_id)

    def list_transactions(
        self,
        principal_id: UUID,
        budget_id: UUID,
        query: TransactionQuery | None = None,
        limit: int | None = None,
    ) -> list[TransactionBase]:
        with self._unit_of_work(principal_id, budget_id, AccessOperation.READ) as session:
            return QueryRouter(session, self._config.max_query_limit).list_transactions(budget_id, query, limit)
