"""
TransactionProcessor -- validates and applies money movements.

Responsibility:
    Single entry point (``apply``) for every transaction command: record
    income, expense and transfer; void, clear, reconcile; edit a pending
    transaction.  Owns the transaction status state machine and keeps
    envelope balances and budget totals in step with every change.

Architecture position:
    Ledger > Services -- imperative shell.
    Calls the Balance Calculator (pure) for effects and overspend checks
    and the Entity Store for versioned writes.  Never commits.

Invariants enforced:
    - currentBalance = allocated + rollover - spent on every envelope written.
    - totalRemaining = totalIncome - totalAllocated on every budget written.
    - A transfer's envelopes live in the same budget (both are read under
      the budget's routing key) and differ.
    - A void transaction contributes nothing; voiding twice is a no-op.
    - Cleared and reconciled transactions are never edited, only voided.

Failure modes:
    - InvalidAmountError / ValidationError for malformed commands, raised
      before any store access.
    - EnvelopeNotFoundError / TransactionNotFoundError for references that
      do not resolve inside the budget's partition.
    - InsufficientBalanceError when a debit breaches the overspend policy.
    - InvalidStateTransitionError / TransactionImmutableError on lifecycle
      violations.
    - ConcurrencyConflictError when a concurrent writer bumped a version.
    - PartialFailureError when a transfer hits a storage error midway.  The
      error propagates so the unit of work rolls back; no partial balance
      change survives.

Audit relevance:
    Every applied command is logged with budget, transaction and actor ids.
    ``created_by_user_id`` records the acting principal; ``owner_id`` keeps
    the budget owner regardless of who acted.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from envelope_ledger.db.types import parse_amount
from envelope_ledger.domain.balances import (
    TransactionEffect,
    apply_effect,
    combine_effects,
    debits,
    ensure_can_debit,
    transaction_effect,
)
from envelope_ledger.domain.entities import (
    Budget,
    EntityType,
    Envelope,
    ExpenseTransaction,
    IncomeTransaction,
    TransactionBase,
    TransactionStatus,
    TransferTransaction,
)
from envelope_ledger.domain.lifecycle import require_transition
from envelope_ledger.exceptions import (
    InsufficientBalanceError,
    PartialFailureError,
    TransactionImmutableError,
    ValidationError,
)
from envelope_ledger.logging_config import LogContext, get_logger
from envelope_ledger.services.base import BaseService, over_allocation_warnings

logger = get_logger("services.transaction_processor")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordIncome:
    budget_id: UUID
    amount: Decimal | str | int
    transaction_date: date
    description: str = ""
    envelope_id: UUID | None = None
    payee: str | None = None
    notes: str | None = None
    transaction_id: UUID | None = None


@dataclass(frozen=True)
class RecordExpense:
    budget_id: UUID
    envelope_id: UUID
    amount: Decimal | str | int
    transaction_date: date
    description: str = ""
    payee: str | None = None
    notes: str | None = None
    transaction_id: UUID | None = None


@dataclass(frozen=True)
class RecordTransfer:
    budget_id: UUID
    from_envelope_id: UUID
    to_envelope_id: UUID
    amount: Decimal | str | int
    transaction_date: date
    description: str = ""
    notes: str | None = None
    transaction_id: UUID | None = None


@dataclass(frozen=True)
class VoidTransaction:
    budget_id: UUID
    transaction_id: UUID
    reason: str | None = None


@dataclass(frozen=True)
class ClearTransaction:
    budget_id: UUID
    transaction_id: UUID


@dataclass(frozen=True)
class ReconcileTransaction:
    budget_id: UUID
    transaction_id: UUID


@dataclass(frozen=True)
class UpdateTransaction:
    """Edit of a pending transaction; None leaves a field unchanged."""

    budget_id: UUID
    transaction_id: UUID
    amount: Decimal | str | int | None = None
    transaction_date: date | None = None
    description: str | None = None
    payee: str | None = None
    notes: str | None = None


TransactionCommand = (
    RecordIncome
    | RecordExpense
    | RecordTransfer
    | VoidTransaction
    | ClearTransaction
    | ReconcileTransaction
    | UpdateTransaction
)


@dataclass(frozen=True)
class TransactionOutcome:
    """Result of ``apply``: the stored transaction plus the touched budget."""

    transaction: TransactionBase
    budget: Budget | None = None
    envelopes: tuple[Envelope, ...] = ()
    warnings: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class TransactionProcessor(BaseService):
    """
    Applies transaction commands inside the caller's unit of work.

    Contract:
        ``apply(command, actor_id)`` validates the command, reads the budget
        partition it touches, and writes the transaction, the affected
        envelopes and the budget totals with version checks.

    Non-goals:
        - Does NOT retry on ConcurrencyConflictError; that belongs to the
          calling layer (see ``envelope_ledger.retry``).
        - Does NOT authorize the actor.
    """

    @staticmethod
    def validate_command(command: TransactionCommand) -> None:
        """
        Input checks that need no store access.

        Raises:
            InvalidAmountError: malformed or non-positive amount.
            ValidationError: a transfer naming the same envelope twice.
        """
        amount = getattr(command, "amount", None)
        if amount is not None:
            parse_amount(amount)
        if isinstance(command, RecordTransfer) and command.from_envelope_id == command.to_envelope_id:
            raise ValidationError(
                "Transfer source and destination envelopes must differ",
                field="to_envelope_id",
            )

    def apply(self, command: TransactionCommand, actor_id: UUID) -> TransactionOutcome:
        handlers: dict[type, Callable[..., TransactionOutcome]] = {
            RecordIncome: self._record_income,
            RecordExpense: self._record_expense,
            RecordTransfer: self._record_transfer,
            VoidTransaction: self._void,
            ClearTransaction: self._clear,
            ReconcileTransaction: self._reconcile,
            UpdateTransaction: self._update,
        }
        handler = handlers.get(type(command))
        if handler is None:
            raise ValidationError(f"Unsupported command: {type(command).__name__}", field="command")
        self.validate_command(command)
        return handler(command, actor_id)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def _new_fields(self, command, amount: Decimal, budget: Budget, actor_id: UUID) -> dict:
        now = self.clock.now()
        return dict(
            id=command.transaction_id or uuid4(),
            created_at=now,
            created_by=actor_id,
            updated_at=now,
            updated_by=actor_id,
            budget_id=budget.id,
            owner_id=budget.owner_id,
            amount=amount,
            transaction_date=command.transaction_date,
            created_by_user_id=actor_id,
            description=command.description,
            notes=command.notes,
        )

    def _record_income(self, command: RecordIncome, actor_id: UUID) -> TransactionOutcome:
        amount = parse_amount(command.amount)
        budget = self._get_budget(command.budget_id)
        self._require_open_budget(budget)
        txn = IncomeTransaction(
            **self._new_fields(command, amount, budget, actor_id),
            payee=command.payee,
            envelope_id=command.envelope_id,
        )
        outcome = self._post(budget, txn, None, transaction_effect(txn), actor_id)
        logger.info(
            "income_recorded",
            extra={
                "budget_id": str(budget.id),
                "transaction_id": str(txn.id),
                "envelope_id": str(command.envelope_id) if command.envelope_id else None,
                "amount": amount,
                "actor_id": str(actor_id),
            },
        )
        return outcome

    def _record_expense(self, command: RecordExpense, actor_id: UUID) -> TransactionOutcome:
        amount = parse_amount(command.amount)
        budget = self._get_budget(command.budget_id)
        self._require_open_budget(budget)
        txn = ExpenseTransaction(
            **self._new_fields(command, amount, budget, actor_id),
            payee=command.payee,
            envelope_id=command.envelope_id,
        )
        outcome = self._post(budget, txn, None, transaction_effect(txn), actor_id)
        logger.info(
            "expense_recorded",
            extra={
                "budget_id": str(budget.id),
                "transaction_id": str(txn.id),
                "envelope_id": str(command.envelope_id),
                "amount": amount,
                "actor_id": str(actor_id),
            },
        )
        return outcome

    def _record_transfer(self, command: RecordTransfer, actor_id: UUID) -> TransactionOutcome:
        amount = parse_amount(command.amount)
        budget = self._get_budget(command.budget_id)
        self._require_open_budget(budget)
        txn = TransferTransaction(
            **self._new_fields(command, amount, budget, actor_id),
            from_envelope_id=command.from_envelope_id,
            to_envelope_id=command.to_envelope_id,
        )
        outcome = self._post(budget, txn, None, transaction_effect(txn), actor_id, operation="transfer")
        logger.info(
            "transfer_recorded",
            extra={
                "budget_id": str(budget.id),
                "transaction_id": str(txn.id),
                "from_envelope_id": str(command.from_envelope_id),
                "to_envelope_id": str(command.to_envelope_id),
                "amount": amount,
                "actor_id": str(actor_id),
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _get_transaction(self, budget_id: UUID, transaction_id: UUID) -> TransactionBase:
        return self.store.get(EntityType.TRANSACTION, transaction_id, budget_id)

    def _void(self, command: VoidTransaction, actor_id: UUID) -> TransactionOutcome:
        txn = self._get_transaction(command.budget_id, command.transaction_id)
        if txn.is_void:
            logger.info(
                "transaction_void_noop",
                extra={"budget_id": str(txn.budget_id), "transaction_id": str(txn.id)},
            )
            return TransactionOutcome(transaction=txn)

        require_transition("transaction", txn.id, txn.status, TransactionStatus.VOID)
        budget = self._get_budget(txn.budget_id)
        self._require_open_budget(budget)
        now = self.clock.now()
        voided = txn.touched(
            actor_id,
            now,
            status=TransactionStatus.VOID,
            is_void=True,
            voided_at=now,
            voided_by=actor_id,
            void_reason=command.reason,
        )
        # Reversal only ever gives money back, so no overspend check.
        outcome = self._post(
            budget,
            voided,
            txn.version,
            transaction_effect(txn).negated(),
            actor_id,
            check_balance=False,
            operation="transfer" if isinstance(txn, TransferTransaction) else "void",
        )
        logger.info(
            "transaction_voided",
            extra={
                "budget_id": str(txn.budget_id),
                "transaction_id": str(txn.id),
                "previous_status": txn.status.value,
                "actor_id": str(actor_id),
                "reason": command.reason,
            },
        )
        return outcome

    def _advance(self, txn: TransactionBase, target: TransactionStatus, actor_id: UUID, **changes) -> TransactionOutcome:
        require_transition("transaction", txn.id, txn.status, target)
        updated = txn.touched(actor_id, self.clock.now(), status=target, **changes)
        stored = self.store.put(updated, expected_version=txn.version)
        logger.info(
            "transaction_status_changed",
            extra={
                "transaction_id": str(txn.id),
                "from_status": txn.status.value,
                "to_status": target.value,
            },
        )
        return TransactionOutcome(transaction=stored)

    def _clear(self, command: ClearTransaction, actor_id: UUID) -> TransactionOutcome:
        txn = self._get_transaction(command.budget_id, command.transaction_id)
        return self._advance(txn, TransactionStatus.CLEARED, actor_id, cleared_at=self.clock.now())

    def _reconcile(self, command: ReconcileTransaction, actor_id: UUID) -> TransactionOutcome:
        txn = self._get_transaction(command.budget_id, command.transaction_id)
        return self._advance(txn, TransactionStatus.RECONCILED, actor_id, reconciled_at=self.clock.now())

    def _update(self, command: UpdateTransaction, actor_id: UUID) -> TransactionOutcome:
        amount = parse_amount(command.amount) if command.amount is not None else None
        txn = self._get_transaction(command.budget_id, command.transaction_id)
        if not txn.is_editable:
            logger.warning(
                "transaction_edit_rejected",
                extra={"transaction_id": str(txn.id), "status": txn.status.value},
            )
            raise TransactionImmutableError(str(txn.id), txn.status.value)

        budget = self._get_budget(txn.budget_id)
        self._require_open_budget(budget)
        changes = {
            name: value
            for name, value in (
                ("amount", amount),
                ("transaction_date", command.transaction_date),
                ("description", command.description),
                ("payee", command.payee),
                ("notes", command.notes),
            )
            if value is not None
        }
        if isinstance(txn, TransferTransaction) and "payee" in changes:
            raise ValidationError("Transfers have no payee", field="payee")
        updated = txn.touched(actor_id, self.clock.now(), **changes)
        effect = combine_effects(transaction_effect(txn).negated(), transaction_effect(updated))
        outcome = self._post(budget, updated, txn.version, effect, actor_id)
        logger.info(
            "transaction_updated",
            extra={
                "transaction_id": str(txn.id),
                "fields": sorted(changes),
                "actor_id": str(actor_id),
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def _load_envelopes(
        self,
        budget: Budget,
        txn: TransactionBase,
        require_accepting: bool,
    ) -> dict[UUID, Envelope]:
        envelopes: dict[UUID, Envelope] = {}
        for envelope_id in txn.envelope_ids:
            envelope = self.store.get(
                EntityType.ENVELOPE,
                envelope_id,
                budget.id,
                include_inactive=not require_accepting,
            )
            if require_accepting and not envelope.accepts_transactions:
                logger.warning(
                    "envelope_not_accepting",
                    extra={"envelope_id": str(envelope.id), "status": envelope.status.value},
                )
                raise ValidationError(
                    f"Envelope {envelope.id} is {envelope.status.value}; no new transactions accepted",
                    field="envelope_id",
                )
            envelopes[envelope_id] = envelope
        return envelopes

    def _post(
        self,
        budget: Budget,
        txn: TransactionBase,
        expected_version: int | None,
        effect: TransactionEffect,
        actor_id: UUID,
        *,
        check_balance: bool = True,
        operation: str = "post",
    ) -> TransactionOutcome:
        """
        Write *txn* and the balance changes described by *effect*.

        Envelopes are written in the order the transaction names them (a
        transfer's source before its destination), then the budget totals,
        then the transaction itself.
        """
        envelopes = self._load_envelopes(budget, txn, require_accepting=check_balance)

        if check_balance:
            for envelope_id, debit in debits(effect).items():
                try:
                    ensure_can_debit(envelopes[envelope_id], debit)
                except InsufficientBalanceError:
                    logger.warning(
                        "transfer_rejected" if isinstance(txn, TransferTransaction) else "expense_rejected",
                        extra={
                            "budget_id": str(budget.id),
                            "envelope_id": str(envelope_id),
                            "current_balance": envelopes[envelope_id].current_balance,
                            "requested": debit,
                        },
                    )
                    raise

        with LogContext.bind(budget_id=budget.id, transaction_id=txn.id):
            return self._write(budget, txn, expected_version, effect, envelopes, actor_id, operation)

    # Stage names reported by PartialFailureError, in write order.
    _ENVELOPE_STAGES = ("debit_source", "credit_destination")

    def _write(
        self,
        budget: Budget,
        txn: TransactionBase,
        expected_version: int | None,
        effect: TransactionEffect,
        envelopes: dict[UUID, Envelope],
        actor_id: UUID,
        operation: str,
    ) -> TransactionOutcome:
        now = self.clock.now()
        written: list[Envelope] = []
        stage = self._ENVELOPE_STAGES[0]
        try:
            for position, envelope_id in enumerate(txn.envelope_ids):
                if envelope_id not in effect.envelope_ids:
                    continue
                stage = self._ENVELOPE_STAGES[position] if position < 2 else "update_envelope"
                envelope = envelopes[envelope_id]
                changed = apply_effect(envelope, effect).touched(actor_id, now)
                written.append(self.store.put(changed, expected_version=envelope.version))

            stage = "update_budget"
            if written or effect.income_delta:
                budget = self._save_budget_totals(budget, actor_id, effect.income_delta, written)

            stage = "store_transaction"
            stored = self.store.put(txn, expected_version=expected_version)
        except SQLAlchemyError as exc:
            if operation != "transfer":
                raise
            logger.error(
                "transfer_partial_failure",
                extra={"budget_id": str(budget.id), "stage": stage},
                exc_info=True,
            )
            raise PartialFailureError(
                operation="transfer",
                budget_id=str(budget.id),
                stage=stage,
                cause=str(exc),
            ) from exc

        return TransactionOutcome(
            transaction=stored,
            budget=budget,
            envelopes=tuple(written),
            warnings=over_allocation_warnings(budget),
        )
