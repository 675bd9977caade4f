"""
Entities -- immutable domain documents.

Responsibility:
    Defines the four ledger documents (User, Budget, Envelope, Transaction)
    as frozen dataclasses, plus the enums that drive their lifecycles.
    Services and selectors exchange these values; ORM rows never leave the
    Entity Store.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Budget: start_date < end_date; owner never listed in shared_with.
    - Envelope: max_overspend_amount is non-negative when set.
    - Transaction: amount > 0; the variant class fixes which envelope
      references are required (expense: envelope_id; transfer: distinct
      from/to envelopes; income: optional envelope_id).

Routing keys:
    User and Budget route by their own id.  Envelope and Transaction route
    by budget_id so every per-budget read stays in one partition.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Union
from uuid import UUID

from envelope_ledger.db.types import ZERO
from envelope_ledger.exceptions import InvalidAmountError, InvalidDateRangeError, ValidationError


class EntityType(str, Enum):
    USER = "user"
    BUDGET = "budget"
    ENVELOPE = "envelope"
    TRANSACTION = "transaction"


class BudgetPeriodType(str, Enum):
    MONTHLY = "monthly"
    BIWEEKLY = "biweekly"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class BudgetStatus(str, Enum):
    """Budget lifecycle: DRAFT -> ACTIVE -> CLOSED -> ARCHIVED."""

    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"


class EnvelopeCategory(str, Enum):
    ESSENTIAL = "essential"
    DISCRETIONARY = "discretionary"
    SAVINGS = "savings"
    DEBT = "debt"


class EnvelopeStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionStatus(str, Enum):
    """PENDING -> CLEARED -> RECONCILED; any of them -> VOID (terminal)."""

    PENDING = "pending"
    CLEARED = "cleared"
    RECONCILED = "reconciled"
    VOID = "void"


@dataclass(frozen=True, kw_only=True)
class Document:
    """
    Fields shared by every persisted document.

    ``version`` is the optimistic concurrency token.  0 means "never
    stored"; the Entity Store assigns 1 on insert and increments on every
    successful update.
    """

    entity_type: ClassVar[EntityType]

    id: UUID
    created_at: datetime
    created_by: UUID
    updated_at: datetime
    updated_by: UUID
    is_active: bool = True
    version: int = 0

    @property
    def routing_key(self) -> UUID:
        return self.id

    def touched(self, actor_id: UUID, at: datetime, **changes) -> "Document":
        """Copy with *changes* applied and the update audit fields stamped."""
        return replace(self, updated_at=at, updated_by=actor_id, **changes)


@dataclass(frozen=True, kw_only=True)
class User(Document):
    entity_type: ClassVar[EntityType] = EntityType.USER

    email: str
    display_name: str
    first_name: str | None = None
    last_name: str | None = None
    currency: str = "USD"
    locale: str = "en-US"
    timezone: str = "America/New_York"
    default_budget_period: BudgetPeriodType = BudgetPeriodType.MONTHLY
    start_of_week: int = 0
    fiscal_year_start: int = 1
    enable_email_notifications: bool = True
    enable_push_notifications: bool = False
    enable_budget_alerts: bool = True
    budget_alert_threshold: int = 80
    enable_rollover: bool = True
    current_budget_id: UUID | None = None
    last_login_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.email or "@" not in self.email:
            raise ValidationError(f"Invalid email address: {self.email!r}", field="email")
        if not self.display_name:
            raise ValidationError("display_name is required", field="display_name")
        if not 0 <= self.start_of_week <= 6:
            raise ValidationError("start_of_week must be between 0 and 6", field="start_of_week")
        if not 1 <= self.fiscal_year_start <= 12:
            raise ValidationError("fiscal_year_start must be between 1 and 12", field="fiscal_year_start")
        if not 0 <= self.budget_alert_threshold <= 100:
            raise ValidationError(
                "budget_alert_threshold must be between 0 and 100", field="budget_alert_threshold"
            )


@dataclass(frozen=True, kw_only=True)
class Budget(Document):
    entity_type: ClassVar[EntityType] = EntityType.BUDGET

    owner_id: UUID
    name: str
    start_date: date
    end_date: date
    fiscal_year: int
    fiscal_month: int
    description: str | None = None
    budget_period_type: BudgetPeriodType = BudgetPeriodType.MONTHLY
    status: BudgetStatus = BudgetStatus.DRAFT
    is_current: bool = False
    total_income: Decimal = ZERO
    total_allocated: Decimal = ZERO
    total_spent: Decimal = ZERO
    total_remaining: Decimal = ZERO
    currency: str = "USD"
    allow_rollover: bool = True
    previous_budget_id: UUID | None = None
    rollover_amount: Decimal = ZERO
    savings_goal: Decimal = ZERO
    spending_limit: Decimal | None = None
    shared_with: frozenset[UUID] = field(default_factory=frozenset)
    closed_at: datetime | None = None
    archived_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("Budget name is required", field="name")
        if self.start_date >= self.end_date:
            raise InvalidDateRangeError(str(self.start_date), str(self.end_date))
        if not 2000 <= self.fiscal_year <= 2100:
            raise ValidationError("fiscal_year must be between 2000 and 2100", field="fiscal_year")
        if not 1 <= self.fiscal_month <= 12:
            raise ValidationError("fiscal_month must be between 1 and 12", field="fiscal_month")
        if self.owner_id in self.shared_with:
            raise ValidationError("Budget owner cannot be a shared participant", field="shared_with")

    @property
    def savings_actual(self) -> Decimal:
        return self.total_income - self.total_spent

    @property
    def is_over_allocated(self) -> bool:
        return self.total_allocated > self.total_income

    @property
    def participants(self) -> frozenset[UUID]:
        """Owner plus every shared principal; all have equal rights."""
        return self.shared_with | {self.owner_id}

    @property
    def accepts_transactions(self) -> bool:
        return self.is_active and self.status in (BudgetStatus.DRAFT, BudgetStatus.ACTIVE)

    def overlaps(self, start_date: date, end_date: date) -> bool:
        """Inclusive date-range overlap test."""
        return self.start_date <= end_date and start_date <= self.end_date


@dataclass(frozen=True, kw_only=True)
class Envelope(Document):
    entity_type: ClassVar[EntityType] = EntityType.ENVELOPE

    budget_id: UUID
    name: str
    category: EnvelopeCategory = EnvelopeCategory.ESSENTIAL
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    sort_order: int = 0
    allocated_amount: Decimal = ZERO
    rollover_amount: Decimal = ZERO
    spent_amount: Decimal = ZERO
    current_balance: Decimal = ZERO
    is_recurring: bool = True
    allow_rollover: bool = True
    is_overspend_allowed: bool = False
    max_overspend_amount: Decimal | None = None
    status: EnvelopeStatus = EnvelopeStatus.ACTIVE
    previous_envelope_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("Envelope name is required", field="name")
        if self.max_overspend_amount is not None and self.max_overspend_amount < ZERO:
            raise InvalidAmountError(
                self.max_overspend_amount, "must not be negative", "max_overspend_amount"
            )

    @property
    def routing_key(self) -> UUID:
        return self.budget_id

    @property
    def accepts_transactions(self) -> bool:
        return self.is_active and self.status == EnvelopeStatus.ACTIVE


@dataclass(frozen=True, kw_only=True)
class TransactionBase(Document):
    """
    Fields shared by the three transaction variants.

    ``transaction_type`` is the discriminator; it is fixed per subclass and
    never stored as an instance field.
    """

    entity_type: ClassVar[EntityType] = EntityType.TRANSACTION
    transaction_type: ClassVar[TransactionType]

    budget_id: UUID
    owner_id: UUID
    amount: Decimal
    transaction_date: date
    created_by_user_id: UUID
    description: str = ""
    payee: str | None = None
    notes: str | None = None
    status: TransactionStatus = TransactionStatus.PENDING
    is_void: bool = False
    voided_at: datetime | None = None
    voided_by: UUID | None = None
    void_reason: str | None = None
    cleared_at: datetime | None = None
    reconciled_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.amount <= ZERO:
            raise InvalidAmountError(self.amount, "must be positive")
        if self.is_void != (self.status == TransactionStatus.VOID):
            raise ValidationError("is_void must agree with status", field="is_void")

    @property
    def routing_key(self) -> UUID:
        return self.budget_id

    @property
    def envelope_ids(self) -> tuple[UUID, ...]:
        """Every envelope this transaction touches."""
        return ()

    @property
    def is_editable(self) -> bool:
        return self.status == TransactionStatus.PENDING


@dataclass(frozen=True, kw_only=True)
class IncomeTransaction(TransactionBase):
    transaction_type: ClassVar[TransactionType] = TransactionType.INCOME

    # None posts the income as unallocated
    envelope_id: UUID | None = None

    @property
    def envelope_ids(self) -> tuple[UUID, ...]:
        return (self.envelope_id,) if self.envelope_id is not None else ()


@dataclass(frozen=True, kw_only=True)
class ExpenseTransaction(TransactionBase):
    transaction_type: ClassVar[TransactionType] = TransactionType.EXPENSE

    envelope_id: UUID

    @property
    def envelope_ids(self) -> tuple[UUID, ...]:
        return (self.envelope_id,)


@dataclass(frozen=True, kw_only=True)
class TransferTransaction(TransactionBase):
    transaction_type: ClassVar[TransactionType] = TransactionType.TRANSFER

    from_envelope_id: UUID
    to_envelope_id: UUID

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.from_envelope_id == self.to_envelope_id:
            raise ValidationError(
                "Transfer source and destination envelopes must differ",
                field="to_envelope_id",
            )

    @property
    def envelope_ids(self) -> tuple[UUID, ...]:
        return (self.from_envelope_id, self.to_envelope_id)


Transaction = Union[IncomeTransaction, ExpenseTransaction, TransferTransaction]

TRANSACTION_CLASSES: dict[TransactionType, type[TransactionBase]] = {
    TransactionType.INCOME: IncomeTransaction,
    TransactionType.EXPENSE: ExpenseTransaction,
    TransactionType.TRANSFER: TransferTransaction,
}

ENTITY_CLASSES: dict[EntityType, type[Document]] = {
    EntityType.USER: User,
    EntityType.BUDGET: Budget,
    EntityType.ENVELOPE: Envelope,
    EntityType.TRANSACTION: TransactionBase,
}
