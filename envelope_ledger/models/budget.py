"""
Module: envelope_ledger.models.budget
Responsibility: ORM persistence for Budget documents and the principal ->
    budget secondary index used by "list budgets for user".
Architecture position: Ledger > Models.  May import from db/ only.

Routing: partition_key == id.  Budgets are point-read by id; the only
cross-routing-key access (budgets for a principal) goes through
BudgetMembershipModel, never through a scan of the budgets table.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from envelope_ledger.db.base import Base, DocumentBase, MoneyString, UUIDString


class BudgetModel(DocumentBase):
    """Budget period document with aggregate balance fields."""

    __tablename__ = "budgets"

    __table_args__ = (
        Index("idx_budget_owner", "owner_id"),
        Index("idx_budget_status_end", "status", "end_date"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    budget_period_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Period boundaries (inclusive)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    total_income: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    total_allocated: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    total_spent: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    total_remaining: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    allow_rollover: Mapped[bool] = mapped_column(Boolean, nullable=False)
    previous_budget_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rollover_amount: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)

    savings_goal: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    spending_limit: Mapped[Decimal | None] = mapped_column(MoneyString(), nullable=True)

    # Sorted list of principal id strings
    shared_with: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<BudgetModel {self.id} {self.name}: {self.status}>"


class BudgetMembershipModel(Base):
    """
    Secondary index: one row per (principal, budget) pair.

    Maintained by the Entity Store whenever a budget is written, so the
    rows always mirror owner_id plus shared_with of the stored budget.
    """

    __tablename__ = "budget_memberships"

    __table_args__ = (
        UniqueConstraint("principal_id", "budget_id", name="uq_membership_principal_budget"),
        Index("idx_membership_principal", "principal_id"),
    )

    principal_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    budget_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    is_owner: Mapped[bool] = mapped_column(Boolean, nullable=False)

    def __repr__(self) -> str:
        return f"<BudgetMembershipModel {self.principal_id} -> {self.budget_id}>"
