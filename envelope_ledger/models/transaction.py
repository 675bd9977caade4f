"""
Module: envelope_ledger.models.transaction
Responsibility: ORM persistence for Transaction documents (income, expense,
    transfer) in a single table keyed by a transaction_type discriminator.
Architecture position: Ledger > Models.  May import from db/ only.

Routing: partition_key == budget_id.  Envelope columns are nullable at the
storage level; per-type required fields are enforced by the domain variants
in envelope_ledger.domain.entities before a row is ever written.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from envelope_ledger.db.base import DocumentBase, MoneyString, UUIDString


class TransactionModel(DocumentBase):
    """Money movement record; immutable once cleared except for voiding."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_partition_date", "partition_key", "transaction_date"),
        Index("idx_transaction_partition_envelope", "partition_key", "envelope_id"),
    )

    budget_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    payee: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    is_void: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reconciled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # income (optional), expense (required)
    envelope_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    # transfer (both required, distinct)
    from_envelope_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_envelope_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<TransactionModel {self.id} {self.transaction_type} {self.amount}: {self.status}>"
