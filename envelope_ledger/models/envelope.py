"""
Module: envelope_ledger.models.envelope
Responsibility: ORM persistence for Envelope documents.
Architecture position: Ledger > Models.  May import from db/ only.

Routing: partition_key == budget_id, so "all envelopes of a budget" is a
single-partition query.  previous_envelope_id is a plain identifier back
to the prior period's envelope, never a relationship.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from envelope_ledger.db.base import DocumentBase, MoneyString, UUIDString


class EnvelopeModel(DocumentBase):
    """Spending-category sub-ledger inside one budget."""

    __tablename__ = "envelopes"

    __table_args__ = (
        Index("idx_envelope_partition_sort", "partition_key", "sort_order"),
    )

    budget_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)

    allocated_amount: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    rollover_amount: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    spent_amount: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(MoneyString(), nullable=False)

    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False)
    allow_rollover: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_overspend_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    max_overspend_amount: Mapped[Decimal | None] = mapped_column(MoneyString(), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    previous_envelope_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<EnvelopeModel {self.id} {self.name}: {self.current_balance}>"
