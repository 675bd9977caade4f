"""
Module: envelope_ledger.models.user
Responsibility: ORM persistence for User documents -- identity, preferences and
    the pointer to the owner's current budget.
Architecture position: Ledger > Models.  May import from db/ only.

Routing: partition_key == id.  A user is always point-read by its own id.
Users are never deleted; deactivation clears is_active.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from envelope_ledger.db.base import DocumentBase, UUIDString


class UserModel(DocumentBase):
    """User profile document."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
    )

    email: Mapped[str] = mapped_column(String(320), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    locale: Mapped[str] = mapped_column(String(20), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    default_budget_period: Mapped[str] = mapped_column(String(20), nullable=False)
    start_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_year_start: Mapped[int] = mapped_column(Integer, nullable=False)

    enable_email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False)
    enable_push_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False)
    enable_budget_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False)
    budget_alert_threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    enable_rollover: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Single source of truth for "which budget is current" per owner.
    current_budget_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<UserModel {self.id} {self.email}>"
