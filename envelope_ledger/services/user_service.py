"""
UserService -- user documents keyed by the authenticated principal id.

Users are created on first authentication (``ensure_user``), edited only
by themselves, and soft-deactivated rather than deleted.
"""

from __future__ import annotations

from uuid import UUID

from envelope_ledger.db.types import validate_currency
from envelope_ledger.domain.entities import BudgetPeriodType, EntityType, User
from envelope_ledger.exceptions import UserNotFoundError, ValidationError
from envelope_ledger.logging_config import get_logger
from envelope_ledger.services.base import BaseService

logger = get_logger("services.user_service")

# Preference fields a user may change about themselves.
PREFERENCE_FIELDS = frozenset({
    "display_name",
    "first_name",
    "last_name",
    "currency",
    "locale",
    "timezone",
    "default_budget_period",
    "start_of_week",
    "fiscal_year_start",
    "enable_email_notifications",
    "enable_push_notifications",
    "enable_budget_alerts",
    "budget_alert_threshold",
    "enable_rollover",
})


class UserService(BaseService):

    def get_user(self, principal_id: UUID) -> User:
        return self.store.get(EntityType.USER, principal_id, principal_id)

    def ensure_user(
        self,
        principal_id: UUID,
        email: str,
        display_name: str,
        currency: str = "USD",
    ) -> User:
        """Return the principal's user, creating it on first sight; stamps last_login_at."""
        now = self.clock.now()
        existing: User | None = self.store.find(
            EntityType.USER, principal_id, principal_id, include_inactive=True
        )
        if existing is None:
            user = User(
                id=principal_id,
                created_at=now,
                created_by=principal_id,
                updated_at=now,
                updated_by=principal_id,
                email=email.strip().lower(),
                display_name=display_name,
                currency=validate_currency(currency),
                last_login_at=now,
            )
            stored = self.store.put(user)
            logger.info("user_created", extra={"user_id": str(principal_id)})
            return stored

        if not existing.is_active:
            logger.warning("inactive_user_login", extra={"user_id": str(principal_id)})
            raise UserNotFoundError(str(principal_id))
        return self.store.put(
            existing.touched(principal_id, now, last_login_at=now),
            expected_version=existing.version,
        )

    def update_preferences(self, principal_id: UUID, **changes) -> User:
        unknown = set(changes) - PREFERENCE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown or read-only user fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        if "currency" in changes:
            changes["currency"] = validate_currency(changes["currency"])
        if "default_budget_period" in changes:
            try:
                changes["default_budget_period"] = BudgetPeriodType(changes["default_budget_period"])
            except ValueError:
                raise ValidationError(
                    f"Unknown budget period: {changes['default_budget_period']!r}",
                    field="default_budget_period",
                ) from None

        user = self.get_user(principal_id)
        stored = self.store.put(
            user.touched(principal_id, self.clock.now(), **changes),
            expected_version=user.version,
        )
        logger.info(
            "user_preferences_updated",
            extra={"user_id": str(principal_id), "fields": sorted(changes)},
        )
        return stored

    def deactivate_user(self, principal_id: UUID) -> User:
        user = self.get_user(principal_id)
        stored = self.store.put(
            user.touched(principal_id, self.clock.now(), is_active=False),
            expected_version=user.version,
        )
        logger.info("user_deactivated", extra={"user_id": str(principal_id)})
        return stored
