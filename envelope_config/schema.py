"""
Configuration schema (``envelope_config.schema``).

Frozen dataclass describing every tunable of the ledger engine.  Instances
are produced by ``envelope_config.loader.parse_config`` or by calling
``LedgerConfig()`` directly for the built-in defaults.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LedgerConfig:
    """Runtime configuration for the envelope ledger.

    Guarantees:
        - Immutable after construction.
        - Every field has a production-safe default.
    """

    database_url: str = "sqlite:///envelope_ledger.db"

    # Closed budgets whose end_date is older than this are archived.
    archive_retention_days: int = 730

    max_shared_participants: int = 10

    # Authorization cache: bounded staleness window and size.
    access_cache_ttl_seconds: float = 60.0
    access_cache_max_entries: int = 10_000

    # Calling-layer retry policy for ConcurrencyConflictError.
    conflict_retry_attempts: int = 3
    conflict_retry_backoff_seconds: float = 0.05

    max_query_limit: int = 500
    default_currency: str = "USD"
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, object]:
        """Canonical dict form, used for checksums and trace logging."""
        return {
            "database_url": self.database_url,
            "archive_retention_days": self.archive_retention_days,
            "max_shared_participants": self.max_shared_participants,
            "access_cache_ttl_seconds": self.access_cache_ttl_seconds,
            "access_cache_max_entries": self.access_cache_max_entries,
            "conflict_retry_attempts": self.conflict_retry_attempts,
            "conflict_retry_backoff_seconds": self.conflict_retry_backoff_seconds,
            "max_query_limit": self.max_query_limit,
            "default_currency": self.default_currency,
            "log_level": self.log_level,
        }
