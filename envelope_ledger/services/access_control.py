"""
AccessControlResolver -- who may read or write a budget.

Responsibility:
    Authorizes a principal against a budget.  A principal is granted access
    when it owns the budget or appears in ``shared_with``; all participants
    have equal rights, so READ and WRITE resolve the same way.  Envelopes
    and transactions carry no ACL of their own and are authorized through
    their parent budget.

Architecture position:
    Ledger > Services.  Called by the façade before any mutation or read.

Caching:
    Grants are cached per (principal, budget) with a TTL and a size bound.
    Denials are never cached.  Sharing changes invalidate every entry of
    the affected budget; other replicas may serve a stale grant until the
    TTL expires, which bounds the staleness window.

Failure modes:
    - AccessDeniedError when the principal is not a participant.
    - BudgetNotFoundError when the budget is missing or soft-deleted.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from envelope_ledger.domain.entities import Budget, EntityType
from envelope_ledger.exceptions import AccessDeniedError
from envelope_ledger.logging_config import get_logger
from envelope_ledger.store import EntityStore

logger = get_logger("services.access_control")


class AccessOperation(str, Enum):
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class AccessGrant:
    principal_id: UUID
    budget_id: UUID
    is_owner: bool


class AccessCache:
    """
    Thread-safe TTL + LRU cache of access grants.

    Shared by every request the façade serves; a lock guards the ordered
    dict because workers run on independent threads.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_entries: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._timer = timer
        self._entries: OrderedDict[tuple[UUID, UUID], tuple[float, AccessGrant]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, principal_id: UUID, budget_id: UUID) -> AccessGrant | None:
        key = (principal_id, budget_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, grant = entry
            if self._timer() - stored_at >= self._ttl:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return grant

    def put(self, grant: AccessGrant) -> None:
        key = (grant.principal_id, grant.budget_id)
        with self._lock:
            self._entries[key] = (self._timer(), grant)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def invalidate_budget(self, budget_id: UUID) -> int:
        """Drop every cached grant for *budget_id*; returns how many."""
        with self._lock:
            stale = [key for key in self._entries if key[1] == budget_id]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(
                "access_cache_invalidated",
                extra={"budget_id": str(budget_id), "entries": len(stale)},
            )
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class AccessControlResolver:
    """Resolves budget access with one point read per cache miss."""

    def __init__(self, store: EntityStore, cache: AccessCache | None = None):
        self._store = store
        self._cache = cache

    @staticmethod
    def is_participant(budget: Budget, principal_id: UUID) -> bool:
        return principal_id in budget.participants

    def authorize(
        self,
        principal_id: UUID,
        budget_id: UUID,
        operation: AccessOperation = AccessOperation.READ,
    ) -> AccessGrant:
        """
        Grant or deny *principal_id* access to *budget_id*.

        Raises:
            BudgetNotFoundError: if the budget does not exist.
            AccessDeniedError: if the principal is not a participant.
        """
        if self._cache is not None:
            cached = self._cache.get(principal_id, budget_id)
            if cached is not None:
                return cached

        budget = self._store.get(EntityType.BUDGET, budget_id, budget_id)
        if not self.is_participant(budget, principal_id):
            logger.warning(
                "access_denied",
                extra={
                    "principal_id": str(principal_id),
                    "budget_id": str(budget_id),
                    "operation": operation.value,
                },
            )
            raise AccessDeniedError(str(principal_id), str(budget_id), operation.value)

        grant = AccessGrant(
            principal_id=principal_id,
            budget_id=budget_id,
            is_owner=principal_id == budget.owner_id,
        )
        if self._cache is not None:
            self._cache.put(grant)
        return grant
