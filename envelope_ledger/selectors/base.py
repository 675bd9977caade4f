"""
Module: envelope_ledger.selectors.base
Responsibility: Abstract base class for read-only selectors.  Selectors form
    the query side of the ledger, planning and executing partition-scoped
    reads without mutation capability.
Architecture position: Ledger > Selectors.  May import from store/ and
    domain/.  MUST NOT import from services/ or the façade.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller but never
      add, delete, flush or commit.
    - Selectors return frozen domain entities, never ORM rows.
    - The caller owns the session and its transaction scope.
"""

from __future__ import annotations

from abc import ABC

from sqlalchemy.orm import Session

from envelope_ledger.store import EntityStore


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries through the Entity Store and return entities.
    """

    def __init__(self, session: Session):
        self.session = session
        self.store = EntityStore(session)
