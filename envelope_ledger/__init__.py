"""
Envelope Ledger - envelope-budgeting ledger engine

Maintains financial consistency across users, budgets, envelopes and
transactions stored as routing-key partitioned documents:
- Optimistic concurrency on every document write
- Atomic transfers between envelopes of one budget
- Period close and rollover into the next budget
- Budgets shared with equal rights between participants
"""

__version__ = "0.1.0"
