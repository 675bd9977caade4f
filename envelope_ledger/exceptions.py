"""
Typed exception hierarchy for the envelope ledger.

Every error raised by the engine is a subclass of ``EnvelopeLedgerError``
and carries:

  1. a TYPED class, so callers branch with ``except`` rather than by
     parsing messages;
  2. a ``code`` class attribute that is machine-readable and API-safe;
  3. structured attributes describing the failing entity or amount.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    EnvelopeLedgerError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidDateRangeError
    |   +-- InvalidCurrencyError
    |   +-- BudgetOverlapError
    |   +-- InvalidStateTransitionError
    |   +-- TransactionImmutableError
    |   +-- EnvelopeConflictError
    |   +-- SharingLimitExceededError
    |
    +-- AccessDeniedError
    |
    +-- ReferenceNotFoundError
    |   +-- UserNotFoundError
    |   +-- BudgetNotFoundError
    |   +-- EnvelopeNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- InsufficientBalanceError
    +-- ConcurrencyConflictError
    +-- PartialFailureError
    +-- CrossPartitionQueryError

===============================================================================
HANDLING PATTERNS
===============================================================================

ValidationError and AccessDeniedError are never retried.
ConcurrencyConflictError is transient: re-read and retry with bounded
backoff (see ``envelope_ledger.retry.run_with_retry``).
PartialFailureError means a multi-document write was rolled back; no
partial balance change is visible and the caller may resubmit.
"""

from decimal import Decimal


class EnvelopeLedgerError(Exception):
    """
    Base exception for all envelope ledger errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


# Validation


class ValidationError(EnvelopeLedgerError):
    """Malformed input, rejected before any store access."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(ValidationError):
    """Amount is not a positive decimal with at most two fractional digits."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object, reason: str, field: str = "amount"):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}", field=field)


class InvalidDateRangeError(ValidationError):
    """start_date must be strictly before end_date."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date: str, end_date: str):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"start_date ({start_date}) must be before end_date ({end_date})",
            field="start_date",
        )


class InvalidCurrencyError(ValidationError):
    """Currency is not a recognized ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'", field="currency")


class BudgetOverlapError(ValidationError):
    """New budget date range overlaps another draft/active budget of the owner."""

    code: str = "BUDGET_OVERLAP"

    def __init__(self, owner_id: str, existing_budget_id: str, overlap_start: str, overlap_end: str):
        self.owner_id = owner_id
        self.existing_budget_id = existing_budget_id
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"Budget period overlaps budget {existing_budget_id} "
            f"({overlap_start} to {overlap_end})",
            field="start_date",
        )


class InvalidStateTransitionError(ValidationError):
    """Requested lifecycle transition is not allowed from the current state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, current: str, target: str, reason: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.target = target
        self.reason = reason
        message = f"Cannot move {entity_type} {entity_id} from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, field="status")


class TransactionImmutableError(ValidationError):
    """Cleared or reconciled transactions may only be voided."""

    code: str = "TRANSACTION_IMMUTABLE"

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(
            f"Transaction {transaction_id} is {status}; only void is permitted",
            field="status",
        )


class EnvelopeConflictError(ValidationError):
    """Envelope name or sort order collides within a budget."""

    code: str = "ENVELOPE_CONFLICT"

    def __init__(self, budget_id: str, field: str, value: str):
        self.budget_id = budget_id
        self.value = value
        super().__init__(
            f"Envelope {field} {value!r} already used in budget {budget_id}",
            field=field,
        )


class SharingLimitExceededError(ValidationError):
    """sharedWith would exceed the configured participant bound."""

    code: str = "SHARING_LIMIT_EXCEEDED"

    def __init__(self, budget_id: str, limit: int, requested: int):
        self.budget_id = budget_id
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"Budget {budget_id} may be shared with at most {limit} principals "
            f"(requested {requested})",
            field="shared_with",
        )


# Access


class AccessDeniedError(EnvelopeLedgerError):
    """Principal is neither owner nor participant of the budget."""

    code: str = "ACCESS_DENIED"

    def __init__(self, principal_id: str, budget_id: str, operation: str):
        self.principal_id = principal_id
        self.budget_id = budget_id
        self.operation = operation
        super().__init__(
            f"Principal {principal_id} may not {operation} budget {budget_id}"
        )


# References


class ReferenceNotFoundError(EnvelopeLedgerError):
    """A referenced entity does not exist or is inactive."""

    code: str = "REFERENCE_NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type.capitalize()} not found: {entity_id}")


class UserNotFoundError(ReferenceNotFoundError):
    code: str = "USER_NOT_FOUND"
    entity_type: str = "user"


class BudgetNotFoundError(ReferenceNotFoundError):
    code: str = "BUDGET_NOT_FOUND"
    entity_type: str = "budget"


class EnvelopeNotFoundError(ReferenceNotFoundError):
    code: str = "ENVELOPE_NOT_FOUND"
    entity_type: str = "envelope"


class TransactionNotFoundError(ReferenceNotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    entity_type: str = "transaction"


# Balance


class InsufficientBalanceError(EnvelopeLedgerError):
    """Expense or transfer would breach the envelope's overspend policy."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        envelope_id: str,
        current_balance: Decimal,
        requested: Decimal,
        floor: Decimal,
    ):
        self.envelope_id = envelope_id
        self.current_balance = current_balance
        self.requested = requested
        self.floor = floor
        super().__init__(
            f"Envelope {envelope_id} balance {current_balance} cannot cover "
            f"{requested} (minimum allowed balance {floor})"
        )


# Concurrency


class ConcurrencyConflictError(EnvelopeLedgerError):
    """Version token mismatch: entity was modified by another writer."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int | None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id}: "
            f"expected version {expected_version}"
        )


class PartialFailureError(EnvelopeLedgerError):
    """A multi-document write failed midway and was rolled back."""

    code: str = "PARTIAL_FAILURE"

    def __init__(self, operation: str, budget_id: str, stage: str, cause: str):
        self.operation = operation
        self.budget_id = budget_id
        self.stage = stage
        self.cause = cause
        super().__init__(
            f"{operation} on budget {budget_id} failed at {stage} and was rolled back: {cause}"
        )


class CrossPartitionQueryError(EnvelopeLedgerError):
    """Query plan for a partitioned entity has no routing key."""

    code: str = "CROSS_PARTITION_QUERY"

    def __init__(self, entity_type: str, reason: str):
        self.entity_type = entity_type
        self.reason = reason
        super().__init__(f"Rejected {entity_type} query plan: {reason}")
