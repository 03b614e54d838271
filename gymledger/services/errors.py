"""Domain exceptions for membership and ledger operations.

Single-entity operations raise one of these and leave no partial state.
Batch operations collect BatchItemError records instead of raising.
"""

from dataclasses import dataclass


class LedgerError(Exception):
    """Base exception for membership ledger errors."""

    code = "ledger_error"
    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(LedgerError):
    """Referenced record does not exist."""

    code = "not_found"
    http_status = 404


class MemberNotFoundError(NotFoundError):
    code = "member_not_found"

    def __init__(self, member_id: int):
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


class MembershipNotFoundError(NotFoundError):
    code = "membership_not_found"

    def __init__(self, membership_id: int):
        self.membership_id = membership_id
        super().__init__(f"Membership {membership_id} not found")


class TransactionNotFoundError(NotFoundError):
    code = "transaction_not_found"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Ledger transaction {transaction_id} not found")


class InvalidStateError(LedgerError):
    """Operation is not allowed in the record's current state."""

    code = "invalid_state"
    http_status = 409


class AlreadyCancelledError(InvalidStateError):
    code = "already_cancelled"

    def __init__(self, membership_id: int):
        self.membership_id = membership_id
        super().__init__(f"Membership {membership_id} has already been cancelled")


class AutoRenewalDisabledError(InvalidStateError):
    code = "auto_renewal_disabled"

    def __init__(self, membership_id: int):
        self.membership_id = membership_id
        super().__init__(f"Membership {membership_id} does not have auto-renewal enabled")


class InvalidDateError(InvalidStateError):
    code = "invalid_date"
    http_status = 422


class CashRegisterClosedError(InvalidStateError):
    code = "cash_register_closed"


class ValidationError(LedgerError):
    """Input rejected before touching the store."""

    code = "validation_error"
    http_status = 422


class TransientStoreConflictError(LedgerError):
    """Store conflict still failing after the configured retries."""

    code = "store_conflict"
    http_status = 503


@dataclass
class BatchItemError:
    """One failed item of a batch run; the batch continues past it."""

    message: str
    member_id: int | None = None
    membership_id: int | None = None

    def __str__(self) -> str:
        parts = []
        if self.member_id is not None:
            parts.append(f"member {self.member_id}")
        if self.membership_id is not None:
            parts.append(f"membership {self.membership_id}")
        prefix = ", ".join(parts)
        return f"{prefix}: {self.message}" if prefix else self.message


__all__ = [
    "LedgerError",
    "NotFoundError",
    "MemberNotFoundError",
    "MembershipNotFoundError",
    "TransactionNotFoundError",
    "InvalidStateError",
    "AlreadyCancelledError",
    "AutoRenewalDisabledError",
    "InvalidDateError",
    "CashRegisterClosedError",
    "ValidationError",
    "TransientStoreConflictError",
    "BatchItemError",
]
