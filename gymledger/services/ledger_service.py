"""Ledger service: append-only money movements and their day reconciliation.

Every cash-affecting workflow appends exactly one LedgerTransaction per
movement. Amounts are signed (income > 0, expense/refund < 0); the only
permitted change after insert is completed -> refunded.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from gymledger.models import (
    DailyCash,
    LedgerTransaction,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from gymledger.models.ledger_transaction import EXPENSE_CATEGORIES, INCOME_CATEGORIES
from gymledger.services.errors import (
    InvalidStateError,
    TransactionNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class LedgerSummary:
    """Totals of ledger entries over a date range (unsigned per bucket)."""

    start_date: date
    end_date: date
    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    total_refunds: Decimal = ZERO
    transaction_count: int = 0
    by_category: dict[str, Decimal] = field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expense


@dataclass
class DayReconciliation:
    """Stored daily aggregate compared with totals recomputed from the ledger."""

    cash_date: date
    stored_income: Decimal
    stored_expense: Decimal
    stored_membership_income: Decimal
    ledger_income: Decimal
    ledger_expense: Decimal
    ledger_membership_income: Decimal

    @property
    def is_consistent(self) -> bool:
        return (
            self.stored_income == self.ledger_income
            and self.stored_expense == self.ledger_expense
            and self.stored_membership_income == self.ledger_membership_income
        )


class LedgerService:
    """Append and query ledger transactions."""

    def __init__(self, db: Session):
        self.db = db

    def record_transaction(
        self,
        gym_id: int,
        type: TransactionType,
        category: TransactionCategory,
        amount: Decimal,
        transaction_date: date,
        description: str,
        member_id: int | None = None,
        membership_id: int | None = None,
        membership_ids: list[int] | None = None,
        payment_method: str | None = None,
        notes: str | None = None,
        recorded_by: str | None = None,
    ) -> LedgerTransaction:
        """Append one money movement to the caller's unit of work.

        The entry is flushed (to obtain its ID) but not committed; the caller
        commits it together with the rest of its workflow.

        Args:
            amount: Signed amount; positive for income, negative otherwise

        Raises:
            ValidationError: Zero amount, wrong sign for the type, or a
                category that does not belong to the movement's direction
        """
        amount = Decimal(str(amount))
        if amount == 0:
            raise ValidationError("Ledger amount must be non-zero")
        if type == TransactionType.INCOME:
            if amount < 0:
                raise ValidationError(f"Income amount must be positive, got {amount}")
            if category not in INCOME_CATEGORIES:
                raise ValidationError(f"Invalid income category: {category.value}")
        else:
            if amount > 0:
                raise ValidationError(f"{type.value.capitalize()} amount must be negative, got {amount}")
            if category not in EXPENSE_CATEGORIES:
                raise ValidationError(f"Invalid expense category: {category.value}")

        transaction = LedgerTransaction(
            gym_id=gym_id,
            type=type,
            category=category,
            amount=amount,
            transaction_date=transaction_date,
            description=description,
            member_id=member_id,
            membership_id=membership_id,
            membership_ids=membership_ids,
            payment_method=payment_method,
            status=TransactionStatus.COMPLETED,
            notes=notes,
            recorded_by=recorded_by,
        )
        self.db.add(transaction)
        self.db.flush()
        logger.debug(
            f"Appended ledger entry {transaction.id}: {type.value}/{category.value} "
            f"{amount} on {transaction_date}"
        )
        return transaction

    def get_transaction(self, transaction_id: int) -> LedgerTransaction:
        transaction = self.db.get(LedgerTransaction, transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def mark_refunded(self, transaction_id: int) -> LedgerTransaction:
        """Move an income entry from completed to refunded (not committed).

        Raises:
            TransactionNotFoundError: Entry does not exist
            InvalidStateError: Entry is not a completed income entry
        """
        transaction = self.get_transaction(transaction_id)
        if transaction.type != TransactionType.INCOME:
            raise InvalidStateError(f"Ledger transaction {transaction_id} is not an income entry")
        if transaction.status != TransactionStatus.COMPLETED:
            raise InvalidStateError(f"Ledger transaction {transaction_id} is already refunded")
        transaction.status = TransactionStatus.REFUNDED
        return transaction

    def list_day_transactions(self, gym_id: int, day: date) -> list[LedgerTransaction]:
        """All entries booked on a calendar day, oldest first."""
        return (
            self.db.query(LedgerTransaction)
            .filter_by(gym_id=gym_id, transaction_date=day)
            .order_by(LedgerTransaction.id)
            .all()
        )

    def get_member_payment_history(self, gym_id: int, member_id: int) -> list[LedgerTransaction]:
        """Membership payments and refunds of one member, newest first."""
        return (
            self.db.query(LedgerTransaction)
            .filter(
                LedgerTransaction.gym_id == gym_id,
                LedgerTransaction.member_id == member_id,
                LedgerTransaction.category.in_(
                    [TransactionCategory.MEMBERSHIP, TransactionCategory.REFUND]
                ),
            )
            .order_by(LedgerTransaction.transaction_date.desc(), LedgerTransaction.id.desc())
            .all()
        )

    def summarize_range(self, gym_id: int, start_date: date, end_date: date) -> LedgerSummary:
        """Income/expense totals by type and category for [start_date, end_date].

        Raises:
            ValidationError: start_date after end_date
        """
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        rows = (
            self.db.query(
                LedgerTransaction.type,
                LedgerTransaction.category,
                func.sum(LedgerTransaction.amount),
                func.count(LedgerTransaction.id),
            )
            .filter(
                LedgerTransaction.gym_id == gym_id,
                LedgerTransaction.transaction_date >= start_date,
                LedgerTransaction.transaction_date <= end_date,
            )
            .group_by(LedgerTransaction.type, LedgerTransaction.category)
            .all()
        )

        summary = LedgerSummary(start_date=start_date, end_date=end_date)
        for tx_type, category, total, count in rows:
            total = abs(Decimal(str(total or 0)))
            summary.transaction_count += count
            key = f"{tx_type.value}:{category.value}"
            summary.by_category[key] = summary.by_category.get(key, ZERO) + total
            if tx_type == TransactionType.INCOME:
                summary.total_income += total
            else:
                summary.total_expense += total
                if tx_type == TransactionType.REFUND:
                    summary.total_refunds += total
        return summary

    def reconcile_day(self, gym_id: int, day: date) -> DayReconciliation:
        """Compare a day's stored aggregate with totals recomputed from its entries.

        A day with no aggregate row compares as all zeros.
        """
        ledger_income = ZERO
        ledger_expense = ZERO
        ledger_membership = ZERO
        for entry in self.list_day_transactions(gym_id, day):
            if entry.type == TransactionType.INCOME:
                ledger_income += entry.amount
                if entry.category == TransactionCategory.MEMBERSHIP:
                    ledger_membership += entry.amount
            else:
                ledger_expense += abs(entry.amount)

        cash = self.db.query(DailyCash).filter_by(gym_id=gym_id, cash_date=day).first()
        result = DayReconciliation(
            cash_date=day,
            stored_income=cash.total_income if cash else ZERO,
            stored_expense=cash.total_expense if cash else ZERO,
            stored_membership_income=cash.membership_income if cash else ZERO,
            ledger_income=ledger_income,
            ledger_expense=ledger_expense,
            ledger_membership_income=ledger_membership,
        )
        if not result.is_consistent:
            logger.warning(
                f"Daily cash {day} of gym {gym_id} does not match ledger: "
                f"stored income={result.stored_income} expense={result.stored_expense}, "
                f"ledger income={ledger_income} expense={ledger_expense}"
            )
        return result


__all__ = ["LedgerService", "LedgerSummary", "DayReconciliation"]
