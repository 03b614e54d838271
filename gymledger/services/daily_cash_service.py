"""Daily cash service: per-day running totals and manual cash movements.

One DailyCash row per gym per calendar day, created lazily with zeroed
totals on the first movement of the day. Totals are unsigned and only ever
increase; the ledger keeps the signed entries they are derived from.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gymledger.models import (
    CashStatus,
    DailyCash,
    LedgerTransaction,
    TransactionCategory,
    TransactionType,
)
from gymledger.models.ledger_transaction import EXPENSE_CATEGORIES, INCOME_CATEGORIES
from gymledger.services.audit_service import AuditService
from gymledger.services.date_utils import now_utc, safe_to_date, today
from gymledger.services.errors import (
    CashRegisterClosedError,
    InvalidDateError,
    InvalidStateError,
    ValidationError,
)
from gymledger.services.ledger_service import LedgerService
from gymledger.services.store import StoreConflict, run_in_transaction

logger = logging.getLogger(__name__)

AUTO_CREATED_NOTE = "Created automatically on first movement"


def _parse_category(value, allowed: frozenset, kind: str) -> TransactionCategory:
    try:
        category = TransactionCategory(value)
    except ValueError as e:
        raise ValidationError(f"Unknown {kind} category: {value}") from e
    if category not in allowed:
        raise ValidationError(f"Invalid {kind} category: {category.value}")
    return category


def _positive_amount(amount) -> Decimal:
    try:
        value = Decimal(str(amount))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid amount: {amount}") from e
    if value <= 0:
        raise ValidationError(f"Amount must be greater than zero, got {value}")
    return value


class DailyCashService:
    """Read-modify-write access to the daily cash aggregate."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)

    # Building blocks used inside other workflows' transactions

    def get_or_create_day(self, gym_id: int, day: date) -> DailyCash:
        """Return the day's aggregate, creating it zeroed and open if missing.

        Runs inside the caller's transaction. A concurrent creation of the
        same day surfaces as StoreConflict so run_in_transaction retries.
        """
        cash = self.db.query(DailyCash).filter_by(gym_id=gym_id, cash_date=day).first()
        if cash is not None:
            return cash

        cash = DailyCash(
            gym_id=gym_id,
            cash_date=day,
            opening_amount=Decimal("0.00"),
            total_income=Decimal("0.00"),
            total_expense=Decimal("0.00"),
            membership_income=Decimal("0.00"),
            other_income=Decimal("0.00"),
            status=CashStatus.OPEN,
            notes=AUTO_CREATED_NOTE,
        )
        self.db.add(cash)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise StoreConflict(f"Daily cash for {day} was created concurrently") from e
        logger.info(f"Created daily cash for gym {gym_id} on {day}")
        return cash

    def add_income(
        self, gym_id: int, day: date, amount: Decimal, membership: bool = False
    ) -> DailyCash:
        cash = self.get_or_create_day(gym_id, day)
        cash.total_income += amount
        if membership:
            cash.membership_income += amount
        else:
            cash.other_income += amount
        return cash

    def add_expense(self, gym_id: int, day: date, amount: Decimal) -> DailyCash:
        """Increase the day's expense total by an unsigned amount."""
        cash = self.get_or_create_day(gym_id, day)
        cash.total_expense += abs(amount)
        return cash

    # Queries

    def get_day(self, gym_id: int, day: date) -> DailyCash | None:
        return self.db.query(DailyCash).filter_by(gym_id=gym_id, cash_date=day).first()

    def list_range(self, gym_id: int, start_date: date, end_date: date) -> list[DailyCash]:
        """Aggregates in [start_date, end_date], oldest first."""
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date")
        return (
            self.db.query(DailyCash)
            .filter(
                DailyCash.gym_id == gym_id,
                DailyCash.cash_date >= start_date,
                DailyCash.cash_date <= end_date,
            )
            .order_by(DailyCash.cash_date)
            .all()
        )

    # Operator actions (each commits on its own)

    def open_day(
        self,
        gym_id: int,
        day: date | None = None,
        opening_amount: Decimal = Decimal("0.00"),
        actor: str | None = None,
        notes: str | None = None,
    ) -> DailyCash:
        """Open the cash register for a day.

        An aggregate created implicitly by an earlier movement can still be
        opened explicitly; an explicitly opened or closed day cannot.

        Raises:
            InvalidStateError: Day already opened
            CashRegisterClosedError: Day already closed
            ValidationError: Negative opening amount
        """
        day = day or today()
        opening = Decimal(str(opening_amount))
        if opening < 0:
            raise ValidationError("Opening amount cannot be negative")

        def work(db: Session) -> DailyCash:
            cash = self.get_or_create_day(gym_id, day)
            if cash.status == CashStatus.CLOSED:
                raise CashRegisterClosedError(f"Daily cash for {day} is already closed")
            if cash.opened_at is not None:
                raise InvalidStateError(f"Daily cash for {day} is already open")
            cash.opening_amount = opening
            cash.opened_at = now_utc()
            cash.opened_by = actor
            if notes:
                cash.notes = notes
            AuditService.log(
                db, "daily_cash", cash.id, "open", actor=actor,
                changes={"opening_amount": str(opening)}, gym_id=gym_id,
            )
            return cash

        cash = run_in_transaction(self.db, work)
        logger.info(f"Opened daily cash for gym {gym_id} on {day} with {opening}")
        return cash

    def close_day(
        self,
        gym_id: int,
        day: date | None = None,
        closing_amount: Decimal | None = None,
        actor: str | None = None,
        notes: str | None = None,
    ) -> DailyCash:
        """Close the cash register for a day.

        closing_amount defaults to opening amount plus the day's net total.

        Raises:
            CashRegisterClosedError: Day already closed
        """
        day = day or today()

        def work(db: Session) -> DailyCash:
            cash = self.get_or_create_day(gym_id, day)
            if cash.status == CashStatus.CLOSED:
                raise CashRegisterClosedError(f"Daily cash for {day} is already closed")
            closing = (
                Decimal(str(closing_amount))
                if closing_amount is not None
                else cash.opening_amount + cash.net_amount
            )
            cash.closing_amount = closing
            cash.status = CashStatus.CLOSED
            cash.closed_at = now_utc()
            cash.closed_by = actor
            if notes:
                cash.notes = notes
            AuditService.log(
                db, "daily_cash", cash.id, "close", actor=actor,
                changes={"closing_amount": str(closing)}, gym_id=gym_id,
            )
            return cash

        cash = run_in_transaction(self.db, work)
        logger.info(f"Closed daily cash for gym {gym_id} on {day} at {cash.closing_amount}")
        return cash

    def register_extra_income(
        self,
        gym_id: int,
        amount: Decimal,
        description: str,
        category: str = TransactionCategory.EXTRA.value,
        day=None,
        payment_method: str = "cash",
        actor: str | None = None,
        notes: str | None = None,
    ) -> LedgerTransaction:
        """Book a manual income movement (sale, service, other).

        Raises:
            ValidationError: Non-positive amount or category outside the income list
            InvalidDateError: Unparseable date
            CashRegisterClosedError: The day has been closed
        """
        value = _positive_amount(amount)
        tx_category = _parse_category(category, INCOME_CATEGORIES, "income")
        booking_date = self._booking_date(day)

        def work(db: Session) -> LedgerTransaction:
            self._require_open(gym_id, booking_date)
            transaction = self.ledger.record_transaction(
                gym_id=gym_id,
                type=TransactionType.INCOME,
                category=tx_category,
                amount=value,
                transaction_date=booking_date,
                description=description,
                payment_method=payment_method,
                notes=notes,
                recorded_by=actor,
            )
            self.add_income(
                gym_id, booking_date, value,
                membership=tx_category == TransactionCategory.MEMBERSHIP,
            )
            return transaction

        transaction = run_in_transaction(self.db, work)
        logger.info(
            f"Registered extra income {value} ({tx_category.value}) for gym {gym_id} on {booking_date}"
        )
        return transaction

    def register_expense(
        self,
        gym_id: int,
        amount: Decimal,
        description: str,
        category: str = TransactionCategory.OTHER.value,
        day=None,
        payment_method: str = "cash",
        actor: str | None = None,
        notes: str | None = None,
    ) -> LedgerTransaction:
        """Book a manual expense; amount is given unsigned and stored negative.

        Raises:
            ValidationError: Non-positive amount or category outside the expense list
            InvalidDateError: Unparseable date
            CashRegisterClosedError: The day has been closed
        """
        value = _positive_amount(amount)
        tx_category = _parse_category(category, EXPENSE_CATEGORIES, "expense")
        booking_date = self._booking_date(day)

        def work(db: Session) -> LedgerTransaction:
            self._require_open(gym_id, booking_date)
            transaction = self.ledger.record_transaction(
                gym_id=gym_id,
                type=TransactionType.EXPENSE,
                category=tx_category,
                amount=-value,
                transaction_date=booking_date,
                description=description,
                payment_method=payment_method,
                notes=notes,
                recorded_by=actor,
            )
            self.add_expense(gym_id, booking_date, value)
            return transaction

        transaction = run_in_transaction(self.db, work)
        logger.info(
            f"Registered expense {value} ({tx_category.value}) for gym {gym_id} on {booking_date}"
        )
        return transaction

    def _booking_date(self, day) -> date:
        if day is None:
            return today()
        booking_date = safe_to_date(day)
        if booking_date is None:
            raise InvalidDateError(f"Invalid date: {day!r}")
        return booking_date

    def _require_open(self, gym_id: int, day: date) -> None:
        cash = self.get_day(gym_id, day)
        if cash is not None and cash.status == CashStatus.CLOSED:
            raise CashRegisterClosedError(
                f"Daily cash for {day} is closed; no further movements can be registered"
            )


__all__ = ["DailyCashService", "AUTO_CREATED_NOTE"]
