"""Ledger transaction ORM model - append-only record of money movements."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Date
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Numeric, String, Text, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from gymledger.models import Base, BaseModel


class TransactionType(str, Enum):
    """Direction of a money movement."""

    INCOME = "income"
    EXPENSE = "expense"
    REFUND = "refund"


class TransactionCategory(str, Enum):
    """Bucket a movement is reported under."""

    # Income
    MEMBERSHIP = "membership"
    EXTRA = "extra"
    PRODUCT = "product"
    SERVICE = "service"
    # Expense
    WITHDRAWAL = "withdrawal"
    SUPPLIER = "supplier"
    SERVICES = "services"
    MAINTENANCE = "maintenance"
    SALARY = "salary"
    REFUND = "refund"
    # Either direction
    OTHER = "other"


INCOME_CATEGORIES = frozenset(
    {
        TransactionCategory.MEMBERSHIP,
        TransactionCategory.EXTRA,
        TransactionCategory.PRODUCT,
        TransactionCategory.SERVICE,
        TransactionCategory.OTHER,
    }
)
EXPENSE_CATEGORIES = frozenset(
    {
        TransactionCategory.WITHDRAWAL,
        TransactionCategory.SUPPLIER,
        TransactionCategory.SERVICES,
        TransactionCategory.MAINTENANCE,
        TransactionCategory.SALARY,
        TransactionCategory.OTHER,
        TransactionCategory.REFUND,
    }
)


class TransactionStatus(str, Enum):
    """Only completed -> refunded is allowed after insert."""

    COMPLETED = "completed"
    REFUNDED = "refunded"


class LedgerTransaction(Base, BaseModel):
    """Immutable record of one money movement.

    Amounts are signed: income is positive, expense and refund entries are
    negative. The daily cash aggregate keeps unsigned totals per bucket.
    """

    __tablename__ = "ledger_transactions"

    gym_id: Mapped[int] = mapped_column(ForeignKey("gyms.id"), nullable=False, index=True)
    type: Mapped[TransactionType] = mapped_column(SQLEnum(TransactionType), nullable=False)
    category: Mapped[TransactionCategory] = mapped_column(
        SQLEnum(TransactionCategory), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Signed amount: income > 0, expense/refund < 0",
    )
    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Civil date the movement is booked on",
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    member_id: Mapped[int | None] = mapped_column(
        ForeignKey("members.id"), nullable=True, index=True
    )
    membership_id: Mapped[int | None] = mapped_column(
        ForeignKey("membership_assignments.id"),
        nullable=True,
        index=True,
        comment="Set when the movement concerns exactly one membership",
    )
    membership_ids: Mapped[list[int] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Every membership a payment covers",
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        SQLEnum(TransactionStatus),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_ledger_gym_date", "gym_id", "transaction_date"),
        Index("idx_ledger_member_type", "member_id", "type"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction(id={self.id}, type={self.type}, category={self.category}, "
            f"amount={self.amount}, date={self.transaction_date}, status={self.status})>"
        )


_MUTABLE_COLUMNS = frozenset({"status", "updated_at"})


@event.listens_for(LedgerTransaction, "before_update")
def _reject_ledger_rewrites(mapper, connection, target: LedgerTransaction) -> None:
    state = inspect(target)
    for attr in state.attrs:
        if attr.key in _MUTABLE_COLUMNS or not attr.history.has_changes():
            continue
        raise ValueError(
            f"Ledger transaction {target.id} is immutable; attempted to change '{attr.key}'"
        )
    history = state.attrs.status.history
    if history.has_changes():
        old = history.deleted[0] if history.deleted else None
        if not (old == TransactionStatus.COMPLETED and target.status == TransactionStatus.REFUNDED):
            raise ValueError(
                f"Ledger transaction {target.id} status can only move completed -> refunded"
            )


__all__ = [
    "LedgerTransaction",
    "TransactionType",
    "TransactionCategory",
    "TransactionStatus",
    "INCOME_CATEGORIES",
    "EXPENSE_CATEGORIES",
]
