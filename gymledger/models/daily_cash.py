"""Daily cash aggregate ORM model - per-day running totals."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gymledger.models import Base, BaseModel


class CashStatus(str, Enum):
    """Whether manual movements may still be booked on the day."""

    OPEN = "open"
    CLOSED = "closed"


class DailyCash(Base, BaseModel):
    """Running totals for one calendar day of one gym.

    Created lazily with zeroed totals on the first movement of the day and
    never deleted. Totals are unsigned and only ever increase.
    """

    __tablename__ = "daily_cash"

    gym_id: Mapped[int] = mapped_column(ForeignKey("gyms.id"), nullable=False, index=True)
    cash_date: Mapped[date] = mapped_column(Date, nullable=False)

    opening_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    closing_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    total_income: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    total_expense: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    membership_income: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    other_income: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )

    status: Mapped[CashStatus] = mapped_column(
        SQLEnum(CashStatus), nullable=False, default=CashStatus.OPEN
    )
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    opened_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("gym_id", "cash_date", name="uq_daily_cash_gym_date"),)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def net_amount(self) -> Decimal:
        return (self.total_income or Decimal("0")) - (self.total_expense or Decimal("0"))

    def __repr__(self) -> str:
        return (
            f"<DailyCash(gym_id={self.gym_id}, date={self.cash_date}, "
            f"income={self.total_income}, expense={self.total_expense}, status={self.status})>"
        )


__all__ = ["DailyCash", "CashStatus"]
