"""Monthly charge ORM model - recurring-charge records per membership."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gymledger.models import Base, BaseModel


class ChargeStatus(str, Enum):
    """Settlement state of a monthly charge."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class MonthlyCharge(Base, BaseModel):
    """One month's charge for a monthly-billed membership.

    Tracked separately from the membership's own payment status and brought
    in line with it after payments (eventually consistent).
    """

    __tablename__ = "monthly_charges"

    gym_id: Mapped[int] = mapped_column(ForeignKey("gyms.id"), nullable=False, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    membership_id: Mapped[int] = mapped_column(
        ForeignKey("membership_assignments.id"), nullable=False, index=True
    )
    month: Mapped[str] = mapped_column(String(7), nullable=False, comment="YYYY-MM")
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[ChargeStatus] = mapped_column(
        SQLEnum(ChargeStatus), nullable=False, default=ChargeStatus.PENDING
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("membership_id", "month", name="uq_monthly_charge_membership_month"),
    )

    def __repr__(self) -> str:
        return (
            f"<MonthlyCharge(id={self.id}, membership_id={self.membership_id}, "
            f"month={self.month}, amount={self.amount}, status={self.status})>"
        )


__all__ = ["MonthlyCharge", "ChargeStatus"]
