"""Membership assignment ORM model and its status/payment state machine."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gymledger.models import Base, BaseModel


class MembershipStatus(str, Enum):
    """Lifecycle status of an assignment.

    active -> expired (time based, may spawn a linked successor)
    active | expired -> cancelled (manual, terminal)
    """

    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment state of an assignment."""

    PAID = "paid"
    PENDING = "pending"
    PARTIAL = "partial"


class PaymentFrequency(str, Enum):
    """How often the assignment is billed."""

    SINGLE = "single"
    MONTHLY = "monthly"


class DebtAction(str, Enum):
    """Operator choice about the outstanding debt when cancelling."""

    KEEP = "keep"
    CANCEL = "cancel"


class MembershipAssignment(Base, BaseModel):
    """
    Time-bounded grant of access to one activity for one member.

    Each assignment carries its own cost and payment state, independent of
    the member's other assignments. Renewals are linked through
    previous_membership_id, forming a renewal chain; the column is unique so
    a predecessor can be renewed at most once.
    """

    __tablename__ = "membership_assignments"

    gym_id: Mapped[int] = mapped_column(ForeignKey("gyms.id"), nullable=False, index=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id"),
        nullable=False,
        index=True,
        comment="Owning member",
    )

    # Activity reference
    activity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    activity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Billing period (nullable: legacy records may lack one)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    # Money
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_transaction_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Ledger entry that settled this assignment",
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_frequency: Mapped[PaymentFrequency] = mapped_column(
        SQLEnum(PaymentFrequency),
        nullable=False,
        default=PaymentFrequency.MONTHLY,
    )

    status: Mapped[MembershipStatus] = mapped_column(
        SQLEnum(MembershipStatus),
        nullable=False,
        default=MembershipStatus.ACTIVE,
        index=True,
    )

    # Attendance counters
    max_attendances: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_attendances: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Renewal
    auto_renewal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    previous_membership_id: Mapped[int | None] = mapped_column(
        ForeignKey("membership_assignments.id"),
        nullable=True,
        unique=True,
        comment="Predecessor in the renewal chain",
    )
    renewal_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    renewed_automatically: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    renewed_manually: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cancellation metadata
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_debt_action: Mapped[DebtAction | None] = mapped_column(
        SQLEnum(DebtAction),
        nullable=True,
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    member: Mapped["Member"] = relationship(  # noqa: F821
        "Member",
        back_populates="memberships",
    )

    __table_args__ = (
        Index("idx_membership_member_status", "member_id", "status"),
        Index("idx_membership_member_payment", "member_id", "payment_status"),
        Index("idx_membership_renewal_scan", "gym_id", "status", "auto_renewal"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def outstanding(self) -> Decimal:
        """Cost not yet covered by payments."""
        return max(Decimal("0.00"), (self.cost or Decimal("0")) - (self.paid_amount or Decimal("0")))

    def __repr__(self) -> str:
        return (
            f"<MembershipAssignment(id={self.id}, member_id={self.member_id}, "
            f"activity={self.activity_name}, status={self.status}, "
            f"payment_status={self.payment_status}, cost={self.cost})>"
        )


__all__ = [
    "MembershipAssignment",
    "MembershipStatus",
    "PaymentStatus",
    "PaymentFrequency",
    "DebtAction",
]
