"""Member ORM model with the cached outstanding debt."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gymledger.models import Base, BaseModel


class MemberStatus(str, Enum):
    """Lifecycle status of a member."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class Member(Base, BaseModel):
    """
    Person holding one or more membership assignments at a gym.

    total_debt is a cached value: the sum of the member's pending membership
    costs. It is mutated only by the payment, cancellation and renewal
    workflows and can be recomputed from membership history with
    MembershipService.compute_expected_debt().
    """

    __tablename__ = "members"

    gym_id: Mapped[int] = mapped_column(
        ForeignKey("gyms.id"),
        nullable=False,
        index=True,
        comment="Owning gym",
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[MemberStatus] = mapped_column(
        SQLEnum(MemberStatus),
        nullable=False,
        default=MemberStatus.ACTIVE,
    )
    total_debt: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Cached sum of pending membership costs (never negative)",
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    gym: Mapped["Gym"] = relationship("Gym", back_populates="members")  # noqa: F821
    memberships: Mapped[list["MembershipAssignment"]] = relationship(  # noqa: F821
        "MembershipAssignment",
        back_populates="member",
        order_by="MembershipAssignment.id",
    )

    __table_args__ = (Index("idx_member_gym_status", "gym_id", "status"),)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return (
            f"<Member(id={self.id}, name={self.full_name}, status={self.status}, "
            f"total_debt={self.total_debt})>"
        )


__all__ = ["Member", "MemberStatus"]
