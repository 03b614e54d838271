"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from gymledger.models.gym import Gym  # noqa: E402
from gymledger.models.member import Member, MemberStatus  # noqa: E402
from gymledger.models.membership import (  # noqa: E402
    DebtAction,
    MembershipAssignment,
    MembershipStatus,
    PaymentFrequency,
    PaymentStatus,
)
from gymledger.models.ledger_transaction import (  # noqa: E402
    LedgerTransaction,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from gymledger.models.daily_cash import CashStatus, DailyCash  # noqa: E402
from gymledger.models.monthly_charge import ChargeStatus, MonthlyCharge  # noqa: E402
from gymledger.models.scheduler_run import RunStatus, SchedulerRun  # noqa: E402
from gymledger.models.audit_log import AuditLog  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "Gym",
    "Member",
    "MemberStatus",
    "MembershipAssignment",
    "MembershipStatus",
    "PaymentStatus",
    "PaymentFrequency",
    "DebtAction",
    "LedgerTransaction",
    "TransactionType",
    "TransactionCategory",
    "TransactionStatus",
    "DailyCash",
    "CashStatus",
    "MonthlyCharge",
    "ChargeStatus",
    "SchedulerRun",
    "RunStatus",
    "AuditLog",
]
