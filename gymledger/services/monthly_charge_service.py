"""Recurring monthly charges tracked alongside monthly-billed memberships.

Charges are generated once per (membership, month) and follow the
membership's payment status after the fact: a payment commits first and
reconcile_paid_memberships() catches the charges up afterwards.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gymledger.models import (
    ChargeStatus,
    MembershipAssignment,
    MembershipStatus,
    MonthlyCharge,
    PaymentFrequency,
    PaymentStatus,
)
from gymledger.services import settings
from gymledger.services.date_utils import month_key, now_utc, today
from gymledger.services.errors import BatchItemError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ChargeGenerationResult:
    month: str
    created_count: int = 0
    skipped_count: int = 0
    failures: list[BatchItemError] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [str(failure) for failure in self.failures]


def _validate_month(month: str) -> str:
    try:
        year, mon = month.split("-")
        if len(year) != 4 or not 1 <= int(mon) <= 12:
            raise ValueError(month)
    except ValueError as e:
        raise ValidationError(f"Month must be formatted YYYY-MM, got '{month}'") from e
    return f"{int(year):04d}-{int(mon):02d}"


class MonthlyChargeService:
    """Generate and reconcile monthly charge records."""

    def __init__(self, db: Session):
        self.db = db

    def generate_monthly_charges(
        self, gym_id: int, month: str | None = None, on_date: date | None = None
    ) -> ChargeGenerationResult:
        """Create one pending charge per active monthly membership lacking one.

        Already-paid memberships get their charge created as paid. Inserts
        are committed in chunks of BATCH_SIZE; a failed chunk is reported
        per membership and the run continues.
        """
        month = _validate_month(month) if month else month_key(on_date or today())
        result = ChargeGenerationResult(month=month)

        existing = {
            membership_id
            for (membership_id,) in self.db.query(MonthlyCharge.membership_id)
            .filter_by(gym_id=gym_id, month=month)
            .all()
        }
        memberships = (
            self.db.query(MembershipAssignment)
            .filter_by(
                gym_id=gym_id,
                status=MembershipStatus.ACTIVE,
                payment_frequency=PaymentFrequency.MONTHLY,
            )
            .order_by(MembershipAssignment.id)
            .all()
        )

        chunk: list[MonthlyCharge] = []
        for membership in memberships:
            if membership.id in existing:
                result.skipped_count += 1
                continue
            paid = membership.payment_status == PaymentStatus.PAID
            chunk.append(
                MonthlyCharge(
                    gym_id=gym_id,
                    member_id=membership.member_id,
                    membership_id=membership.id,
                    month=month,
                    amount=membership.cost,
                    status=ChargeStatus.PAID if paid else ChargeStatus.PENDING,
                    paid_at=membership.paid_at if paid else None,
                    transaction_id=membership.payment_transaction_id if paid else None,
                )
            )
            if len(chunk) >= settings.batch_size:
                self._commit_chunk(chunk, result)
                chunk = []
        if chunk:
            self._commit_chunk(chunk, result)

        logger.info(
            f"Generated {result.created_count} monthly charges for gym {gym_id} ({month}), "
            f"skipped {result.skipped_count}, failed {len(result.failures)}"
        )
        return result

    def _commit_chunk(self, chunk: list[MonthlyCharge], result: ChargeGenerationResult) -> None:
        try:
            self.db.add_all(chunk)
            self.db.commit()
            result.created_count += len(chunk)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create {len(chunk)} monthly charges: {e}")
            for charge in chunk:
                result.failures.append(
                    BatchItemError(
                        message=f"charge creation failed: {e}",
                        member_id=charge.member_id,
                        membership_id=charge.membership_id,
                    )
                )

    def list_charges(
        self, gym_id: int, member_id: int | None = None, month: str | None = None
    ) -> list[MonthlyCharge]:
        query = self.db.query(MonthlyCharge).filter_by(gym_id=gym_id)
        if member_id is not None:
            query = query.filter_by(member_id=member_id)
        if month is not None:
            query = query.filter_by(month=_validate_month(month))
        return query.order_by(MonthlyCharge.month, MonthlyCharge.id).all()

    def reconcile_paid_memberships(
        self,
        gym_id: int,
        membership_ids: list[int],
        transaction_id: int | None = None,
    ) -> int:
        """Mark pending charges of now-paid memberships as paid.

        Returns:
            Number of charges updated
        """
        if not membership_ids:
            return 0
        charges = (
            self.db.query(MonthlyCharge)
            .join(MembershipAssignment, MembershipAssignment.id == MonthlyCharge.membership_id)
            .filter(
                MonthlyCharge.gym_id == gym_id,
                MonthlyCharge.membership_id.in_(membership_ids),
                MonthlyCharge.status == ChargeStatus.PENDING,
                MembershipAssignment.payment_status == PaymentStatus.PAID,
            )
            .all()
        )
        if not charges:
            return 0

        paid_at = now_utc()
        for charge in charges:
            charge.status = ChargeStatus.PAID
            charge.paid_at = paid_at
            charge.transaction_id = transaction_id
        self.db.commit()
        logger.info(f"Reconciled {len(charges)} monthly charges for memberships {membership_ids}")
        return len(charges)


__all__ = ["MonthlyChargeService", "ChargeGenerationResult"]
