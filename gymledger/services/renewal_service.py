"""Auto-renewal processor: replace overdue auto-renewing memberships with successors.

Renewing a membership expires it, creates a linked successor starting on
the run date with the same duration, cost and settings, and charges the
cost to the member's debt again.

Each member's renewals commit as one transaction, so a predecessor is
never expired without its successor (or the reverse). The unique
previous_membership_id makes re-entry safe: a predecessor that already
has a successor is only expired, never renewed twice.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gymledger.models import (
    Member,
    MembershipAssignment,
    MembershipStatus,
    PaymentStatus,
)
from gymledger.services import settings
from gymledger.services.audit_service import AuditService
from gymledger.services.date_utils import add_days, duration_days, now_utc, safe_to_date, today
from gymledger.services.errors import (
    AlreadyCancelledError,
    AutoRenewalDisabledError,
    BatchItemError,
    InvalidStateError,
)
from gymledger.services.membership_service import load_member, load_membership
from gymledger.services.store import StoreConflict, run_in_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class RenewedMembership:
    member_id: int
    previous_membership_id: int
    membership_id: int
    activity_name: str
    start_date: date
    end_date: date
    cost: Decimal


@dataclass
class RenewalResult:
    renewed: list[RenewedMembership] = field(default_factory=list)
    skipped_count: int = 0
    failures: list[BatchItemError] = field(default_factory=list)

    @property
    def renewed_count(self) -> int:
        return len(self.renewed)

    @property
    def errors(self) -> list[str]:
        return [str(failure) for failure in self.failures]


def find_successor(db: Session, membership_id: int) -> MembershipAssignment | None:
    return db.query(MembershipAssignment).filter_by(previous_membership_id=membership_id).first()


class AutoRenewalProcessor:
    """Bulk and single-membership renewals."""

    def __init__(self, db: Session):
        self.db = db

    def run(self, gym_id: int, today_date: date | None = None) -> RenewalResult:
        """Renew every active auto-renewing membership whose end date has passed.

        Failures are isolated per member; the run continues and reports them.
        """
        run_date = today_date or today()
        result = RenewalResult()

        due: dict[int, list[int]] = {}
        candidates = (
            self.db.query(MembershipAssignment)
            .filter_by(gym_id=gym_id, status=MembershipStatus.ACTIVE, auto_renewal=True)
            .order_by(MembershipAssignment.member_id, MembershipAssignment.id)
            .all()
        )
        for membership in candidates:
            end_date = safe_to_date(membership.end_date)
            if end_date is None:
                result.failures.append(
                    BatchItemError(
                        "missing or invalid end date",
                        member_id=membership.member_id,
                        membership_id=membership.id,
                    )
                )
                continue
            if end_date < run_date:
                due.setdefault(membership.member_id, []).append(membership.id)

        logger.info(
            f"Auto-renewal for gym {gym_id} on {run_date}: "
            f"{sum(len(ids) for ids in due.values())} memberships due across {len(due)} members"
        )

        for member_id, membership_ids in due.items():

            def work(db: Session, member_id=member_id, membership_ids=membership_ids):
                member = load_member(db, gym_id, member_id)
                renewed, skipped = [], 0
                for membership_id in membership_ids:
                    membership = load_membership(db, gym_id, membership_id, member_id=member_id)
                    # Re-check under the transaction; another run may have got here first
                    if membership.status != MembershipStatus.ACTIVE:
                        skipped += 1
                        continue
                    successor = self._renew(db, member, membership, run_date, manual=False)
                    if successor is None:
                        skipped += 1
                    else:
                        renewed.append(successor)
                return renewed, skipped

            try:
                renewed, skipped = run_in_transaction(self.db, work)
            except Exception as e:
                logger.error(f"Auto-renewal failed for member {member_id}: {e}")
                for membership_id in membership_ids:
                    result.failures.append(
                        BatchItemError(
                            f"renewal failed: {e}", member_id=member_id, membership_id=membership_id
                        )
                    )
                continue
            result.renewed.extend(renewed)
            result.skipped_count += skipped

        logger.info(
            f"Auto-renewal for gym {gym_id} finished: {result.renewed_count} renewed, "
            f"{result.skipped_count} skipped, {len(result.failures)} errors"
        )
        return result

    def renew_one(
        self,
        gym_id: int,
        member_id: int,
        membership_id: int,
        today_date: date | None = None,
        actor: str | None = None,
    ) -> RenewedMembership:
        """Renew a single membership on demand.

        Raises:
            MemberNotFoundError / MembershipNotFoundError: Unknown IDs
            AutoRenewalDisabledError: Membership does not have auto-renewal enabled
            AlreadyCancelledError: Membership is cancelled
            InvalidStateError: Membership has already been renewed
        """
        run_date = today_date or today()

        def work(db: Session) -> RenewedMembership:
            member = load_member(db, gym_id, member_id)
            membership = load_membership(db, gym_id, membership_id, member_id=member_id)
            if not membership.auto_renewal:
                raise AutoRenewalDisabledError(membership_id)
            if membership.status == MembershipStatus.CANCELLED:
                raise AlreadyCancelledError(membership_id)
            if find_successor(db, membership.id) is not None:
                raise InvalidStateError(f"Membership {membership_id} has already been renewed")
            renewed = self._renew(db, member, membership, run_date, manual=True, actor=actor)
            if renewed is None:
                raise InvalidStateError(f"Membership {membership_id} has already been renewed")
            return renewed

        renewed = run_in_transaction(self.db, work)
        logger.info(
            f"Manually renewed membership {membership_id} of member {member_id} "
            f"as {renewed.membership_id} ({renewed.start_date} to {renewed.end_date})"
        )
        return renewed

    def list_upcoming_renewals(
        self, gym_id: int, days_ahead: int = 7, today_date: date | None = None
    ) -> list[MembershipAssignment]:
        """Active auto-renewing memberships the next renewal runs will pick up.

        Covers those ending within the next days_ahead days plus any already
        past their end date that no run has renewed yet. Read-only; sorted by
        end date, oldest first.
        """
        run_date = today_date or today()
        horizon = add_days(run_date, days_ahead)
        candidates = (
            self.db.query(MembershipAssignment)
            .filter_by(gym_id=gym_id, status=MembershipStatus.ACTIVE, auto_renewal=True)
            .all()
        )
        upcoming = []
        for membership in candidates:
            end_date = safe_to_date(membership.end_date)
            if end_date is not None and end_date <= horizon:
                upcoming.append((end_date, membership.id, membership))
        upcoming.sort(key=lambda item: (item[0], item[1]))
        return [membership for _, _, membership in upcoming]

    def _renew(
        self,
        db: Session,
        member: Member,
        membership: MembershipAssignment,
        run_date: date,
        manual: bool,
        actor: str | None = None,
    ) -> RenewedMembership | None:
        """Expire membership and create its successor. Returns None if a successor exists."""
        stamp = now_utc()
        membership.status = MembershipStatus.EXPIRED
        membership.expired_at = stamp
        membership.renewed_automatically = True
        if manual:
            membership.renewed_manually = True

        if find_successor(db, membership.id) is not None:
            logger.info(f"Membership {membership.id} already has a successor; expiring only")
            return None

        days = duration_days(
            membership.start_date, membership.end_date, default=settings.default_renewal_days
        )
        successor = MembershipAssignment(
            gym_id=membership.gym_id,
            member_id=membership.member_id,
            activity_id=membership.activity_id,
            activity_name=membership.activity_name,
            description=membership.description,
            start_date=run_date,
            end_date=add_days(run_date, days),
            cost=membership.cost,
            paid_amount=ZERO,
            payment_status=PaymentStatus.PENDING,
            payment_frequency=membership.payment_frequency,
            status=MembershipStatus.ACTIVE,
            max_attendances=membership.max_attendances,
            current_attendances=0,
            auto_renewal=membership.auto_renewal,
            previous_membership_id=membership.id,
            renewal_date=stamp,
            renewed_manually=manual,
        )
        db.add(successor)
        member.total_debt = (member.total_debt or ZERO) + (membership.cost or ZERO)
        try:
            db.flush()
        except IntegrityError as e:
            raise StoreConflict(f"Membership {membership.id} was renewed concurrently") from e

        AuditService.log(
            db, "membership", successor.id, "renew", actor=actor,
            changes={
                "previous_membership_id": membership.id,
                "manual": manual,
                "cost": str(membership.cost),
            },
            gym_id=membership.gym_id,
        )
        return RenewedMembership(
            member_id=membership.member_id,
            previous_membership_id=membership.id,
            membership_id=successor.id,
            activity_name=successor.activity_name,
            start_date=successor.start_date,
            end_date=successor.end_date,
            cost=successor.cost,
        )


__all__ = [
    "AutoRenewalProcessor",
    "RenewalResult",
    "RenewedMembership",
    "find_successor",
]
