"""Membership record store: assignments, renewal chains and debt reconciliation.

Member.total_debt is a cached value. compute_expected_debt() recomputes it
from membership history so callers (tests, the reconcile endpoint) can
assert cached == recomputed and optionally repair drift.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from gymledger.models import (
    DebtAction,
    Member,
    MembershipAssignment,
    MembershipStatus,
    PaymentFrequency,
    PaymentStatus,
)
from gymledger.services import settings
from gymledger.services.audit_service import AuditService
from gymledger.services.date_utils import add_days, safe_to_date, today
from gymledger.services.errors import (
    InvalidDateError,
    MemberNotFoundError,
    MembershipNotFoundError,
    ValidationError,
)
from gymledger.services.store import run_in_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PARTIAL)


@dataclass
class DebtReconciliation:
    member_id: int
    cached: Decimal
    expected: Decimal
    repaired: bool = False

    @property
    def is_consistent(self) -> bool:
        return self.cached == self.expected

    @property
    def drift(self) -> Decimal:
        return self.cached - self.expected


def load_member(db: Session, gym_id: int, member_id: int) -> Member:
    """Load a member of a gym or raise MemberNotFoundError."""
    member = db.query(Member).filter_by(id=member_id, gym_id=gym_id).first()
    if member is None:
        raise MemberNotFoundError(member_id)
    return member


def load_membership(
    db: Session, gym_id: int, membership_id: int, member_id: int | None = None
) -> MembershipAssignment:
    """Load a membership of a gym (optionally of one member) or raise MembershipNotFoundError."""
    query = db.query(MembershipAssignment).filter_by(id=membership_id, gym_id=gym_id)
    if member_id is not None:
        query = query.filter_by(member_id=member_id)
    membership = query.first()
    if membership is None:
        raise MembershipNotFoundError(membership_id)
    return membership


class MembershipService:
    """Membership assignment operations."""

    def __init__(self, db: Session):
        self.db = db

    def assign_membership(
        self,
        gym_id: int,
        member_id: int,
        activity_name: str,
        cost: Decimal,
        start_date=None,
        end_date=None,
        activity_id: str | None = None,
        description: str | None = None,
        max_attendances: int = 0,
        auto_renewal: bool = False,
        payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
        paid: bool = False,
        actor: str | None = None,
    ) -> MembershipAssignment:
        """Create a membership assignment for a member.

        Unpaid assignments add their cost to the member's debt; this is the
        only place an original assignment's cost enters total_debt.

        Args:
            start_date: First day of the period (default: today)
            end_date: Last day of the period (default: start + DEFAULT_RENEWAL_DAYS)
            paid: Create already paid (no debt, no ledger entry)

        Raises:
            MemberNotFoundError: Member does not exist in the gym
            ValidationError: Negative cost or empty activity name
            InvalidDateError: Unparseable dates or end before start
        """
        cost = Decimal(str(cost))
        if cost < 0:
            raise ValidationError("Membership cost cannot be negative")
        if not activity_name or not activity_name.strip():
            raise ValidationError("Activity name is required")

        start = safe_to_date(start_date) if start_date is not None else today()
        if start is None:
            raise InvalidDateError(f"Invalid start date: {start_date!r}")
        if end_date is not None:
            end = safe_to_date(end_date)
            if end is None:
                raise InvalidDateError(f"Invalid end date: {end_date!r}")
        else:
            end = add_days(start, settings.default_renewal_days)
        if end < start:
            raise InvalidDateError("End date cannot be before start date")

        def work(db: Session) -> MembershipAssignment:
            member = load_member(db, gym_id, member_id)
            membership = MembershipAssignment(
                gym_id=gym_id,
                member_id=member.id,
                activity_id=activity_id,
                activity_name=activity_name.strip(),
                description=description,
                start_date=start,
                end_date=end,
                cost=cost,
                paid_amount=cost if paid else ZERO,
                payment_status=PaymentStatus.PAID if paid else PaymentStatus.PENDING,
                payment_frequency=payment_frequency,
                status=MembershipStatus.ACTIVE,
                max_attendances=max_attendances,
                current_attendances=0,
                auto_renewal=auto_renewal,
            )
            db.add(membership)
            if not paid:
                member.total_debt = (member.total_debt or ZERO) + cost
            db.flush()
            AuditService.log(
                db, "membership", membership.id, "assign", actor=actor,
                changes={"cost": str(cost), "paid": paid}, gym_id=gym_id,
            )
            return membership

        membership = run_in_transaction(self.db, work)
        logger.info(
            f"Assigned membership {membership.id} ({membership.activity_name}) to member "
            f"{member_id}: cost={cost}, period {start} to {end}"
        )
        return membership

    def get_membership(self, gym_id: int, membership_id: int) -> MembershipAssignment:
        return load_membership(self.db, gym_id, membership_id)

    def list_member_memberships(
        self, gym_id: int, member_id: int, status: MembershipStatus | None = None
    ) -> list[MembershipAssignment]:
        load_member(self.db, gym_id, member_id)
        query = self.db.query(MembershipAssignment).filter_by(gym_id=gym_id, member_id=member_id)
        if status is not None:
            query = query.filter_by(status=status)
        return query.order_by(MembershipAssignment.id).all()

    def list_pending_memberships(self, gym_id: int, member_id: int) -> list[MembershipAssignment]:
        """Memberships of a member that can still be paid.

        Pending or partial payment status and not cancelled (an expired but
        unpaid membership is still owed).
        """
        load_member(self.db, gym_id, member_id)
        return (
            self.db.query(MembershipAssignment)
            .filter(
                MembershipAssignment.gym_id == gym_id,
                MembershipAssignment.member_id == member_id,
                MembershipAssignment.payment_status.in_(OPEN_PAYMENT_STATUSES),
                MembershipAssignment.status != MembershipStatus.CANCELLED,
            )
            .order_by(MembershipAssignment.start_date, MembershipAssignment.id)
            .all()
        )

    def get_renewal_chain(self, gym_id: int, membership_id: int) -> list[MembershipAssignment]:
        """Full renewal history containing a membership, oldest first.

        Walks previous_membership_id backwards and successors forwards, one
        query per hop.
        """
        current = load_membership(self.db, gym_id, membership_id)

        chain = [current]
        seen = {current.id}
        node = current
        while node.previous_membership_id is not None:
            node = self.db.get(MembershipAssignment, node.previous_membership_id)
            if node is None or node.id in seen:
                break
            seen.add(node.id)
            chain.insert(0, node)

        node = current
        while True:
            successor = (
                self.db.query(MembershipAssignment)
                .filter_by(previous_membership_id=node.id)
                .first()
            )
            if successor is None or successor.id in seen:
                break
            seen.add(successor.id)
            chain.append(successor)
            node = successor
        return chain

    def compute_expected_debt(self, gym_id: int, member_id: int) -> Decimal:
        """Recompute a member's debt from membership history.

        Sum of outstanding balances of unpaid memberships, excluding those
        cancelled with their debt forgiven.
        """
        memberships = (
            self.db.query(MembershipAssignment)
            .filter(
                MembershipAssignment.gym_id == gym_id,
                MembershipAssignment.member_id == member_id,
                MembershipAssignment.payment_status.in_(OPEN_PAYMENT_STATUSES),
            )
            .all()
        )
        expected = ZERO
        for membership in memberships:
            if (
                membership.status == MembershipStatus.CANCELLED
                and membership.cancellation_debt_action == DebtAction.CANCEL
            ):
                continue
            expected += membership.outstanding
        return expected

    def reconcile_member_debt(
        self, gym_id: int, member_id: int, repair: bool = False
    ) -> DebtReconciliation:
        """Compare cached total_debt with the recomputed value.

        Args:
            repair: Overwrite the cached value when they differ
        """
        member = load_member(self.db, gym_id, member_id)
        expected = self.compute_expected_debt(gym_id, member_id)
        result = DebtReconciliation(
            member_id=member_id, cached=member.total_debt or ZERO, expected=expected
        )
        if result.is_consistent:
            return result

        logger.warning(
            f"Debt drift for member {member_id}: cached={result.cached}, expected={expected}"
        )
        if repair:

            def work(db: Session) -> None:
                fresh = load_member(db, gym_id, member_id)
                AuditService.log(
                    db, "member", member_id, "repair_debt",
                    changes={"from": str(fresh.total_debt), "to": str(expected)},
                    gym_id=gym_id,
                )
                fresh.total_debt = expected

            run_in_transaction(self.db, work)
            result.repaired = True
            logger.info(f"Repaired debt of member {member_id} to {expected}")
        return result


__all__ = [
    "MembershipService",
    "DebtReconciliation",
    "load_member",
    "load_membership",
    "OPEN_PAYMENT_STATUSES",
]
