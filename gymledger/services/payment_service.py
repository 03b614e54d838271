"""Payment registrar: settle a member's pending memberships in one atomic step.

A payment marks the selected memberships paid, lowers the member's cached
debt (floored at zero), appends one income/membership ledger entry dated to
the payment date and bumps that day's cash aggregate. All of it commits
together or not at all.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from gymledger.models import (
    MembershipAssignment,
    MembershipStatus,
    PaymentStatus,
    TransactionCategory,
    TransactionType,
)
from gymledger.services.audit_service import AuditService
from gymledger.services.daily_cash_service import DailyCashService
from gymledger.services.date_utils import now_utc, safe_to_date
from gymledger.services.errors import InvalidDateError, InvalidStateError, ValidationError
from gymledger.services.ledger_service import LedgerService
from gymledger.services.locale_service import format_amount, format_period
from gymledger.services.membership_service import (
    OPEN_PAYMENT_STATUSES,
    load_member,
    load_membership,
)
from gymledger.services.monthly_charge_service import MonthlyChargeService
from gymledger.services.store import run_in_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class PaymentResult:
    success: bool
    transaction_id: int
    total_debt: Decimal
    membership_ids: list[int]


def build_payment_description(memberships: list[MembershipAssignment]) -> str:
    """Human-readable summary of what a payment covers.

    One line for a single membership; an itemized list with a total for
    several.
    """
    if len(memberships) == 1:
        m = memberships[0]
        return (
            f"Membership payment: {m.activity_name} "
            f"({format_period(m.start_date, m.end_date)}) - {format_amount(m.cost)}"
        )

    lines = [f"Membership payment ({len(memberships)} memberships):"]
    total = ZERO
    for m in memberships:
        lines.append(
            f"- {m.activity_name} ({format_period(m.start_date, m.end_date)}): "
            f"{format_amount(m.cost)}"
        )
        total += m.cost
    lines.append(f"Total: {format_amount(total)}")
    return "\n".join(lines)


class PaymentRegistrar:
    """Register membership payments."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.daily_cash = DailyCashService(db)

    def register_payment(
        self,
        gym_id: int,
        member_id: int,
        membership_ids: list[int],
        amount: Decimal,
        payment_method: str,
        payment_date,
        notes: str | None = None,
        actor: str | None = None,
    ) -> PaymentResult:
        """Pay one or more pending memberships of a member.

        The amount is allocated to the memberships in the order given; each
        one fully covered becomes paid, a partially covered one becomes
        partial.

        Args:
            gym_id: Gym the member belongs to
            member_id: Paying member
            membership_ids: Non-empty list of the member's pending/partial memberships
            amount: Total paid (> 0)
            payment_method: "cash", "transfer", "card", ...
            payment_date: Date the payment is booked on (any supported date shape)
            notes: Free text stored on the ledger entry
            actor: Operator registering the payment

        Returns:
            PaymentResult with the new ledger transaction ID

        Raises:
            ValidationError: amount <= 0 or empty / duplicated selection
            InvalidDateError: payment_date cannot be interpreted
            MemberNotFoundError: member does not exist in the gym
            MembershipNotFoundError: a membership ID is not one of the member's
            InvalidStateError: a membership is cancelled or already paid
            TransientStoreConflictError: concurrent writers kept conflicting
        """
        try:
            amount = Decimal(str(amount))
        except ArithmeticError as e:
            raise ValidationError(f"Invalid amount: {amount}") from e
        if amount <= 0:
            raise ValidationError(f"Payment amount must be greater than zero, got {amount}")
        if not membership_ids:
            raise ValidationError("At least one membership must be selected")
        if len(set(membership_ids)) != len(membership_ids):
            raise ValidationError("Membership selection contains duplicates")
        booking_date = safe_to_date(payment_date)
        if booking_date is None:
            raise InvalidDateError(f"Invalid payment date: {payment_date!r}")

        def work(db: Session) -> PaymentResult:
            # Reads first
            member = load_member(db, gym_id, member_id)
            memberships = [
                load_membership(db, gym_id, membership_id, member_id=member_id)
                for membership_id in membership_ids
            ]
            for membership in memberships:
                if membership.status == MembershipStatus.CANCELLED:
                    raise InvalidStateError(
                        f"Membership {membership.id} is cancelled and cannot be paid"
                    )
                if membership.payment_status not in OPEN_PAYMENT_STATUSES:
                    raise InvalidStateError(f"Membership {membership.id} is already paid")

            # Writes
            transaction = self.ledger.record_transaction(
                gym_id=gym_id,
                type=TransactionType.INCOME,
                category=TransactionCategory.MEMBERSHIP,
                amount=amount,
                transaction_date=booking_date,
                description=build_payment_description(memberships),
                member_id=member.id,
                membership_id=memberships[0].id if len(memberships) == 1 else None,
                membership_ids=[m.id for m in memberships],
                payment_method=payment_method,
                notes=notes,
                recorded_by=actor,
            )

            paid_at = now_utc()
            remaining = amount
            for membership in memberships:
                applied = min(remaining, membership.outstanding)
                if applied <= 0:
                    continue
                remaining -= applied
                membership.paid_amount = (membership.paid_amount or ZERO) + applied
                if membership.outstanding == 0:
                    membership.payment_status = PaymentStatus.PAID
                elif membership.paid_amount > 0:
                    membership.payment_status = PaymentStatus.PARTIAL
                membership.paid_at = paid_at
                membership.payment_transaction_id = transaction.id

            member.total_debt = max(ZERO, (member.total_debt or ZERO) - amount)
            self.daily_cash.add_income(gym_id, booking_date, amount, membership=True)

            AuditService.log(
                db, "transaction", transaction.id, "pay", actor=actor,
                changes={
                    "member_id": member.id,
                    "membership_ids": [m.id for m in memberships],
                    "amount": str(amount),
                },
                gym_id=gym_id,
            )
            return PaymentResult(
                success=True,
                transaction_id=transaction.id,
                total_debt=member.total_debt,
                membership_ids=[m.id for m in memberships],
            )

        result = run_in_transaction(self.db, work)
        logger.info(
            f"Registered payment {result.transaction_id} of {amount} for member {member_id} "
            f"covering memberships {result.membership_ids} on {booking_date}"
        )

        self._reconcile_monthly_charges(gym_id, result)
        return result

    def _reconcile_monthly_charges(self, gym_id: int, result: PaymentResult) -> None:
        """Best-effort: bring recurring-charge records in line with the payment.

        The payment is already committed; a failure here is logged and left
        for the next reconcile.
        """
        try:
            MonthlyChargeService(self.db).reconcile_paid_memberships(
                gym_id, result.membership_ids, transaction_id=result.transaction_id
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(
                f"Could not reconcile monthly charges for transaction {result.transaction_id}: {e}"
            )


__all__ = ["PaymentRegistrar", "PaymentResult", "build_payment_description"]
