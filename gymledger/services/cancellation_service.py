"""Cancellation and refund workflow for membership assignments.

Cancelling is terminal. What happens to money depends on payment state:

    pending/partial + cancel  -> outstanding balance removed from debt
    pending/partial + keep    -> nothing
    paid (either action)      -> refund entry of -cost, day expense += cost,
                                 debt -= cost (floored at zero)

The money side effects and the status flip commit in one transaction.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from gymledger.models import (
    ChargeStatus,
    DebtAction,
    LedgerTransaction,
    MembershipStatus,
    MonthlyCharge,
    PaymentStatus,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from gymledger.services.audit_service import AuditService
from gymledger.services.daily_cash_service import DailyCashService
from gymledger.services.date_utils import now_utc, safe_to_date, today
from gymledger.services.errors import (
    AlreadyCancelledError,
    InvalidDateError,
    ValidationError,
)
from gymledger.services.ledger_service import LedgerService
from gymledger.services.locale_service import format_amount
from gymledger.services.membership_service import load_member, load_membership
from gymledger.services.store import run_in_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class CancellationResult:
    success: bool
    membership_id: int
    debt_action: DebtAction
    debt_reduction: Decimal = ZERO
    refund_amount: Decimal = ZERO
    refund_transaction_id: int | None = None


def parse_debt_action(value) -> DebtAction:
    if isinstance(value, DebtAction):
        return value
    try:
        return DebtAction(str(value).lower())
    except ValueError as e:
        raise ValidationError(f"Unknown debt action '{value}'; expected 'keep' or 'cancel'") from e


class CancellationService:
    """Cancel memberships and issue refunds."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.daily_cash = DailyCashService(db)

    def cancel_membership(
        self,
        gym_id: int,
        membership_id: int,
        debt_action,
        reason: str,
        actor: str = "system",
        refund_method: str = "cash",
        on_date=None,
    ) -> CancellationResult:
        """Cancel a membership, reversing debt or refunding as its state requires.

        Args:
            gym_id: Gym the membership belongs to
            membership_id: Membership to cancel
            debt_action: "keep" or "cancel" (only meaningful for unpaid memberships)
            reason: Free-text cancellation reason
            actor: Operator performing the cancellation
            refund_method: Payment method recorded on a refund entry
            on_date: Date refunds are booked on (default: today)

        Returns:
            CancellationResult describing the debt and cash effects applied

        Raises:
            ValidationError: Unknown debt action
            InvalidDateError: on_date cannot be interpreted
            MembershipNotFoundError: Membership does not exist in the gym
            AlreadyCancelledError: Membership is already cancelled
        """
        action = parse_debt_action(debt_action)
        booking_date = safe_to_date(on_date) if on_date is not None else today()
        if booking_date is None:
            raise InvalidDateError(f"Invalid cancellation date: {on_date!r}")

        def work(db: Session) -> CancellationResult:
            membership = load_membership(db, gym_id, membership_id)
            if membership.status == MembershipStatus.CANCELLED:
                raise AlreadyCancelledError(membership_id)
            member = load_member(db, gym_id, membership.member_id)

            result = CancellationResult(
                success=True, membership_id=membership.id, debt_action=action
            )
            current_debt = member.total_debt or ZERO

            if membership.payment_status == PaymentStatus.PAID:
                cost = membership.cost or ZERO
                if cost > 0:
                    refund = self.ledger.record_transaction(
                        gym_id=gym_id,
                        type=TransactionType.REFUND,
                        category=TransactionCategory.REFUND,
                        amount=-cost,
                        transaction_date=booking_date,
                        description=(
                            f"Refund for cancelled membership: {membership.activity_name} "
                            f"- {format_amount(cost)}"
                        ),
                        member_id=member.id,
                        membership_id=membership.id,
                        payment_method=refund_method,
                        notes=reason,
                        recorded_by=actor,
                    )
                    self.daily_cash.add_expense(gym_id, booking_date, cost)
                    self._mark_original_refunded(db, membership.payment_transaction_id, membership.id)
                    result.refund_amount = cost
                    result.refund_transaction_id = refund.id
                # Paid memberships normally carry no debt; floored at zero
                new_debt = max(ZERO, current_debt - cost)
                result.debt_reduction = current_debt - new_debt
                member.total_debt = new_debt
            elif action == DebtAction.CANCEL:
                outstanding = membership.outstanding
                new_debt = max(ZERO, current_debt - outstanding)
                result.debt_reduction = current_debt - new_debt
                member.total_debt = new_debt

            membership.status = MembershipStatus.CANCELLED
            membership.cancelled_at = now_utc()
            membership.cancelled_by = actor
            membership.cancellation_reason = reason
            membership.cancellation_debt_action = action

            for charge in (
                db.query(MonthlyCharge)
                .filter_by(membership_id=membership.id, status=ChargeStatus.PENDING)
                .all()
            ):
                charge.status = ChargeStatus.CANCELLED

            AuditService.log(
                db, "membership", membership.id, "cancel", actor=actor,
                changes={
                    "debt_action": action.value,
                    "reason": reason,
                    "debt_reduction": str(result.debt_reduction),
                    "refund": str(result.refund_amount),
                },
                gym_id=gym_id,
            )
            return result

        result = run_in_transaction(self.db, work)
        logger.info(
            f"Cancelled membership {membership_id} (debt_action={action.value}): "
            f"debt -{result.debt_reduction}, refund {result.refund_amount}"
        )
        return result

    def _mark_original_refunded(
        self, db: Session, transaction_id: int | None, membership_id: int
    ) -> None:
        """Flag the settling income entry refunded when it paid only this membership."""
        if transaction_id is None:
            return
        original = db.get(LedgerTransaction, transaction_id)
        if original is None or original.status != TransactionStatus.COMPLETED:
            return
        if original.type != TransactionType.INCOME:
            return
        if (original.membership_ids or [membership_id]) != [membership_id]:
            return
        original.status = TransactionStatus.REFUNDED


__all__ = ["CancellationService", "CancellationResult", "parse_debt_action"]
