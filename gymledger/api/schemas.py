"""Pydantic schemas for the membership ledger API."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from gymledger.models import (
    CashStatus,
    DebtAction,
    MembershipStatus,
    PaymentFrequency,
    PaymentStatus,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)


class MembershipResponse(BaseModel):
    """A membership assignment as returned by list and detail endpoints."""

    id: int
    gym_id: int
    member_id: int
    activity_id: str | None
    activity_name: str
    description: str | None
    start_date: date | None
    end_date: date | None
    cost: Decimal
    paid_amount: Decimal
    paid_at: datetime | None
    payment_status: PaymentStatus
    payment_frequency: PaymentFrequency
    status: MembershipStatus
    max_attendances: int
    current_attendances: int
    auto_renewal: bool
    previous_membership_id: int | None
    renewed_automatically: bool
    renewed_manually: bool
    expired_at: datetime | None
    cancelled_at: datetime | None
    cancelled_by: str | None
    cancellation_reason: str | None
    cancellation_debt_action: DebtAction | None

    model_config = {"from_attributes": True}


class AssignMembershipPayload(BaseModel):
    """Payload for POST /gyms/{gym_id}/members/{member_id}/memberships."""

    activity_name: str = Field(..., min_length=1)
    cost: Decimal = Field(..., ge=0)
    activity_id: str | None = None
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    max_attendances: int = Field(0, ge=0)
    auto_renewal: bool = False
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    actor: str | None = None


class PaymentPayload(BaseModel):
    """Payload for POST /gyms/{gym_id}/members/{member_id}/payments.

    Amount and selection are validated by the registrar so that the error
    body has the same shape as every other ledger error.
    """

    membership_ids: list[int]
    amount: Decimal
    payment_method: str = Field("cash", description="cash, transfer, card, ...")
    payment_date: str = Field(..., description="Booking date, YYYY-MM-DD")
    notes: str | None = None
    actor: str | None = None


class PaymentResponse(BaseModel):
    success: bool
    transaction_id: int
    total_debt: Decimal
    membership_ids: list[int]


class CancelPayload(BaseModel):
    """Payload for POST /gyms/{gym_id}/memberships/{membership_id}/cancel."""

    debt_action: str = Field(..., description="'keep' or 'cancel'")
    reason: str = ""
    actor: str = "system"
    refund_method: str = "cash"


class CancelResponse(BaseModel):
    success: bool
    membership_id: int
    debt_action: DebtAction
    debt_reduction: Decimal
    refund_amount: Decimal
    refund_transaction_id: int | None


class RenewPayload(BaseModel):
    actor: str | None = None


class RenewedMembershipResponse(BaseModel):
    member_id: int
    previous_membership_id: int
    membership_id: int
    activity_name: str
    start_date: date
    end_date: date
    cost: Decimal

    model_config = {"from_attributes": True}


class ScanResponse(BaseModel):
    processed_count: int
    errors: list[str]


class RenewalRunResponse(BaseModel):
    renewed_count: int
    renewed: list[RenewedMembershipResponse]
    errors: list[str]


class ExpirationStatsResponse(BaseModel):
    total: int
    active: int
    overdue: int
    expiring_in_7_days: int
    expiring_in_30_days: int
    with_auto_renewal: int

    model_config = {"from_attributes": True}


class DebtReconciliationResponse(BaseModel):
    member_id: int
    cached: Decimal
    expected: Decimal
    is_consistent: bool
    repaired: bool

    model_config = {"from_attributes": True}


class TransactionResponse(BaseModel):
    id: int
    type: TransactionType
    category: TransactionCategory
    amount: Decimal
    transaction_date: date
    description: str
    member_id: int | None
    membership_id: int | None
    membership_ids: list[int] | None
    payment_method: str | None
    status: TransactionStatus
    notes: str | None
    recorded_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class DailyCashResponse(BaseModel):
    id: int
    gym_id: int
    cash_date: date
    opening_amount: Decimal
    closing_amount: Decimal | None
    total_income: Decimal
    total_expense: Decimal
    membership_income: Decimal
    other_income: Decimal
    status: CashStatus
    opened_at: datetime | None
    closed_at: datetime | None
    opened_by: str | None
    closed_by: str | None
    notes: str | None

    model_config = {"from_attributes": True}


class OpenDayPayload(BaseModel):
    opening_amount: Decimal = Decimal("0.00")
    actor: str | None = None
    notes: str | None = None


class CloseDayPayload(BaseModel):
    closing_amount: Decimal | None = None
    actor: str | None = None
    notes: str | None = None


class CashMovementPayload(BaseModel):
    """Payload for manual extra income / expense movements (amount unsigned)."""

    amount: Decimal
    description: str = Field(..., min_length=1)
    category: str
    booking_date: str | None = Field(None, description="YYYY-MM-DD, default today")
    payment_method: str = "cash"
    actor: str | None = None
    notes: str | None = None


class DayReconciliationResponse(BaseModel):
    cash_date: date
    stored_income: Decimal
    stored_expense: Decimal
    stored_membership_income: Decimal
    ledger_income: Decimal
    ledger_expense: Decimal
    ledger_membership_income: Decimal
    is_consistent: bool

    model_config = {"from_attributes": True}


class JobOutcomeResponse(BaseModel):
    job_name: str
    status: str
    processed_count: int
    errors: list[str]

    model_config = {"from_attributes": True}


class DailyJobsResponse(BaseModel):
    gym_id: int
    run_date: date
    success: bool
    outcomes: list[JobOutcomeResponse]

    model_config = {"from_attributes": True}


class DailyJobsPayload(BaseModel):
    run_date: str | None = Field(None, description="YYYY-MM-DD, default today")
    force: bool = False
    jobs: list[str] | None = None
