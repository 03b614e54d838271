"""Payment API routes."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gymledger.api.schemas import PaymentPayload, PaymentResponse, TransactionResponse
from gymledger.services import get_db
from gymledger.services.ledger_service import LedgerService
from gymledger.services.membership_service import load_member
from gymledger.services.payment_service import PaymentRegistrar

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gyms/{gym_id}/members/{member_id}", tags=["payments"])


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def register_payment(
    gym_id: int,
    member_id: int,
    payload: PaymentPayload,
    db: Session = Depends(get_db),
) -> PaymentResponse:
    """
    Pay one or more pending memberships of a member.

    Returns:
        201: PaymentResponse with the ledger transaction ID
        404: Member or membership not found
        409: Membership cancelled or already paid
        422: Non-positive amount, empty selection or invalid date
        503: Store conflict persisted after retries
    """
    result = PaymentRegistrar(db).register_payment(
        gym_id=gym_id,
        member_id=member_id,
        membership_ids=payload.membership_ids,
        amount=payload.amount,
        payment_method=payload.payment_method,
        payment_date=payload.payment_date,
        notes=payload.notes,
        actor=payload.actor,
    )
    return PaymentResponse(
        success=result.success,
        transaction_id=result.transaction_id,
        total_debt=result.total_debt,
        membership_ids=result.membership_ids,
    )


@router.get("/payments", response_model=list[TransactionResponse])
def get_payment_history(
    gym_id: int, member_id: int, db: Session = Depends(get_db)
) -> list[TransactionResponse]:
    load_member(db, gym_id, member_id)
    history = LedgerService(db).get_member_payment_history(gym_id, member_id)
    return [TransactionResponse.model_validate(tx) for tx in history]
