"""Membership API routes: assignment, pending list, cancellation, renewal."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gymledger.api.schemas import (
    AssignMembershipPayload,
    CancelPayload,
    CancelResponse,
    DebtReconciliationResponse,
    MembershipResponse,
    RenewedMembershipResponse,
    RenewPayload,
)
from gymledger.services import get_db
from gymledger.services.cancellation_service import CancellationService
from gymledger.services.membership_service import MembershipService
from gymledger.services.renewal_service import AutoRenewalProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gyms/{gym_id}", tags=["memberships"])


@router.post(
    "/members/{member_id}/memberships",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
def assign_membership(
    gym_id: int,
    member_id: int,
    payload: AssignMembershipPayload,
    db: Session = Depends(get_db),
) -> MembershipResponse:
    membership = MembershipService(db).assign_membership(
        gym_id=gym_id,
        member_id=member_id,
        activity_name=payload.activity_name,
        cost=payload.cost,
        start_date=payload.start_date,
        end_date=payload.end_date,
        activity_id=payload.activity_id,
        description=payload.description,
        max_attendances=payload.max_attendances,
        auto_renewal=payload.auto_renewal,
        payment_frequency=payload.payment_frequency,
        actor=payload.actor,
    )
    return MembershipResponse.model_validate(membership)


@router.get("/members/{member_id}/memberships", response_model=list[MembershipResponse])
def list_member_memberships(
    gym_id: int, member_id: int, db: Session = Depends(get_db)
) -> list[MembershipResponse]:
    memberships = MembershipService(db).list_member_memberships(gym_id, member_id)
    return [MembershipResponse.model_validate(m) for m in memberships]


@router.get("/members/{member_id}/memberships/pending", response_model=list[MembershipResponse])
def list_pending_memberships(
    gym_id: int, member_id: int, db: Session = Depends(get_db)
) -> list[MembershipResponse]:
    """
    Memberships of a member that can still be paid.

    Returns:
        200: Pending/partial, non-cancelled memberships
        404: Member not found
    """
    memberships = MembershipService(db).list_pending_memberships(gym_id, member_id)
    return [MembershipResponse.model_validate(m) for m in memberships]


@router.get(
    "/members/{member_id}/debt/reconcile", response_model=DebtReconciliationResponse
)
def reconcile_member_debt(
    gym_id: int, member_id: int, repair: bool = False, db: Session = Depends(get_db)
) -> DebtReconciliationResponse:
    result = MembershipService(db).reconcile_member_debt(gym_id, member_id, repair=repair)
    return DebtReconciliationResponse.model_validate(result)


@router.get("/memberships/{membership_id}", response_model=MembershipResponse)
def get_membership(
    gym_id: int, membership_id: int, db: Session = Depends(get_db)
) -> MembershipResponse:
    return MembershipResponse.model_validate(
        MembershipService(db).get_membership(gym_id, membership_id)
    )


@router.get("/memberships/{membership_id}/chain", response_model=list[MembershipResponse])
def get_renewal_chain(
    gym_id: int, membership_id: int, db: Session = Depends(get_db)
) -> list[MembershipResponse]:
    chain = MembershipService(db).get_renewal_chain(gym_id, membership_id)
    return [MembershipResponse.model_validate(m) for m in chain]


@router.post("/memberships/{membership_id}/cancel", response_model=CancelResponse)
def cancel_membership(
    gym_id: int,
    membership_id: int,
    payload: CancelPayload,
    db: Session = Depends(get_db),
) -> CancelResponse:
    """
    Cancel a membership (terminal).

    Returns:
        200: CancelResponse with the debt/refund effects applied
        404: Membership not found
        409: Membership already cancelled
        422: Unknown debt action
    """
    result = CancellationService(db).cancel_membership(
        gym_id=gym_id,
        membership_id=membership_id,
        debt_action=payload.debt_action,
        reason=payload.reason,
        actor=payload.actor,
        refund_method=payload.refund_method,
    )
    return CancelResponse(
        success=result.success,
        membership_id=result.membership_id,
        debt_action=result.debt_action,
        debt_reduction=result.debt_reduction,
        refund_amount=result.refund_amount,
        refund_transaction_id=result.refund_transaction_id,
    )


@router.post(
    "/members/{member_id}/memberships/{membership_id}/renew",
    response_model=RenewedMembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
def renew_one(
    gym_id: int,
    member_id: int,
    membership_id: int,
    payload: RenewPayload | None = None,
    db: Session = Depends(get_db),
) -> RenewedMembershipResponse:
    """
    Renew a single auto-renewing membership now.

    Returns:
        201: The successor membership
        404: Member or membership not found
        409: Auto-renewal disabled, cancelled, or already renewed
    """
    renewed = AutoRenewalProcessor(db).renew_one(
        gym_id, member_id, membership_id, actor=payload.actor if payload else None
    )
    return RenewedMembershipResponse.model_validate(renewed)
