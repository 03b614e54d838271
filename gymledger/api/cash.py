"""Daily cash API routes: day aggregates, register open/close, manual movements."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gymledger.api.schemas import (
    CashMovementPayload,
    CloseDayPayload,
    DailyCashResponse,
    DayReconciliationResponse,
    OpenDayPayload,
    TransactionResponse,
)
from gymledger.services import get_db
from gymledger.services.daily_cash_service import DailyCashService
from gymledger.services.date_utils import safe_to_date
from gymledger.services.errors import InvalidDateError, NotFoundError
from gymledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gyms/{gym_id}/cash", tags=["cash"])


def _parse_day(value: str):
    day = safe_to_date(value)
    if day is None:
        raise InvalidDateError(f"Invalid date: {value!r}")
    return day


@router.get("", response_model=list[DailyCashResponse])
def list_days(
    gym_id: int, start: str, end: str, db: Session = Depends(get_db)
) -> list[DailyCashResponse]:
    days = DailyCashService(db).list_range(gym_id, _parse_day(start), _parse_day(end))
    return [DailyCashResponse.model_validate(day) for day in days]


@router.get("/{day}", response_model=DailyCashResponse)
def get_day(gym_id: int, day: str, db: Session = Depends(get_db)) -> DailyCashResponse:
    cash = DailyCashService(db).get_day(gym_id, _parse_day(day))
    if cash is None:
        raise NotFoundError(f"No daily cash for {day}")
    return DailyCashResponse.model_validate(cash)


@router.get("/{day}/transactions", response_model=list[TransactionResponse])
def list_day_transactions(
    gym_id: int, day: str, db: Session = Depends(get_db)
) -> list[TransactionResponse]:
    entries = LedgerService(db).list_day_transactions(gym_id, _parse_day(day))
    return [TransactionResponse.model_validate(tx) for tx in entries]


@router.get("/{day}/reconcile", response_model=DayReconciliationResponse)
def reconcile_day(
    gym_id: int, day: str, db: Session = Depends(get_db)
) -> DayReconciliationResponse:
    return DayReconciliationResponse.model_validate(
        LedgerService(db).reconcile_day(gym_id, _parse_day(day))
    )


@router.post("/{day}/open", response_model=DailyCashResponse)
def open_day(
    gym_id: int, day: str, payload: OpenDayPayload, db: Session = Depends(get_db)
) -> DailyCashResponse:
    cash = DailyCashService(db).open_day(
        gym_id, _parse_day(day), payload.opening_amount, actor=payload.actor, notes=payload.notes
    )
    return DailyCashResponse.model_validate(cash)


@router.post("/{day}/close", response_model=DailyCashResponse)
def close_day(
    gym_id: int, day: str, payload: CloseDayPayload, db: Session = Depends(get_db)
) -> DailyCashResponse:
    cash = DailyCashService(db).close_day(
        gym_id, _parse_day(day), payload.closing_amount, actor=payload.actor, notes=payload.notes
    )
    return DailyCashResponse.model_validate(cash)


@router.post(
    "/movements/income", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED
)
def register_extra_income(
    gym_id: int, payload: CashMovementPayload, db: Session = Depends(get_db)
) -> TransactionResponse:
    transaction = DailyCashService(db).register_extra_income(
        gym_id,
        amount=payload.amount,
        description=payload.description,
        category=payload.category,
        day=payload.booking_date,
        payment_method=payload.payment_method,
        actor=payload.actor,
        notes=payload.notes,
    )
    return TransactionResponse.model_validate(transaction)


@router.post(
    "/movements/expense", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED
)
def register_expense(
    gym_id: int, payload: CashMovementPayload, db: Session = Depends(get_db)
) -> TransactionResponse:
    transaction = DailyCashService(db).register_expense(
        gym_id,
        amount=payload.amount,
        description=payload.description,
        category=payload.category,
        day=payload.booking_date,
        payment_method=payload.payment_method,
        actor=payload.actor,
        notes=payload.notes,
    )
    return TransactionResponse.model_validate(transaction)
