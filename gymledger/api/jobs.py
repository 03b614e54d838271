"""Batch job API routes: expiration scan, auto-renewal, daily job runner."""

import logging
from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gymledger.api.schemas import (
    DailyJobsPayload,
    DailyJobsResponse,
    ExpirationStatsResponse,
    JobOutcomeResponse,
    MembershipResponse,
    RenewalRunResponse,
    RenewedMembershipResponse,
    ScanResponse,
)
from gymledger.services import get_db
from gymledger.services.date_utils import safe_to_date
from gymledger.services.errors import InvalidDateError, ValidationError
from gymledger.services.expiration_service import ExpirationScanner
from gymledger.services.renewal_service import AutoRenewalProcessor
from gymledger.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gyms/{gym_id}", tags=["jobs"])


def _optional_day(value: str | None) -> date | None:
    if value is None:
        return None
    day = safe_to_date(value)
    if day is None:
        raise InvalidDateError(f"Invalid date: {value!r}")
    return day


@router.post("/expiration-scan", response_model=ScanResponse)
def run_expiration_scan(
    gym_id: int, run_date: str | None = None, db: Session = Depends(get_db)
) -> ScanResponse:
    """
    Expire overdue active memberships of the gym.

    Returns:
        200: ScanResponse (processed count and per-item errors)
    """
    result = ExpirationScanner(db).run(gym_id, _optional_day(run_date))
    return ScanResponse(processed_count=result.processed_count, errors=result.errors)


@router.get("/expiration-stats", response_model=ExpirationStatsResponse)
def get_expiration_stats(gym_id: int, db: Session = Depends(get_db)) -> ExpirationStatsResponse:
    return ExpirationStatsResponse.model_validate(ExpirationScanner(db).get_expiration_stats(gym_id))


@router.post("/auto-renewal", response_model=RenewalRunResponse)
def run_auto_renewal(
    gym_id: int, run_date: str | None = None, db: Session = Depends(get_db)
) -> RenewalRunResponse:
    """
    Renew every overdue auto-renewing membership of the gym.

    Returns:
        200: RenewalRunResponse (renewed count, successors, per-item errors)
    """
    result = AutoRenewalProcessor(db).run(gym_id, _optional_day(run_date))
    return RenewalRunResponse(
        renewed_count=result.renewed_count,
        renewed=[RenewedMembershipResponse.model_validate(r) for r in result.renewed],
        errors=result.errors,
    )


@router.get("/renewals/upcoming", response_model=list[MembershipResponse])
def list_upcoming_renewals(
    gym_id: int, days_ahead: int = 7, db: Session = Depends(get_db)
) -> list[MembershipResponse]:
    if days_ahead < 0:
        raise ValidationError("days_ahead cannot be negative")
    upcoming = AutoRenewalProcessor(db).list_upcoming_renewals(gym_id, days_ahead)
    return [MembershipResponse.model_validate(m) for m in upcoming]


@router.post("/daily-jobs", response_model=DailyJobsResponse)
def run_daily_jobs(
    gym_id: int, payload: DailyJobsPayload | None = None, db: Session = Depends(get_db)
) -> DailyJobsResponse:
    payload = payload or DailyJobsPayload()
    result = SchedulerService(db).run_daily_jobs(
        gym_id,
        today_date=_optional_day(payload.run_date),
        force=payload.force,
        jobs=payload.jobs,
    )
    return DailyJobsResponse(
        gym_id=result.gym_id,
        run_date=result.run_date,
        success=result.success,
        outcomes=[JobOutcomeResponse.model_validate(o) for o in result.outcomes],
    )
