"""Daily job runner for the batch scans.

Each job run is keyed by (gym, job name, civil date) in scheduler_runs. A
trigger that cannot insert its marker row finds another run already done
or in progress for that day and skips; a failed run may be retried on the
same day, and force=True re-runs regardless.

Auto-renewal runs before the expiration scan so that auto-renewing
memberships are renewed rather than only expired.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gymledger.models import RunStatus, SchedulerRun
from gymledger.services.date_utils import now_utc, today
from gymledger.services.errors import ValidationError
from gymledger.services.expiration_service import ExpirationScanner
from gymledger.services.renewal_service import AutoRenewalProcessor

logger = logging.getLogger(__name__)

AUTO_RENEWAL_JOB = "auto_renewal"
EXPIRATION_JOB = "expiration"
JOB_ORDER = (AUTO_RENEWAL_JOB, EXPIRATION_JOB)

MAX_STORED_ERRORS = 100


@dataclass
class JobOutcome:
    job_name: str
    status: str
    processed_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"


@dataclass
class DailyJobsResult:
    gym_id: int
    run_date: date
    outcomes: list[JobOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(o.status != RunStatus.FAILED.value and not o.errors for o in self.outcomes)

    def outcome(self, job_name: str) -> JobOutcome | None:
        return next((o for o in self.outcomes if o.job_name == job_name), None)


class SchedulerService:
    """Run the daily batch jobs at most once per gym per day."""

    def __init__(self, db: Session):
        self.db = db

    def run_daily_jobs(
        self,
        gym_id: int,
        today_date: date | None = None,
        force: bool = False,
        jobs: tuple[str, ...] | list[str] | None = None,
    ) -> DailyJobsResult:
        """Run auto-renewal then expiration for a gym.

        Args:
            gym_id: Gym to process
            today_date: Civil run date (default: today in the gym timezone)
            force: Run even if a marker for the day already exists
            jobs: Subset of job names to run (default: all, in dependency order)

        Raises:
            ValidationError: Unknown job name
        """
        run_date = today_date or today()
        selected = list(jobs) if jobs else list(JOB_ORDER)
        unknown = [job for job in selected if job not in JOB_ORDER]
        if unknown:
            raise ValidationError(f"Unknown job(s): {', '.join(unknown)}")

        result = DailyJobsResult(gym_id=gym_id, run_date=run_date)
        renewal_failed = False
        for job_name in JOB_ORDER:
            if job_name not in selected:
                continue
            if job_name == EXPIRATION_JOB and renewal_failed:
                logger.error(
                    f"Skipping expiration scan for gym {gym_id}: auto-renewal failed on {run_date}"
                )
                result.outcomes.append(
                    JobOutcome(job_name, RunStatus.FAILED.value, errors=["auto-renewal failed"])
                )
                continue

            outcome = self._run_job(gym_id, job_name, run_date, force)
            result.outcomes.append(outcome)
            if job_name == AUTO_RENEWAL_JOB and outcome.status == RunStatus.FAILED.value:
                renewal_failed = True
        return result

    def get_run_history(
        self, gym_id: int, job_name: str | None = None, limit: int = 30
    ) -> list[SchedulerRun]:
        query = self.db.query(SchedulerRun).filter_by(gym_id=gym_id)
        if job_name is not None:
            query = query.filter_by(job_name=job_name)
        return (
            query.order_by(SchedulerRun.run_date.desc(), SchedulerRun.id.desc())
            .limit(limit)
            .all()
        )

    def _run_job(self, gym_id: int, job_name: str, run_date: date, force: bool) -> JobOutcome:
        marker = self._acquire_marker(gym_id, job_name, run_date, force)
        if marker is None:
            logger.info(f"Job {job_name} already ran for gym {gym_id} on {run_date}; skipping")
            return JobOutcome(job_name, "skipped")
        marker_id = marker.id

        try:
            if job_name == AUTO_RENEWAL_JOB:
                job_result = AutoRenewalProcessor(self.db).run(gym_id, run_date)
                processed = job_result.renewed_count
            else:
                job_result = ExpirationScanner(self.db).run(gym_id, run_date)
                processed = job_result.processed_count
            errors = job_result.errors
            status = RunStatus.COMPLETED
        except Exception as e:
            self.db.rollback()
            logger.exception(f"Job {job_name} crashed for gym {gym_id} on {run_date}")
            processed, errors, status = 0, [f"job failed: {e}"], RunStatus.FAILED

        marker = self.db.get(SchedulerRun, marker_id)
        marker.status = status
        marker.finished_at = now_utc()
        marker.processed_count = processed
        marker.error_count = len(errors)
        marker.errors = errors[:MAX_STORED_ERRORS] or None
        self.db.commit()

        logger.info(
            f"Job {job_name} for gym {gym_id} on {run_date}: {status.value}, "
            f"{processed} processed, {len(errors)} errors"
        )
        return JobOutcome(job_name, status.value, processed_count=processed, errors=errors)

    def _acquire_marker(
        self, gym_id: int, job_name: str, run_date: date, force: bool
    ) -> SchedulerRun | None:
        marker = SchedulerRun(
            gym_id=gym_id,
            job_name=job_name,
            run_date=run_date,
            status=RunStatus.RUNNING,
            processed_count=0,
            error_count=0,
        )
        self.db.add(marker)
        try:
            self.db.commit()
            return marker
        except IntegrityError:
            self.db.rollback()

        existing = (
            self.db.query(SchedulerRun)
            .filter_by(gym_id=gym_id, job_name=job_name, run_date=run_date)
            .first()
        )
        if existing is None:
            return None
        if not force and existing.status != RunStatus.FAILED:
            return None

        existing.status = RunStatus.RUNNING
        existing.finished_at = None
        existing.processed_count = 0
        existing.error_count = 0
        existing.errors = None
        self.db.commit()
        logger.info(f"Re-running job {job_name} for gym {gym_id} on {run_date} (force={force})")
        return existing


__all__ = [
    "SchedulerService",
    "DailyJobsResult",
    "JobOutcome",
    "AUTO_RENEWAL_JOB",
    "EXPIRATION_JOB",
    "JOB_ORDER",
]
