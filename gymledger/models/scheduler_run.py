"""Scheduler run ORM model - date-keyed marker for daily batch jobs."""

from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Date, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from gymledger.models import Base, BaseModel


class RunStatus(str, Enum):
    """Progress of a scheduled job run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SchedulerRun(Base, BaseModel):
    """One execution of a daily job for a gym.

    The (gym_id, job_name, run_date) unique key is the idempotency marker:
    a second trigger on the same civil date cannot insert its own row and
    is skipped.
    """

    __tablename__ = "scheduler_runs"

    gym_id: Mapped[int] = mapped_column(ForeignKey("gyms.id"), nullable=False, index=True)
    job_name: Mapped[str] = mapped_column(String(50), nullable=False)
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[RunStatus] = mapped_column(
        SQLEnum(RunStatus), nullable=False, default=RunStatus.RUNNING
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("gym_id", "job_name", "run_date", name="uq_scheduler_run_day"),
    )

    def __repr__(self) -> str:
        return (
            f"<SchedulerRun(gym_id={self.gym_id}, job={self.job_name}, date={self.run_date}, "
            f"status={self.status}, processed={self.processed_count}, errors={self.error_count})>"
        )


__all__ = ["SchedulerRun", "RunStatus"]
