"""Expiration scanner: flip overdue active memberships to expired.

A pure time-based transition with no debt or cash effect. The scan walks
every member of a gym, queues transitions into a BatchWriter and reports
per-item failures without stopping. Only status=active records are touched,
so running it twice on the same day is a no-op the second time.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func
from sqlalchemy.orm import Session

from gymledger.models import Member, MembershipAssignment, MembershipStatus
from gymledger.services.date_utils import add_days, now_utc, safe_to_date, today
from gymledger.services.errors import BatchItemError
from gymledger.services.store import BatchWriter

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    processed_count: int = 0
    skipped_count: int = 0
    failures: list[BatchItemError] = field(default_factory=list)

    @property
    def errors(self) -> list[str]:
        return [str(failure) for failure in self.failures]


@dataclass
class ExpirationStats:
    total: int = 0
    active: int = 0
    overdue: int = 0
    expiring_in_7_days: int = 0
    expiring_in_30_days: int = 0
    with_auto_renewal: int = 0


class ExpirationScanner:
    """Batch expiration of overdue memberships."""

    def __init__(self, db: Session, batch_size: int | None = None):
        self.db = db
        self.batch_size = batch_size

    def run(self, gym_id: int, today_date: date | None = None) -> ScanResult:
        """Expire every active membership whose end date is before today.

        Args:
            gym_id: Gym to scan
            today_date: Civil date to compare against (default: today in the gym timezone)

        Returns:
            ScanResult with the number of memberships expired and per-item errors
        """
        run_date = today_date or today()
        writer = BatchWriter(self.db, self.batch_size)
        result = ScanResult()
        expired_at = now_utc()

        member_ids = [
            member_id
            for (member_id,) in self.db.query(Member.id)
            .filter_by(gym_id=gym_id)
            .order_by(Member.id)
            .all()
        ]
        logger.info(f"Expiration scan for gym {gym_id} on {run_date}: {len(member_ids)} members")

        for member_id in member_ids:
            try:
                memberships = (
                    self.db.query(MembershipAssignment)
                    .filter_by(gym_id=gym_id, member_id=member_id, status=MembershipStatus.ACTIVE)
                    .order_by(MembershipAssignment.id)
                    .all()
                )
            except Exception as e:
                logger.error(f"Could not load memberships of member {member_id}: {e}")
                self.db.rollback()
                result.failures.append(BatchItemError(f"load failed: {e}", member_id=member_id))
                continue

            for membership in memberships:
                end_date = safe_to_date(membership.end_date)
                if end_date is None:
                    logger.warning(
                        f"Membership {membership.id} of member {member_id} has no valid end date"
                    )
                    result.failures.append(
                        BatchItemError(
                            "missing or invalid end date",
                            member_id=member_id,
                            membership_id=membership.id,
                        )
                    )
                    continue
                if end_date < run_date:
                    writer.update(
                        membership,
                        member_id=member_id,
                        membership_id=membership.id,
                        expect={"status": MembershipStatus.ACTIVE},
                        status=MembershipStatus.EXPIRED,
                        expired_at=expired_at,
                    )

        writer.flush()
        result.processed_count = writer.committed
        result.skipped_count = writer.skipped
        result.failures.extend(writer.failures)

        logger.info(
            f"Expiration scan for gym {gym_id} finished: {result.processed_count} expired, "
            f"{result.skipped_count} changed concurrently, {len(result.failures)} errors, "
            f"{writer.flushes} batch flushes"
        )
        return result

    def get_expiration_stats(self, gym_id: int, today_date: date | None = None) -> ExpirationStats:
        """Counts of active memberships by how soon they expire. Read-only."""
        run_date = today_date or today()
        stats = ExpirationStats()
        stats.total = (
            self.db.query(func.count(MembershipAssignment.id)).filter_by(gym_id=gym_id).scalar()
        ) or 0

        active = (
            self.db.query(MembershipAssignment)
            .filter_by(gym_id=gym_id, status=MembershipStatus.ACTIVE)
            .all()
        )
        in_7 = add_days(run_date, 7)
        in_30 = add_days(run_date, 30)
        for membership in active:
            stats.active += 1
            if membership.auto_renewal:
                stats.with_auto_renewal += 1
            end_date = safe_to_date(membership.end_date)
            if end_date is None:
                continue
            if end_date < run_date:
                stats.overdue += 1
            elif end_date <= in_7:
                stats.expiring_in_7_days += 1
                stats.expiring_in_30_days += 1
            elif end_date <= in_30:
                stats.expiring_in_30_days += 1
        return stats


__all__ = ["ExpirationScanner", "ScanResult", "ExpirationStats"]
