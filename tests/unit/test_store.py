"""Unit tests for the transactional store helpers."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from gymledger.models import MembershipAssignment, MembershipStatus
from gymledger.services.errors import TransientStoreConflictError, ValidationError
from gymledger.services.store import BatchWriter, StoreConflict, run_in_transaction


class TestRunInTransaction:
    """Tests for run_in_transaction retry and rollback."""

    def test_commits_and_returns_result(self):
        db = MagicMock()
        assert run_in_transaction(db, lambda session: 42) == 42
        db.commit.assert_called_once()
        db.rollback.assert_not_called()

    def test_retries_stale_data_then_succeeds(self):
        db = MagicMock()
        work = MagicMock(side_effect=[StaleDataError("version mismatch"), "ok"])

        assert run_in_transaction(db, work, max_retries=3, retry_delay=0) == "ok"
        assert work.call_count == 2
        db.rollback.assert_called_once()
        db.commit.assert_called_once()

    def test_retries_lock_errors_and_store_conflicts(self):
        db = MagicMock()
        work = MagicMock(
            side_effect=[
                OperationalError("UPDATE", {}, Exception("database is locked")),
                StoreConflict("duplicate day"),
                "ok",
            ]
        )
        assert run_in_transaction(db, work, max_retries=3, retry_delay=0) == "ok"
        assert work.call_count == 3

    def test_exhausted_retries_raise_transient_error(self):
        db = MagicMock()
        work = MagicMock(side_effect=StaleDataError("version mismatch"))

        with pytest.raises(TransientStoreConflictError, match="after 3 attempts"):
            run_in_transaction(db, work, max_retries=3, retry_delay=0)
        assert work.call_count == 3
        assert db.rollback.call_count == 3
        db.commit.assert_not_called()

    def test_domain_errors_roll_back_without_retry(self):
        db = MagicMock()
        work = MagicMock(side_effect=ValidationError("bad amount"))

        with pytest.raises(ValidationError):
            run_in_transaction(db, work, max_retries=3, retry_delay=0)
        assert work.call_count == 1
        db.rollback.assert_called_once()

    def test_commit_conflict_is_retried(self):
        db = MagicMock()
        db.commit.side_effect = [StaleDataError("version mismatch"), None]

        assert run_in_transaction(db, lambda session: "done", max_retries=2, retry_delay=0) == "done"
        assert db.commit.call_count == 2


class TestBatchWriter:
    """Tests for bounded batch flushing."""

    def _memberships(self, db, member, count):
        memberships = [
            MembershipAssignment(
                gym_id=member.gym_id,
                member_id=member.id,
                activity_name=f"Activity {i}",
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 31),
                cost=Decimal("100"),
            )
            for i in range(count)
        ]
        db.add_all(memberships)
        db.commit()
        return memberships

    def test_flushes_at_the_ceiling_with_fresh_batches(self, db_session, member):
        memberships = self._memberships(db_session, member, 5)
        writer = BatchWriter(db_session, max_operations=2)

        for m in memberships:
            writer.update(m, member_id=member.id, membership_id=m.id, status=MembershipStatus.EXPIRED)

        # Two full batches flushed automatically; the fifth is still pending
        assert writer.flushes == 2
        assert writer.committed == 4
        assert writer.pending == 1

        assert writer.flush() == 1
        assert writer.pending == 0
        assert writer.committed == 5
        assert writer.flush() == 0

        statuses = {m.status for m in db_session.query(MembershipAssignment).all()}
        assert statuses == {MembershipStatus.EXPIRED}

    def test_failed_flush_reports_every_item_and_continues(self, db_session, member):
        memberships = self._memberships(db_session, member, 3)
        writer = BatchWriter(db_session, max_operations=10)
        for m in memberships:
            writer.update(m, member_id=member.id, membership_id=m.id, status=MembershipStatus.EXPIRED)

        original_commit = db_session.commit
        db_session.commit = MagicMock(
            side_effect=OperationalError("UPDATE", {}, Exception("disk I/O error"))
        )
        assert writer.flush() == 0
        db_session.commit = original_commit

        assert writer.committed == 0
        assert len(writer.failures) == 3
        assert {f.membership_id for f in writer.failures} == {m.id for m in memberships}
        assert all("batch write failed" in f.message for f in writer.failures)

        # The next batch starts empty and can still commit
        writer.update(memberships[0], member_id=member.id, membership_id=memberships[0].id,
                      status=MembershipStatus.EXPIRED)
        assert writer.flush() == 1

    def test_guarded_update_skipped_when_row_changed_after_earlier_flush(self, engine, db_session,
                                                                         member):
        first, second = self._memberships(db_session, member, 2)
        second_id = second.id
        writer = BatchWriter(db_session, max_operations=1)
        guard = {"status": MembershipStatus.ACTIVE}

        # Loaded before the first flush commits and expires it
        queued = db_session.get(MembershipAssignment, second_id)
        writer.update(first, membership_id=first.id, expect=guard, status=MembershipStatus.EXPIRED)
        assert writer.committed == 1

        other = sessionmaker(bind=engine)()
        try:
            other.get(MembershipAssignment, second_id).status = MembershipStatus.CANCELLED
            other.commit()
        finally:
            other.close()

        writer.update(queued, membership_id=second_id, expect=guard, status=MembershipStatus.EXPIRED)

        assert writer.committed == 1
        assert writer.skipped == 1
        assert writer.failures == []
        db_session.expire_all()
        assert db_session.get(MembershipAssignment, second_id).status == MembershipStatus.CANCELLED

    def test_unguarded_update_applies_without_recheck(self, db_session, member):
        (membership,) = self._memberships(db_session, member, 1)
        writer = BatchWriter(db_session, max_operations=10)

        writer.update(membership, status=MembershipStatus.EXPIRED)

        assert writer.flush() == 1
        assert writer.skipped == 0
