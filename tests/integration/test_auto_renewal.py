"""Integration tests for the auto-renewal processor."""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from gymledger.models import (
    Member,
    MembershipAssignment,
    MembershipStatus,
    PaymentFrequency,
    PaymentStatus,
)
from gymledger.services.errors import (
    AutoRenewalDisabledError,
    InvalidStateError,
    MembershipNotFoundError,
)
from gymledger.services.membership_service import MembershipService
from gymledger.services.renewal_service import AutoRenewalProcessor

TODAY = date(2024, 3, 10)


def _successor_of(db, membership_id):
    return db.query(MembershipAssignment).filter_by(previous_membership_id=membership_id).one()


class TestAutoRenewalRun:
    def test_overdue_auto_renewal_membership_is_renewed(self, db_session, gym, member,
                                                        membership_factory):
        old = membership_factory(
            member,
            cost="800",
            start_date=date(2024, 2, 1),
            end_date=date(2024, 3, 2),
            payment_status=PaymentStatus.PAID,
            auto_renewal=True,
            current_attendances=9,
            max_attendances=12,
            payment_frequency=PaymentFrequency.MONTHLY,
        )
        assert db_session.get(Member, member.id).total_debt == Decimal("0")

        result = AutoRenewalProcessor(db_session).run(gym.id, TODAY)

        assert result.renewed_count == 1
        assert result.errors == []
        db_session.expire_all()

        previous = db_session.get(MembershipAssignment, old.id)
        assert previous.status == MembershipStatus.EXPIRED
        assert previous.renewed_automatically is True
        assert previous.expired_at is not None

        new = _successor_of(db_session, old.id)
        assert new.id == result.renewed[0].membership_id
        assert new.status == MembershipStatus.ACTIVE
        assert new.payment_status == PaymentStatus.PENDING
        assert new.start_date == TODAY
        assert new.end_date == TODAY + timedelta(days=30)
        assert new.previous_membership_id == old.id
        assert new.cost == Decimal("800")
        assert new.auto_renewal is True
        assert new.current_attendances == 0
        assert new.max_attendances == 12
        assert new.activity_name == previous.activity_name

        assert db_session.get(Member, member.id).total_debt == Decimal("800")
        assert MembershipService(db_session).reconcile_member_debt(gym.id, member.id).is_consistent

    def test_same_duration_is_kept(self, db_session, gym, member, membership_factory):
        old = membership_factory(
            member, start_date=date(2024, 1, 1), end_date=date(2024, 1, 15), auto_renewal=True
        )

        AutoRenewalProcessor(db_session).run(gym.id, TODAY)

        assert _successor_of(db_session, old.id).end_date == TODAY + timedelta(days=14)

    def test_unknown_duration_defaults_to_thirty_days(self, db_session, gym, member,
                                                      membership_factory):
        old = membership_factory(
            member, start_date=None, end_date=date(2024, 3, 1), auto_renewal=True
        )

        AutoRenewalProcessor(db_session).run(gym.id, TODAY)

        assert _successor_of(db_session, old.id).end_date == TODAY + timedelta(days=30)

    def test_ineligible_memberships_are_ignored(self, db_session, gym, member,
                                                membership_factory):
        membership_factory(member, end_date=date(2024, 3, 1), auto_renewal=False)
        membership_factory(member, end_date=date(2024, 3, 20), auto_renewal=True)
        membership_factory(member, end_date=TODAY, auto_renewal=True)
        membership_factory(
            member, end_date=date(2024, 3, 1), auto_renewal=True, status=MembershipStatus.CANCELLED
        )

        result = AutoRenewalProcessor(db_session).run(gym.id, TODAY)

        assert result.renewed_count == 0
        assert db_session.query(MembershipAssignment).count() == 4

    def test_rerun_does_not_renew_twice(self, db_session, gym, member, membership_factory):
        old = membership_factory(member, cost="800", end_date=date(2024, 3, 1), auto_renewal=True)
        processor = AutoRenewalProcessor(db_session)

        first = processor.run(gym.id, TODAY)
        second = processor.run(gym.id, TODAY)

        assert first.renewed_count == 1
        assert second.renewed_count == 0
        assert db_session.query(MembershipAssignment).filter_by(previous_membership_id=old.id).count() == 1

    def test_predecessor_with_existing_successor_is_only_expired(self, db_session, gym, member,
                                                                 membership_factory):
        """Re-entry after a partial earlier run: the successor exists, the predecessor is still active."""
        old = membership_factory(member, cost="800", end_date=date(2024, 3, 1), auto_renewal=True)
        membership_factory(
            member, cost="800", start_date=TODAY, end_date=TODAY + timedelta(days=30),
            auto_renewal=True, previous_membership_id=old.id,
        )
        debt_before = db_session.get(Member, member.id).total_debt

        result = AutoRenewalProcessor(db_session).run(gym.id, TODAY)

        assert result.renewed_count == 0
        assert result.skipped_count == 1
        db_session.expire_all()
        assert db_session.get(MembershipAssignment, old.id).status == MembershipStatus.EXPIRED
        assert db_session.get(Member, member.id).total_debt == debt_before

    def test_member_failure_is_isolated(self, db_session, gym, member_factory,
                                        membership_factory):
        ana = member_factory(first_name="Ana")
        luis = member_factory(first_name="Luis")
        broken = membership_factory(ana, end_date=date(2024, 3, 1), auto_renewal=True)
        fine = membership_factory(luis, end_date=date(2024, 3, 1), auto_renewal=True)
        ana_id, broken_id = ana.id, broken.id

        original_renew = AutoRenewalProcessor._renew

        def failing_renew(self, db, member, membership, run_date, manual, actor=None):
            if membership.id == broken_id:
                raise RuntimeError("write rejected")
            return original_renew(self, db, member, membership, run_date, manual, actor)

        with patch.object(AutoRenewalProcessor, "_renew", failing_renew):
            result = AutoRenewalProcessor(db_session).run(gym.id, TODAY)

        assert result.renewed_count == 1
        assert result.renewed[0].previous_membership_id == fine.id
        assert len(result.failures) == 1
        assert result.failures[0].member_id == ana_id
        assert "write rejected" in result.errors[0]

        db_session.expire_all()
        untouched = db_session.get(MembershipAssignment, broken_id)
        assert untouched.status == MembershipStatus.ACTIVE
        assert untouched.renewed_automatically is False

    def test_missing_end_date_is_reported(self, db_session, gym, member, membership_factory):
        broken = membership_factory(member, end_date=None, auto_renewal=True)

        result = AutoRenewalProcessor(db_session).run(gym.id, TODAY)

        assert result.renewed_count == 0
        assert result.failures[0].membership_id == broken.id


class TestRenewalChain:
    def test_chain_over_several_renewals(self, db_session, gym, member, membership_factory):
        first = membership_factory(
            member, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31), auto_renewal=True
        )
        processor = AutoRenewalProcessor(db_session)
        processor.run(gym.id, date(2024, 2, 1))
        processor.run(gym.id, date(2024, 3, 3))

        chain = MembershipService(db_session).get_renewal_chain(gym.id, first.id)

        assert len(chain) == 3
        assert chain[0].id == first.id
        for predecessor, successor in zip(chain, chain[1:]):
            assert successor.previous_membership_id == predecessor.id
        assert chain[1].start_date == date(2024, 2, 1)
        assert chain[2].start_date == date(2024, 3, 3)

        # Same chain from any node
        middle = MembershipService(db_session).get_renewal_chain(gym.id, chain[1].id)
        assert [m.id for m in middle] == [m.id for m in chain]


class TestRenewOne:
    def test_manual_renewal(self, db_session, gym, member, membership_factory):
        old = membership_factory(
            member, cost="800", payment_status=PaymentStatus.PAID, auto_renewal=True,
            start_date=date(2024, 3, 1), end_date=date(2024, 3, 31),
        )

        renewed = AutoRenewalProcessor(db_session).renew_one(
            gym.id, member.id, old.id, today_date=TODAY
        )

        assert renewed.previous_membership_id == old.id
        assert renewed.start_date == TODAY
        assert renewed.end_date == TODAY + timedelta(days=30)
        db_session.expire_all()
        previous = db_session.get(MembershipAssignment, old.id)
        assert previous.status == MembershipStatus.EXPIRED
        assert previous.renewed_manually is True
        assert db_session.get(MembershipAssignment, renewed.membership_id).renewed_manually is True
        assert db_session.get(Member, member.id).total_debt == Decimal("800")

    def test_requires_auto_renewal(self, db_session, gym, member, membership_factory):
        membership = membership_factory(member, auto_renewal=False)

        with pytest.raises(AutoRenewalDisabledError):
            AutoRenewalProcessor(db_session).renew_one(gym.id, member.id, membership.id, TODAY)

        assert db_session.query(MembershipAssignment).count() == 1
        assert db_session.get(MembershipAssignment, membership.id).status == MembershipStatus.ACTIVE

    def test_cannot_renew_twice(self, db_session, gym, member, membership_factory):
        membership = membership_factory(member, auto_renewal=True)
        processor = AutoRenewalProcessor(db_session)
        processor.renew_one(gym.id, member.id, membership.id, TODAY)

        with pytest.raises(InvalidStateError, match="already been renewed"):
            processor.renew_one(gym.id, member.id, membership.id, TODAY)

    def test_membership_of_another_member(self, db_session, gym, member_factory,
                                          membership_factory):
        ana = member_factory(first_name="Ana")
        luis = member_factory(first_name="Luis")
        membership = membership_factory(ana, auto_renewal=True)

        with pytest.raises(MembershipNotFoundError):
            AutoRenewalProcessor(db_session).renew_one(gym.id, luis.id, membership.id, TODAY)


def test_list_upcoming_renewals(db_session, gym, member, membership_factory):
    later = membership_factory(member, end_date=date(2024, 3, 17), auto_renewal=True)
    sooner = membership_factory(member, end_date=TODAY, auto_renewal=True)
    membership_factory(member, end_date=date(2024, 3, 18), auto_renewal=True)
    membership_factory(member, end_date=date(2024, 3, 12), auto_renewal=False)
    overdue = membership_factory(member, end_date=date(2024, 3, 9), auto_renewal=True)
    membership_factory(member, end_date=date(2024, 3, 1), auto_renewal=True,
                       status=MembershipStatus.EXPIRED)

    upcoming = AutoRenewalProcessor(db_session).list_upcoming_renewals(gym.id, 7, TODAY)

    # Overdue ones are still waiting for a run and come first
    assert [m.id for m in upcoming] == [overdue.id, sooner.id, later.id]
    # Read-only
    assert db_session.query(MembershipAssignment).count() == 6
