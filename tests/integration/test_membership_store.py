"""Integration tests for membership assignment and debt reconciliation."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from gymledger.models import AuditLog, Member, MembershipStatus, PaymentStatus
from gymledger.services.audit_service import AuditService
from gymledger.services.cancellation_service import CancellationService
from gymledger.services.errors import (
    InvalidDateError,
    MemberNotFoundError,
    MembershipNotFoundError,
    ValidationError,
)
from gymledger.services.membership_service import MembershipService
from gymledger.services.payment_service import PaymentRegistrar


class TestAssignMembership:
    def test_unpaid_assignment_adds_debt(self, db_session, gym, member):
        membership = MembershipService(db_session).assign_membership(
            gym.id, member.id, "Funcional", Decimal("1500"),
            start_date=date(2024, 3, 1), end_date=date(2024, 3, 31), auto_renewal=True,
        )

        assert membership.status == MembershipStatus.ACTIVE
        assert membership.payment_status == PaymentStatus.PENDING
        assert membership.paid_amount == Decimal("0")
        assert membership.auto_renewal is True
        assert db_session.get(Member, member.id).total_debt == Decimal("1500")
        history = AuditService.list_for_entity(db_session, "membership", membership.id)
        assert [entry.action for entry in history] == ["assign"]

    def test_paid_assignment_adds_no_debt(self, db_session, gym, member):
        membership = MembershipService(db_session).assign_membership(
            gym.id, member.id, "Yoga", "800", start_date="2024-03-01", paid=True
        )

        assert membership.payment_status == PaymentStatus.PAID
        assert membership.paid_amount == Decimal("800")
        assert db_session.get(Member, member.id).total_debt == Decimal("0")

    def test_end_date_defaults_to_renewal_period(self, db_session, gym, member):
        membership = MembershipService(db_session).assign_membership(
            gym.id, member.id, "Yoga", "800", start_date=date(2024, 3, 1)
        )
        assert membership.end_date == date(2024, 3, 1) + timedelta(days=30)

    @pytest.mark.parametrize(
        "kwargs, error",
        [
            ({"cost": "-1"}, ValidationError),
            ({"activity_name": "  "}, ValidationError),
            ({"start_date": "not a date"}, InvalidDateError),
            ({"start_date": date(2024, 3, 10), "end_date": date(2024, 3, 1)}, InvalidDateError),
        ],
    )
    def test_rejects_invalid_input(self, db_session, gym, member, kwargs, error):
        args = {"activity_name": "Yoga", "cost": "800", **kwargs}
        with pytest.raises(error):
            MembershipService(db_session).assign_membership(gym.id, member.id, **args)
        assert db_session.get(Member, member.id).total_debt == Decimal("0")

    def test_unknown_member(self, db_session, gym):
        with pytest.raises(MemberNotFoundError):
            MembershipService(db_session).assign_membership(gym.id, 999, "Yoga", "800")


class TestQueries:
    def test_pending_list_excludes_paid_and_cancelled(self, db_session, gym, member,
                                                      membership_factory):
        pending = membership_factory(member, start_date=date(2024, 3, 1))
        older = membership_factory(
            member, start_date=date(2024, 1, 1), status=MembershipStatus.EXPIRED
        )
        partial = membership_factory(
            member, start_date=date(2024, 2, 1), payment_status=PaymentStatus.PARTIAL
        )
        membership_factory(member, payment_status=PaymentStatus.PAID)
        membership_factory(member, status=MembershipStatus.CANCELLED)

        listed = MembershipService(db_session).list_pending_memberships(gym.id, member.id)

        assert [m.id for m in listed] == [older.id, partial.id, pending.id]

    def test_list_member_memberships_by_status(self, db_session, gym, member,
                                               membership_factory):
        active = membership_factory(member)
        membership_factory(member, status=MembershipStatus.EXPIRED)
        service = MembershipService(db_session)

        assert len(service.list_member_memberships(gym.id, member.id)) == 2
        only_active = service.list_member_memberships(gym.id, member.id, MembershipStatus.ACTIVE)
        assert [m.id for m in only_active] == [active.id]

    def test_membership_scoped_to_gym(self, db_session, gym, member, membership_factory):
        membership = membership_factory(member)
        with pytest.raises(MembershipNotFoundError):
            MembershipService(db_session).get_membership(gym.id + 1, membership.id)

    def test_chain_of_unrenewed_membership(self, db_session, gym, member, membership_factory):
        membership = membership_factory(member)
        chain = MembershipService(db_session).get_renewal_chain(gym.id, membership.id)
        assert [m.id for m in chain] == [membership.id]


class TestDebtReconciliation:
    def test_consistent_through_a_workflow(self, db_session, gym, member, membership_factory):
        first = membership_factory(member, cost="1000")
        second = membership_factory(member, cost="600")
        third = membership_factory(member, cost="400")
        PaymentRegistrar(db_session).register_payment(
            gym.id, member.id, [first.id, second.id], Decimal("1300"), "cash", date(2024, 3, 5)
        )
        CancellationService(db_session).cancel_membership(
            gym.id, third.id, "cancel", "Moved away", on_date=date(2024, 3, 6)
        )

        result = MembershipService(db_session).reconcile_member_debt(gym.id, member.id)

        assert result.is_consistent
        assert result.expected == Decimal("300")

    def test_kept_debt_of_cancelled_membership_still_counts(self, db_session, gym, member,
                                                            membership_factory):
        membership = membership_factory(member, cost="400")
        CancellationService(db_session).cancel_membership(
            gym.id, membership.id, "keep", "Injury", on_date=date(2024, 3, 6)
        )

        service = MembershipService(db_session)
        assert service.compute_expected_debt(gym.id, member.id) == Decimal("400")
        assert service.reconcile_member_debt(gym.id, member.id).is_consistent

    def test_drift_detected_and_repaired(self, db_session, gym, member, membership_factory):
        membership_factory(member, cost="1000")
        member.total_debt = Decimal("1250")
        db_session.commit()
        service = MembershipService(db_session)

        report = service.reconcile_member_debt(gym.id, member.id)
        assert not report.is_consistent
        assert report.drift == Decimal("250")
        assert report.repaired is False
        assert db_session.get(Member, member.id).total_debt == Decimal("1250")

        repaired = service.reconcile_member_debt(gym.id, member.id, repair=True)
        assert repaired.repaired is True
        db_session.expire_all()
        assert db_session.get(Member, member.id).total_debt == Decimal("1000")
        assert db_session.query(AuditLog).filter_by(action="repair_debt").count() == 1
