"""Contract tests for the membership ledger HTTP API."""

from datetime import date
from decimal import Decimal

from fastapi.testclient import TestClient

from gymledger.models import LedgerTransaction, Member, MembershipAssignment, PaymentStatus


def _assert_error(response, status_code: int, code: str):
    assert response.status_code == status_code
    body = response.json()
    assert set(body) == {"error"}
    assert body["error"]["code"] == code
    assert body["error"]["message"]


class TestHealth:
    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestMembershipContract:
    def test_assign_membership(self, client: TestClient, gym, member, db_session):
        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/memberships",
            json={
                "activity_name": "Crossfit",
                "cost": "1200",
                "start_date": "2024-03-01",
                "end_date": "2024-03-31",
                "auto_renewal": True,
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["activity_name"] == "Crossfit"
        assert data["status"] == "active"
        assert data["payment_status"] == "pending"
        assert Decimal(data["cost"]) == Decimal("1200")
        assert data["end_date"] == "2024-03-31"
        assert db_session.get(Member, member.id).total_debt == Decimal("1200")

    def test_assign_to_unknown_member(self, client: TestClient, gym):
        response = client.post(
            f"/gyms/{gym.id}/members/999/memberships",
            json={"activity_name": "Crossfit", "cost": "1200"},
        )
        _assert_error(response, 404, "member_not_found")

    def test_assign_rejects_bad_payload(self, client: TestClient, gym, member):
        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/memberships",
            json={"activity_name": "Crossfit", "cost": "-1"},
        )
        assert response.status_code == 422

    def test_pending_list(self, client: TestClient, gym, member, membership_factory):
        pending = membership_factory(member)
        membership_factory(member, payment_status=PaymentStatus.PAID)

        response = client.get(f"/gyms/{gym.id}/members/{member.id}/memberships/pending")

        assert response.status_code == 200
        assert [m["id"] for m in response.json()] == [pending.id]

    def test_get_membership_not_found(self, client: TestClient, gym):
        _assert_error(client.get(f"/gyms/{gym.id}/memberships/12345"), 404, "membership_not_found")

    def test_debt_reconcile(self, client: TestClient, gym, member, membership_factory):
        membership_factory(member, cost="700")

        response = client.get(f"/gyms/{gym.id}/members/{member.id}/debt/reconcile")

        assert response.status_code == 200
        data = response.json()
        assert data["is_consistent"] is True
        assert Decimal(data["expected"]) == Decimal("700")


class TestPaymentContract:
    def test_register_payment(self, client: TestClient, gym, member, membership_factory):
        first = membership_factory(member, cost="1000")
        second = membership_factory(member, cost="500")

        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/payments",
            json={
                "membership_ids": [first.id, second.id],
                "amount": "1500",
                "payment_method": "transfer",
                "payment_date": "2024-03-05",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert isinstance(data["transaction_id"], int)
        assert Decimal(data["total_debt"]) == Decimal("0")
        assert data["membership_ids"] == [first.id, second.id]

        history = client.get(f"/gyms/{gym.id}/members/{member.id}/payments").json()
        assert [tx["id"] for tx in history] == [data["transaction_id"]]
        assert history[0]["type"] == "income"
        assert history[0]["category"] == "membership"

    def test_non_positive_amount(self, client: TestClient, gym, member, membership_factory,
                                 db_session):
        membership = membership_factory(member)

        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/payments",
            json={"membership_ids": [membership.id], "amount": "0", "payment_date": "2024-03-05"},
        )

        _assert_error(response, 422, "validation_error")
        assert db_session.query(LedgerTransaction).count() == 0

    def test_invalid_payment_date(self, client: TestClient, gym, member, membership_factory):
        membership = membership_factory(member)

        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/payments",
            json={"membership_ids": [membership.id], "amount": "100", "payment_date": "yesterday"},
        )

        _assert_error(response, 422, "invalid_date")

    def test_paying_a_paid_membership(self, client: TestClient, gym, member, membership_factory):
        membership = membership_factory(member, payment_status=PaymentStatus.PAID)

        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/payments",
            json={"membership_ids": [membership.id], "amount": "100", "payment_date": "2024-03-05"},
        )

        _assert_error(response, 409, "invalid_state")

    def test_history_of_unknown_member(self, client: TestClient, gym):
        _assert_error(client.get(f"/gyms/{gym.id}/members/4242/payments"), 404, "member_not_found")


class TestCancellationContract:
    def test_cancel_paid_membership_refunds(self, client: TestClient, gym, member,
                                            membership_factory):
        membership = membership_factory(member, cost="800", payment_status=PaymentStatus.PAID)

        response = client.post(
            f"/gyms/{gym.id}/memberships/{membership.id}/cancel",
            json={"debt_action": "keep", "reason": "Moving", "actor": "admin"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["debt_action"] == "keep"
        assert Decimal(data["refund_amount"]) == Decimal("800")
        assert data["refund_transaction_id"] is not None

    def test_cancel_twice(self, client: TestClient, gym, member, membership_factory):
        membership = membership_factory(member)
        url = f"/gyms/{gym.id}/memberships/{membership.id}/cancel"
        assert client.post(url, json={"debt_action": "cancel"}).status_code == 200

        _assert_error(client.post(url, json={"debt_action": "cancel"}), 409, "already_cancelled")

    def test_unknown_debt_action(self, client: TestClient, gym, member, membership_factory):
        membership = membership_factory(member)

        response = client.post(
            f"/gyms/{gym.id}/memberships/{membership.id}/cancel", json={"debt_action": "forgive"}
        )

        _assert_error(response, 422, "validation_error")


class TestRenewalContract:
    def test_renew_one(self, client: TestClient, gym, member, membership_factory, db_session):
        membership = membership_factory(member, auto_renewal=True)

        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/memberships/{membership.id}/renew",
            json={"actor": "admin"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["previous_membership_id"] == membership.id
        successor = db_session.get(MembershipAssignment, data["membership_id"])
        assert successor.previous_membership_id == membership.id

        chain = client.get(f"/gyms/{gym.id}/memberships/{membership.id}/chain").json()
        assert [m["id"] for m in chain] == [membership.id, data["membership_id"]]

    def test_renew_without_auto_renewal(self, client: TestClient, gym, member,
                                        membership_factory):
        membership = membership_factory(member, auto_renewal=False)

        response = client.post(
            f"/gyms/{gym.id}/members/{member.id}/memberships/{membership.id}/renew"
        )

        _assert_error(response, 409, "auto_renewal_disabled")


class TestCashContract:
    def test_movements_and_day_views(self, client: TestClient, gym):
        income = client.post(
            f"/gyms/{gym.id}/cash/movements/income",
            json={"amount": "300", "description": "Protein", "category": "product",
                  "booking_date": "2024-03-15"},
        )
        expense = client.post(
            f"/gyms/{gym.id}/cash/movements/expense",
            json={"amount": "120", "description": "Repairs", "category": "maintenance",
                  "booking_date": "2024-03-15"},
        )
        assert income.status_code == 201
        assert expense.status_code == 201
        assert Decimal(expense.json()["amount"]) == Decimal("-120")

        day = client.get(f"/gyms/{gym.id}/cash/2024-03-15").json()
        assert Decimal(day["total_income"]) == Decimal("300")
        assert Decimal(day["total_expense"]) == Decimal("120")
        assert day["status"] == "open"

        entries = client.get(f"/gyms/{gym.id}/cash/2024-03-15/transactions").json()
        assert len(entries) == 2
        assert client.get(f"/gyms/{gym.id}/cash/2024-03-15/reconcile").json()["is_consistent"]

        listed = client.get(
            f"/gyms/{gym.id}/cash", params={"start": "2024-03-01", "end": "2024-03-31"}
        ).json()
        assert [d["cash_date"] for d in listed] == ["2024-03-15"]

    def test_closed_day(self, client: TestClient, gym):
        opened = client.post(f"/gyms/{gym.id}/cash/2024-03-15/open", json={"opening_amount": "50"})
        closed = client.post(f"/gyms/{gym.id}/cash/2024-03-15/close", json={})
        assert opened.status_code == 200
        assert closed.json()["status"] == "closed"
        assert Decimal(closed.json()["closing_amount"]) == Decimal("50")

        response = client.post(
            f"/gyms/{gym.id}/cash/movements/income",
            json={"amount": "10", "description": "Late", "category": "extra",
                  "booking_date": "2024-03-15"},
        )
        _assert_error(response, 409, "cash_register_closed")

    def test_unknown_day(self, client: TestClient, gym):
        _assert_error(client.get(f"/gyms/{gym.id}/cash/2024-01-01"), 404, "not_found")

    def test_bad_day(self, client: TestClient, gym):
        _assert_error(client.get(f"/gyms/{gym.id}/cash/someday"), 422, "invalid_date")

    def test_wrong_category(self, client: TestClient, gym):
        response = client.post(
            f"/gyms/{gym.id}/cash/movements/expense",
            json={"amount": "10", "description": "Snacks", "category": "product"},
        )
        _assert_error(response, 422, "validation_error")


class TestJobsContract:
    def test_expiration_scan(self, client: TestClient, gym, member, membership_factory):
        membership_factory(member, end_date=date(2024, 3, 1))

        response = client.post(f"/gyms/{gym.id}/expiration-scan", params={"run_date": "2024-03-10"})

        assert response.status_code == 200
        assert response.json() == {"processed_count": 1, "errors": []}

    def test_auto_renewal(self, client: TestClient, gym, member, membership_factory):
        old = membership_factory(member, end_date=date(2024, 3, 1), auto_renewal=True)

        response = client.post(f"/gyms/{gym.id}/auto-renewal", params={"run_date": "2024-03-10"})

        data = response.json()
        assert data["renewed_count"] == 1
        assert data["renewed"][0]["previous_membership_id"] == old.id
        assert data["renewed"][0]["start_date"] == "2024-03-10"

    def test_daily_jobs_run_once_per_day(self, client: TestClient, gym, member,
                                         membership_factory):
        membership_factory(member, end_date=date(2024, 3, 1))
        url = f"/gyms/{gym.id}/daily-jobs"

        first = client.post(url, json={"run_date": "2024-03-10"}).json()
        second = client.post(url, json={"run_date": "2024-03-10"}).json()

        assert first["success"] is True
        assert [o["job_name"] for o in first["outcomes"]] == ["auto_renewal", "expiration"]
        assert [o["status"] for o in second["outcomes"]] == ["skipped", "skipped"]

    def test_daily_jobs_unknown_job(self, client: TestClient, gym):
        response = client.post(f"/gyms/{gym.id}/daily-jobs", json={"jobs": ["backup"]})
        _assert_error(response, 422, "validation_error")

    def test_expiration_stats(self, client: TestClient, gym, member, membership_factory):
        membership_factory(member, end_date=date(2020, 1, 1))

        data = client.get(f"/gyms/{gym.id}/expiration-stats").json()

        assert data["total"] == 1
        assert data["overdue"] == 1

    def test_upcoming_renewals_rejects_negative_window(self, client: TestClient, gym):
        response = client.get(f"/gyms/{gym.id}/renewals/upcoming", params={"days_ahead": -1})
        _assert_error(response, 422, "validation_error")
