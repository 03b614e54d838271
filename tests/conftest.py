"""Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database. Factories insert rows
directly so tests can arrange any membership/debt state; workflows under
test go through the services.
"""

import os

# Set test database URL BEFORE any imports from gymledger
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOCALE", "es_AR")

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from gymledger.models import (  # noqa: E402
    Base,
    Gym,
    Member,
    MembershipAssignment,
    MembershipStatus,
    PaymentFrequency,
    PaymentStatus,
)


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine):
    """Provide a test database session with all tables created."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def gym(db_session):
    gym = Gym(name="Test Gym")
    db_session.add(gym)
    db_session.commit()
    return gym


def make_member(db, gym, first_name="Ana", last_name="Gomez", total_debt="0") -> Member:
    member = Member(
        gym_id=gym.id,
        first_name=first_name,
        last_name=last_name,
        total_debt=Decimal(total_debt),
    )
    db.add(member)
    db.commit()
    return member


def make_membership(
    db,
    member,
    cost="1000",
    start_date=date(2024, 2, 1),
    end_date=date(2024, 3, 2),
    payment_status=PaymentStatus.PENDING,
    status=MembershipStatus.ACTIVE,
    auto_renewal=False,
    activity_name="Musculacion",
    charge_debt=True,
    **extra,
) -> MembershipAssignment:
    """Insert a membership; pending ones add their cost to the member's debt."""
    cost = Decimal(cost)
    membership = MembershipAssignment(
        gym_id=member.gym_id,
        member_id=member.id,
        activity_name=activity_name,
        start_date=start_date,
        end_date=end_date,
        cost=cost,
        paid_amount=cost if payment_status == PaymentStatus.PAID else Decimal("0"),
        payment_status=payment_status,
        payment_frequency=extra.pop("payment_frequency", PaymentFrequency.MONTHLY),
        status=status,
        auto_renewal=auto_renewal,
        max_attendances=extra.pop("max_attendances", 12),
        current_attendances=extra.pop("current_attendances", 0),
        **extra,
    )
    db.add(membership)
    if charge_debt and payment_status != PaymentStatus.PAID:
        member.total_debt = member.total_debt + cost
    db.commit()
    return membership


@pytest.fixture
def member(db_session, gym):
    return make_member(db_session, gym)


@pytest.fixture
def member_factory(db_session, gym):
    def factory(**kwargs):
        return make_member(db_session, gym, **kwargs)

    return factory


@pytest.fixture
def membership_factory(db_session):
    def factory(member, **kwargs):
        return make_membership(db_session, member, **kwargs)

    return factory
