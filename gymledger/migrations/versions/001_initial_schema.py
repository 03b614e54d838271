"""Initial schema: gyms, members, memberships, ledger, daily cash, jobs.

Revision ID: 001_initial_schema
Revises:
Create Date: 2024-03-01 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(precision=10, scale=2)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "gyms",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("gym_id", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "INACTIVE", name="memberstatus"),
            nullable=False,
            server_default="ACTIVE",
        ),
        sa.Column(
            "total_debt",
            MONEY,
            nullable=False,
            server_default="0",
            comment="Cached sum of pending membership costs (never negative)",
        ),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gym_id"], ["gyms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_members_gym_id", "gym_id"),
        sa.Index("idx_member_gym_status", "gym_id", "status"),
    )

    op.create_table(
        "membership_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("gym_id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("activity_id", sa.String(length=64), nullable=True),
        sa.Column("activity_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("cost", MONEY, nullable=False),
        sa.Column("paid_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_transaction_id", sa.Integer(), nullable=True),
        sa.Column(
            "payment_status",
            sa.Enum("PAID", "PENDING", "PARTIAL", name="paymentstatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column(
            "payment_frequency",
            sa.Enum("SINGLE", "MONTHLY", name="paymentfrequency"),
            nullable=False,
            server_default="MONTHLY",
        ),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "EXPIRED", "CANCELLED", name="membershipstatus"),
            nullable=False,
            server_default="ACTIVE",
        ),
        sa.Column("max_attendances", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_attendances", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("auto_renewal", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("previous_membership_id", sa.Integer(), nullable=True),
        sa.Column("renewal_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("renewed_automatically", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("renewed_manually", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=255), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column(
            "cancellation_debt_action",
            sa.Enum("KEEP", "CANCEL", name="debtaction"),
            nullable=True,
        ),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gym_id"], ["gyms.id"]),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.ForeignKeyConstraint(["previous_membership_id"], ["membership_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("previous_membership_id"),
        sa.Index("ix_membership_assignments_gym_id", "gym_id"),
        sa.Index("ix_membership_assignments_member_id", "member_id"),
        sa.Index("ix_membership_assignments_end_date", "end_date"),
        sa.Index("ix_membership_assignments_status", "status"),
        sa.Index("idx_membership_member_status", "member_id", "status"),
        sa.Index("idx_membership_member_payment", "member_id", "payment_status"),
        sa.Index("idx_membership_renewal_scan", "gym_id", "status", "auto_renewal"),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("gym_id", sa.Integer(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("INCOME", "EXPENSE", "REFUND", name="transactiontype"),
            nullable=False,
        ),
        sa.Column(
            "category",
            sa.Enum(
                "MEMBERSHIP",
                "EXTRA",
                "PRODUCT",
                "SERVICE",
                "WITHDRAWAL",
                "SUPPLIER",
                "SERVICES",
                "MAINTENANCE",
                "SALARY",
                "REFUND",
                "OTHER",
                name="transactioncategory",
            ),
            nullable=False,
        ),
        sa.Column(
            "amount", MONEY, nullable=False, comment="Signed amount: income > 0, expense/refund < 0"
        ),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=True),
        sa.Column("membership_id", sa.Integer(), nullable=True),
        sa.Column("membership_ids", sa.JSON(), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column(
            "status",
            sa.Enum("COMPLETED", "REFUNDED", name="transactionstatus"),
            nullable=False,
            server_default="COMPLETED",
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gym_id"], ["gyms.id"]),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.ForeignKeyConstraint(["membership_id"], ["membership_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ledger_transactions_gym_id", "gym_id"),
        sa.Index("ix_ledger_transactions_member_id", "member_id"),
        sa.Index("ix_ledger_transactions_membership_id", "membership_id"),
        sa.Index("idx_ledger_gym_date", "gym_id", "transaction_date"),
        sa.Index("idx_ledger_member_type", "member_id", "type"),
    )

    op.create_table(
        "daily_cash",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("gym_id", sa.Integer(), nullable=False),
        sa.Column("cash_date", sa.Date(), nullable=False),
        sa.Column("opening_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("closing_amount", MONEY, nullable=True),
        sa.Column("total_income", MONEY, nullable=False, server_default="0"),
        sa.Column("total_expense", MONEY, nullable=False, server_default="0"),
        sa.Column("membership_income", MONEY, nullable=False, server_default="0"),
        sa.Column("other_income", MONEY, nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.Enum("OPEN", "CLOSED", name="cashstatus"),
            nullable=False,
            server_default="OPEN",
        ),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_by", sa.String(length=255), nullable=True),
        sa.Column("closed_by", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gym_id"], ["gyms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("gym_id", "cash_date", name="uq_daily_cash_gym_date"),
        sa.Index("ix_daily_cash_gym_id", "gym_id"),
    )

    op.create_table(
        "monthly_charges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("gym_id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("membership_id", sa.Integer(), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False, comment="YYYY-MM"),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "PAID", "CANCELLED", name="chargestatus"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gym_id"], ["gyms.id"]),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.ForeignKeyConstraint(["membership_id"], ["membership_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("membership_id", "month", name="uq_monthly_charge_membership_month"),
        sa.Index("ix_monthly_charges_gym_id", "gym_id"),
        sa.Index("ix_monthly_charges_member_id", "member_id"),
        sa.Index("ix_monthly_charges_membership_id", "membership_id"),
    )

    op.create_table(
        "scheduler_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("gym_id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=50), nullable=False),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("RUNNING", "COMPLETED", "FAILED", name="runstatus"),
            nullable=False,
            server_default="RUNNING",
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gym_id"], ["gyms.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("gym_id", "job_name", "run_date", name="uq_scheduler_run_day"),
        sa.Index("ix_scheduler_runs_gym_id", "gym_id"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("gym_id", sa.Integer(), nullable=True),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["gym_id"], ["gyms.id"]),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("scheduler_runs")
    op.drop_table("monthly_charges")
    op.drop_table("daily_cash")
    op.drop_table("ledger_transactions")
    op.drop_table("membership_assignments")
    op.drop_table("members")
    op.drop_table("gyms")
