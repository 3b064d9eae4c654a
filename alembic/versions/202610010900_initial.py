"""household ledger schema

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None


def _txn_type():
    return sa.Enum("income", "expense", name="transactiontype")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", _txn_type(), nullable=False),
        sa.Column("color", sa.String(length=7)),
        sa.Column("icon", sa.String(length=40)),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("type", "name", name="uq_category_type_name"),
    )

    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", _txn_type(), nullable=False),
        sa.Column("color", sa.String(length=7)),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("type", "name", name="uq_payment_method_type_name"),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "color", sa.String(length=7), nullable=False, server_default="#4f46e5"
        ),
        sa.Column("icon", sa.String(length=40)),
        sa.Column(
            "status",
            sa.Enum("active", "completed", "archived", name="projectstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "recurring_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("day_of_month", sa.Integer(), nullable=False),
        sa.Column(
            "recurrence_type",
            sa.Enum("regular", "irregular", name="recurrencetype"),
            nullable=False,
            server_default="regular",
        ),
        sa.Column("months", sa.JSON(), nullable=False),
        sa.Column("memo", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_posted_on", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_recurring_amount_positive"),
        sa.CheckConstraint(
            "day_of_month BETWEEN 1 AND 31", name="ck_recurring_day_of_month"
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", _txn_type(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "description", sa.String(length=200), nullable=False, server_default=""
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column(
            "payment_method_id", sa.Integer(), sa.ForeignKey("payment_methods.id")
        ),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id")),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("memo", sa.Text()),
        sa.Column(
            "recurring_expense_id",
            sa.Integer(),
            sa.ForeignKey("recurring_expenses.id"),
        ),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_occurred_at", "transactions", ["occurred_at"])
    op.create_index(
        "ix_transactions_type_occurred_at", "transactions", ["type", "occurred_at"]
    )
    op.create_index("ix_transactions_project", "transactions", ["project_id"])

    op.create_table(
        "scheduled_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("memo", sa.Text()),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "cancelled", name="scheduledstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id")),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_scheduled_amount_positive"),
    )
    op.create_index(
        "ix_scheduled_status_date",
        "scheduled_expenses",
        ["status", "scheduled_date"],
    )

    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bank_name", sa.String(length=100), nullable=False),
        sa.Column("account_alias", sa.String(length=100)),
        sa.Column("account_number", sa.String(length=64)),
        sa.Column("memo", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "account_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("bank_accounts.id"),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("memo", sa.Text()),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_account_balances_account_recorded",
        "account_balances",
        ["account_id", "recorded_at"],
    )


def downgrade():
    op.drop_index("ix_account_balances_account_recorded", "account_balances")
    op.drop_table("account_balances")
    op.drop_table("bank_accounts")
    op.drop_index("ix_scheduled_status_date", "scheduled_expenses")
    op.drop_table("scheduled_expenses")
    op.drop_index("ix_transactions_project", "transactions")
    op.drop_index("ix_transactions_type_occurred_at", "transactions")
    op.drop_index("ix_transactions_occurred_at", "transactions")
    op.drop_table("transactions")
    op.drop_table("recurring_expenses")
    op.drop_table("projects")
    op.drop_table("payment_methods")
    op.drop_table("categories")
