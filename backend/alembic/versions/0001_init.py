"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-18

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=10), nullable=False, server_default=sa.text("'guest'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", sa.String(length=50), primary_key=True, nullable=False),
        sa.Column("parent_id", sa.String(length=50), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("index", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("full_name", sa.String(length=260), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
        sa.ForeignKeyConstraint(["parent_id"], ["categories.id"], name="fk_categories_parent_id"),
    )
    op.create_index("ix_categories_parent_id", "categories", ["parent_id"], unique=False)
    op.create_index("ix_categories_index", "categories", ["index"], unique=False)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("bank_number", sa.String(length=50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("ix_accounts_is_active", "accounts", ["is_active"], unique=False)
    op.create_index("ix_accounts_created_at", "accounts", ["created_at"], unique=False)

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("saldo_kas", sa.Numeric(18, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("created_by", sa.String(length=50), nullable=True),
        sa.Column("created_by_email", sa.String(length=200), nullable=True),
        sa.Column("created_by_role", sa.String(length=10), nullable=True),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], name="fk_transactions_category_id"),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"], unique=False)
    op.create_index("ix_transactions_account_id", "transactions", ["account_id"], unique=False)
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"], unique=False)
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"], unique=False)
    op.create_index("ix_transactions_chain_order", "transactions", ["date", "created_at", "id"], unique=False)

    op.create_table(
        "monthly_balances",
        sa.Column("key", sa.String(length=7), primary_key=True, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("starting_balance", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("ending_balance", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("last_updated", sa.DateTime(timezone=False), nullable=False),
        sa.Column("is_initial_setup", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("auto_saved", sa.Boolean(), nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "monthly_account_balances",
        sa.Column("month_key", sa.String(length=7), primary_key=True, nullable=False),
        sa.Column("account_id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("opening", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(
            ["month_key"], ["monthly_balances.key"], name="fk_monthly_account_balances_month_key"
        ),
    )

    op.create_table(
        "ledger_heads",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_transaction_id", sa.Integer(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("ledger_heads")
    op.drop_table("monthly_account_balances")
    op.drop_table("monthly_balances")

    op.drop_index("ix_transactions_chain_order", table_name="transactions")
    op.drop_index("ix_transactions_created_at", table_name="transactions")
    op.drop_index("ix_transactions_category_id", table_name="transactions")
    op.drop_index("ix_transactions_account_id", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")

    op.drop_index("ix_accounts_created_at", table_name="accounts")
    op.drop_index("ix_accounts_is_active", table_name="accounts")
    op.drop_table("accounts")

    op.drop_index("ix_categories_index", table_name="categories")
    op.drop_index("ix_categories_parent_id", table_name="categories")
    op.drop_table("categories")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
