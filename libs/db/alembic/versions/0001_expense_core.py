# ruff: noqa: I001
"""Expense tracker core tables and default categories.

Revision ID: 0001_expense_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_expense_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # expense_categories
    op.create_table(
        "expense_categories",
        sa.Column("name", sa.String(), primary_key=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "is_archived",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Seed defaults (mirrored from expense_import.categories.DEFAULT_CATEGORY_CONFIGS)
    default_categories = (
        ("Food", "Groceries, restaurants, cafes, food delivery"),
        ("Transportation", "Gas, public transit, uber/taxi, parking, car maintenance"),
        ("Entertainment", "Movies, games, concerts, streaming services, hobbies"),
        ("Shopping", "Clothing, electronics, home goods, general retail"),
        ("Bills", "Utilities, rent, phone, internet, insurance, subscriptions"),
        ("Other", "Anything that doesn't clearly fit the above"),
    )
    op.bulk_insert(
        sa.table(
            "expense_categories",
            sa.column("name", sa.String()),
            sa.column("description", sa.Text()),
            sa.column("sort_order", sa.Integer()),
            sa.column("is_archived", sa.Boolean()),
        ),
        [
            {"name": name, "description": desc, "sort_order": i, "is_archived": False}
            for i, (name, desc) in enumerate(default_categories)
        ],
    )

    # expenses
    op.create_table(
        "expenses",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("date", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("category <> ''", name="ck_expenses_category_nonempty"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )

    op.create_index("ix_expenses_category", "expenses", ["category"], unique=False)
    op.create_index("ix_expenses_created_at", "expenses", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_expenses_created_at", table_name="expenses")
    op.drop_index("ix_expenses_category", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("expense_categories")
