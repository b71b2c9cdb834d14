from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: expense_categories
# ---------------------------


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"

    # Case-sensitive identity key; the import pipeline matches CSV values
    # against it exactly.
    name: Mapped[str] = mapped_column(String, primary_key=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    is_archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: expenses
# ---------------------------


class Expense(Base):
    __tablename__ = "expenses"

    # Generated as "<epoch-ms>-<9 base36 chars>" by the commit stage.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Raw date string as supplied by the import; not normalized.
    date: Mapped[str] = mapped_column(String, nullable=False)
    # Two decimal places; callers round before writing so the positive check
    # sees the stored value.
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    # Plain name rather than a foreign key: categories can be archived or
    # renamed independently of historical expenses.
    category: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("category <> ''", name="ck_expenses_category_nonempty"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        Index("ix_expenses_category", "category"),
        Index("ix_expenses_created_at", "created_at"),
    )


__all__ = [
    "Base",
    "ExpenseCategory",
    "Expense",
]
