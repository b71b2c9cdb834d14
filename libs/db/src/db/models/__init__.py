"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the expense tracker models used by ``expense_import``.
"""

from .expenses import Base, Expense, ExpenseCategory

__all__ = [
    "Base",
    "Expense",
    "ExpenseCategory",
]
