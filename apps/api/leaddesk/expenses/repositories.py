from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leaddesk.expenses.models import Expense, ExpenseCategory


class ExpenseRepository:
    """Expenses are company-wide; no row scope applies."""

    def list_expenses(
        self,
        session: Session,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        category: ExpenseCategory | None = None,
    ) -> list[Expense]:
        stmt = select(Expense)
        if date_from is not None:
            stmt = stmt.where(Expense.expense_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Expense.expense_date <= date_to)
        if category is not None:
            stmt = stmt.where(Expense.category == category.value)
        return list(session.scalars(stmt.order_by(Expense.expense_date.desc(), Expense.id.desc())).all())

    def split_totals(self, session: Session, date_from: date, date_to: date) -> tuple[Decimal, Decimal]:
        """Online and field totals for expenses dated within the inclusive range."""

        row = session.execute(
            select(
                func.coalesce(func.sum(Expense.online_amount), 0),
                func.coalesce(func.sum(Expense.field_amount), 0),
            ).where(Expense.expense_date >= date_from, Expense.expense_date <= date_to)
        ).one()
        return Decimal(str(row[0])), Decimal(str(row[1]))
