from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leaddesk.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpenseCategory(StrEnum):
    RENT = "Rent"
    MARKETING = "Marketing"
    SALARIES = "Salaries"
    UTILITIES = "Utilities"
    SOFTWARE = "Software"
    EQUIPMENT = "Equipment"
    TRAVEL = "Travel"
    INSURANCE = "Insurance"
    OTHER = "Other"


class Expense(Base):
    __tablename__ = "expense"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    online_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    field_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("ix_expense_expense_date", "expense_date"),)
