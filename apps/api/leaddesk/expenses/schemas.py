from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leaddesk.core.dates import as_utc
from leaddesk.expenses.models import ExpenseCategory


SPLIT_TOLERANCE = Decimal("0.01")


class ExpenseCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expense_date: date
    category: ExpenseCategory
    description: str = Field(min_length=1)
    total_amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    online_amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    field_amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    notes: str | None = None

    @model_validator(mode="after")
    def _split_matches_total(self) -> ExpenseCreate:
        if abs(self.online_amount + self.field_amount - self.total_amount) > SPLIT_TOLERANCE:
            raise ValueError("online_amount + field_amount must equal total_amount")
        return self


class ExpenseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    expense_date: date
    category: ExpenseCategory
    description: str
    total_amount: Decimal
    online_amount: Decimal
    field_amount: Decimal
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _created_at_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)
