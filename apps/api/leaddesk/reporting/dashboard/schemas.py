from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel


class StaffGroupBy(StrEnum):
    FIELD_REP = "field_rep"
    ACCOUNT_MANAGER = "account_manager"


class TrendInterval(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class DashboardMetricsRead(BaseModel):
    date_from: datetime
    date_to: datetime
    total_leads: int
    surveys_booked: int
    pending_surveys: int
    good_surveys: int
    bad_surveys: int
    sold_surveys: int
    conversion_leads_to_surveys: Decimal
    conversion_leads_to_sold: Decimal
    total_lead_cost: Decimal
    cost_per_lead: Decimal
    online_leads: int
    field_leads: int
    # Cost split fields are withheld from roles whose read policy denies them.
    total_online_expenses: Decimal | None = None
    total_field_expenses: Decimal | None = None
    cost_per_lead_online: Decimal | None = None
    cost_per_lead_field: Decimal | None = None


class StaffPerformanceRow(BaseModel):
    staff_name: str
    total_leads: int
    good_surveys: int
    bad_surveys: int
    sold_surveys: int
    conversion_rate: Decimal


class MetricsTrendPoint(BaseModel):
    period_start: date
    value: int


