from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leaddesk.core.dates import as_utc
from leaddesk.leads.models import LeadSource, LeadStatus, SurveyStatus


REQUIRED_LEAD_FIELDS = ("customer_name", "customer_tel", "first_line_of_address", "postcode")


class _LeadFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    customer_name: str | None = None
    customer_tel: str | None = Field(default=None, max_length=64)
    alternative_tel: str | None = Field(default=None, max_length=64)
    customer_email: str | None = None
    first_line_of_address: str | None = None
    postcode: str | None = Field(default=None, max_length=16)
    property_type: str | None = Field(default=None, max_length=64)
    monthly_electricity_costs: str | None = Field(default=None, max_length=64)
    lead_source: LeadSource | None = None
    account_manager: str | None = None
    field_rep: str | None = None
    installer: str | None = None
    installer_assigned_date: date | None = None
    status: LeadStatus | None = None
    survey_status: SurveyStatus | None = None
    survey_booked_date: date | None = None
    survey_complete_date: date | None = None
    install_booked_date: date | None = None
    paid_date: date | None = None
    fall_off_stage: str | None = Field(default=None, max_length=64)
    fall_off_reason: str | None = None
    payment_model: str | None = Field(default=None, max_length=64)
    lead_cost: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    lead_revenue: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    commission_amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    commission_paid: str | None = Field(default=None, max_length=16)
    commission_paid_date: date | None = None
    notes: str | None = None
    installer_notes: str | None = None


class LeadCreate(_LeadFields):
    """Create payload. Required fields are checked by the service after the role gate."""


class LeadUpdate(_LeadFields):
    @model_validator(mode="after")
    def _required_fields_not_cleared(self) -> LeadUpdate:
        cleared = [name for name in REQUIRED_LEAD_FIELDS if name in self.model_fields_set and not getattr(self, name)]
        if "status" in self.model_fields_set and self.status is None:
            cleared.append("status")
        if cleared:
            raise ValueError(f"Fields cannot be cleared: {', '.join(cleared)}")
        return self


class SurveyStatusUpdate(BaseModel):
    survey_status: SurveyStatus | None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime
    customer_name: str
    customer_tel: str
    alternative_tel: str | None = Field(default=None, max_length=64)
    customer_email: str | None = None
    first_line_of_address: str
    postcode: str
    property_type: str | None = Field(default=None, max_length=64)
    monthly_electricity_costs: str | None = Field(default=None, max_length=64)
    lead_source: str | None = None
    account_manager: str | None = None
    field_rep: str | None = None
    installer: str | None = None
    installer_assigned_date: date | None = None
    status: str
    survey_status: str | None = None
    survey_booked_date: date | None = None
    survey_complete_date: date | None = None
    install_booked_date: date | None = None
    paid_date: date | None = None
    fall_off_stage: str | None = Field(default=None, max_length=64)
    fall_off_reason: str | None = None
    payment_model: str | None = Field(default=None, max_length=64)
    lead_cost: Decimal | None = None
    lead_revenue: Decimal | None = None
    commission_amount: Decimal | None = None
    commission_paid: str | None = Field(default=None, max_length=16)
    commission_paid_date: date | None = None
    notes: str | None = None
    installer_notes: str | None = None
    editable_fields: list[str] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _timestamps_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class LeadFilters(BaseModel):
    search: str | None = None
    status: LeadStatus | None = None
    survey_status: SurveyStatus | None = None
    account_manager: str | None = None
    field_rep: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    postcode: str | None = None


class LeadSort(BaseModel):
    column: str = "created_at"
    direction: str = "desc"


class LeadPage(BaseModel):
    rows: list[LeadRead]
    total_count: int
    page: int
    page_size: int
    total_pages: int
