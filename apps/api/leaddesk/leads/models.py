from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leaddesk.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeadStatus(StrEnum):
    NEW_LEAD = "New Lead"
    SURVEY_BOOKED = "Survey Booked"
    SURVEY_COMPLETE = "Survey Complete"
    INSTALL_COMPLETE = "Install Complete"
    FALL_OFF = "Fall Off"


class SurveyStatus(StrEnum):
    PENDING = "Pending"
    GOOD = "Good Survey"
    BAD = "Bad Survey"
    SOLD = "Sold Survey"


class LeadSource(StrEnum):
    ONLINE = "Online"
    FIELD = "Field"


class SolarLead(Base):
    __tablename__ = "solar_lead"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_tel: Mapped[str] = mapped_column(String(64), nullable=False)
    alternative_tel: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_line_of_address: Mapped[str] = mapped_column(Text, nullable=False)
    postcode: Mapped[str] = mapped_column(String(16), nullable=False)
    property_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    monthly_electricity_costs: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lead_source: Mapped[str | None] = mapped_column(String(16), nullable=True)

    account_manager: Mapped[str | None] = mapped_column(Text, nullable=True)
    field_rep: Mapped[str | None] = mapped_column(Text, nullable=True)
    installer: Mapped[str | None] = mapped_column(Text, nullable=True)
    installer_assigned_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=LeadStatus.NEW_LEAD.value)
    survey_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    survey_booked_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    survey_complete_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    install_booked_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    fall_off_stage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fall_off_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_model: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lead_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    lead_revenue: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    commission_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    commission_paid: Mapped[str | None] = mapped_column(String(16), nullable=True)
    commission_paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    installer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_solar_lead_created_at", "created_at"),
        Index("ix_solar_lead_account_manager", "account_manager"),
        Index("ix_solar_lead_field_rep", "field_rep"),
        Index("ix_solar_lead_installer", "installer"),
    )
