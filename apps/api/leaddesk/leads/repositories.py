from __future__ import annotations

from typing import Any

from sqlalchemy import Select, and_, or_, select
from sqlalchemy.orm import Session

from leaddesk.core.dates import to_utc
from leaddesk.leads.models import SolarLead, SurveyStatus
from leaddesk.leads.schemas import LeadFilters
from leaddesk.platform.security.policies import LEAD_RESOURCE
from leaddesk.platform.security.repository import BaseRepository


class LeadRepository(BaseRepository):
    resource = LEAD_RESOURCE

    def get_by_id(self, session: Session, lead_id: int, *, for_update: bool = False) -> SolarLead | None:
        # Always reload so scope checks see the committed row, not a stale identity-map copy.
        stmt = select(SolarLead).where(SolarLead.id == lead_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalar(stmt)

    @staticmethod
    def apply_filters(stmt: Select[Any], filters: LeadFilters | None) -> Select[Any]:
        if filters is None:
            return stmt

        if filters.search and filters.search.strip():
            term = filters.search.strip()
            stmt = stmt.where(
                or_(
                    SolarLead.customer_name.icontains(term, autoescape=True),
                    SolarLead.customer_email.icontains(term, autoescape=True),
                    SolarLead.customer_tel.icontains(term, autoescape=True),
                    SolarLead.postcode.icontains(term, autoescape=True),
                )
            )
        if filters.status is not None:
            stmt = stmt.where(SolarLead.status == filters.status.value)
        if filters.survey_status is not None:
            stmt = stmt.where(SolarLead.survey_booked_date.is_not(None))
            if filters.survey_status == SurveyStatus.PENDING:
                stmt = stmt.where(
                    or_(SolarLead.survey_status.is_(None), SolarLead.survey_status == SurveyStatus.PENDING.value)
                )
            else:
                stmt = stmt.where(SolarLead.survey_status == filters.survey_status.value)
        if filters.account_manager:
            stmt = stmt.where(SolarLead.account_manager == filters.account_manager)
        if filters.field_rep:
            stmt = stmt.where(SolarLead.field_rep == filters.field_rep)
        if filters.date_from is not None:
            stmt = stmt.where(SolarLead.created_at >= to_utc(filters.date_from, "date_from"))
        if filters.date_to is not None:
            stmt = stmt.where(SolarLead.created_at <= to_utc(filters.date_to, "date_to"))
        if filters.postcode and filters.postcode.strip():
            stmt = stmt.where(SolarLead.postcode.istartswith(filters.postcode.strip(), autoescape=True))
        return stmt

    @staticmethod
    def created_between(stmt: Select[Any], date_from: Any, date_to: Any) -> Select[Any]:
        return stmt.where(and_(SolarLead.created_at >= date_from, SolarLead.created_at <= date_to))
