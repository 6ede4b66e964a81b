from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import Row, select
from sqlalchemy.orm import Session

from leaddesk.core.dates import DateRange
from leaddesk.leads.models import SolarLead
from leaddesk.leads.repositories import LeadRepository
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.policies import (
    DASHBOARD_METRICS_RESOURCE,
    METRICS_TREND_RESOURCE,
    STAFF_PERFORMANCE_RESOURCE,
)
from leaddesk.platform.security.repository import BaseRepository


_AGGREGATE_COLUMNS = (
    SolarLead.id,
    SolarLead.created_at,
    SolarLead.lead_source,
    SolarLead.survey_booked_date,
    SolarLead.survey_status,
    SolarLead.lead_cost,
    SolarLead.account_manager,
    SolarLead.field_rep,
)


class _ScopedLeadRowsMixin:
    def scoped_lead_rows(self, session: Session, identity: Identity, date_range: DateRange) -> Sequence[Row[Any]]:
        """Scoped leads created inside the range, in id order."""

        stmt = self.apply_scope_query(select(*_AGGREGATE_COLUMNS), identity)  # type: ignore[attr-defined]
        stmt = LeadRepository.created_between(stmt, date_range.date_from, date_range.date_to)
        return session.execute(stmt.order_by(SolarLead.id.asc())).all()


class DashboardMetricsRepository(_ScopedLeadRowsMixin, BaseRepository):
    resource = DASHBOARD_METRICS_RESOURCE


class StaffPerformanceRepository(_ScopedLeadRowsMixin, BaseRepository):
    resource = STAFF_PERFORMANCE_RESOURCE


class MetricsTrendRepository(_ScopedLeadRowsMixin, BaseRepository):
    resource = METRICS_TREND_RESOURCE
