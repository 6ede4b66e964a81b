from __future__ import annotations

import logging
import time
from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.orm import Session

from leaddesk.core.config import get_settings
from leaddesk.core.database import translate_store_errors
from leaddesk.core.dates import DateRange, as_utc
from leaddesk.core.errors import InvalidRequestError
from leaddesk.expenses.repositories import ExpenseRepository
from leaddesk.leads.models import LeadSource, SurveyStatus
from leaddesk.metrics import observe_dashboard_aggregation
from leaddesk.otel import engine_span
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.policies import (
    DASHBOARD_METRICS_RESOURCE,
    METRICS_TREND_RESOURCE,
    STAFF_PERFORMANCE_RESOURCE,
    ResourceAction,
)
from leaddesk.platform.security.rbac import require_resource_action
from leaddesk.reporting.dashboard.cache import DashboardMetricsCache, dashboard_metrics_cache
from leaddesk.reporting.dashboard.repository import (
    DashboardMetricsRepository,
    MetricsTrendRepository,
    StaffPerformanceRepository,
)
from leaddesk.reporting.dashboard.schemas import (
    DashboardMetricsRead,
    MetricsTrendPoint,
    StaffGroupBy,
    StaffPerformanceRow,
    TrendInterval,
)


logger = logging.getLogger("leaddesk.reporting")

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_SURVEY_VALUES = frozenset(status.value for status in SurveyStatus)


def _survey_bucket(row: Any) -> SurveyStatus | None:
    """Survey outcome for reporting; a booked lead without a recognised status counts as pending."""

    if row.survey_booked_date is None:
        return None
    if row.survey_status in _SURVEY_VALUES:
        return SurveyStatus(row.survey_status)
    return SurveyStatus.PENDING


def _percentage(part: int, whole: int) -> Decimal:
    if whole == 0:
        return _ZERO.quantize(_CENT)
    return (Decimal(part) * _HUNDRED / Decimal(whole)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _ratio(amount: Decimal, count: int) -> Decimal:
    if count == 0:
        return _ZERO.quantize(_CENT)
    return (amount / Decimal(count)).quantize(_CENT, rounding=ROUND_HALF_UP)


def _bucket_start(day: date, interval: TrendInterval) -> date:
    if interval == TrendInterval.WEEK:
        return day - timedelta(days=day.weekday())
    if interval == TrendInterval.MONTH:
        return day.replace(day=1)
    return day


@dataclass(slots=True)
class DashboardReportingService:
    metrics_repository: DashboardMetricsRepository = DashboardMetricsRepository()
    staff_repository: StaffPerformanceRepository = StaffPerformanceRepository()
    trend_repository: MetricsTrendRepository = MetricsTrendRepository()
    expense_repository: ExpenseRepository = ExpenseRepository()
    cache: DashboardMetricsCache = field(default_factory=lambda: dashboard_metrics_cache)

    def dashboard_metrics(self, session: Session, identity: Identity | None, date_range: DateRange) -> DashboardMetricsRead:
        resolved = require_resource_action(DASHBOARD_METRICS_RESOURCE, ResourceAction.READ, identity)
        computed = self.cache.get_or_compute(
            "metrics",
            self._cache_key(resolved, date_range),
            lambda: self._compute_metrics(session, resolved, date_range),
        )
        secured = self.metrics_repository.apply_read_security(dict(computed), resolved)
        return DashboardMetricsRead.model_validate(secured)

    def staff_performance(
        self,
        session: Session,
        identity: Identity | None,
        date_range: DateRange,
        group_by: StaffGroupBy | str | None = None,
    ) -> list[StaffPerformanceRow]:
        resolved = require_resource_action(STAFF_PERFORMANCE_RESOURCE, ResourceAction.READ, identity)
        grouping = self._resolve_group_by(group_by)
        rows = self.cache.get_or_compute(
            "staff_performance",
            self._cache_key(resolved, date_range, grouping.value),
            lambda: self._compute_staff_performance(session, resolved, date_range, grouping),
        )
        return [row.model_copy() for row in rows]

    def metrics_trend(
        self,
        session: Session,
        identity: Identity | None,
        date_range: DateRange,
        interval: TrendInterval | str = TrendInterval.DAY,
    ) -> list[MetricsTrendPoint]:
        resolved = require_resource_action(METRICS_TREND_RESOURCE, ResourceAction.READ, identity)
        try:
            resolved_interval = TrendInterval(interval)
        except ValueError as exc:
            raise InvalidRequestError(
                f"Unknown interval '{interval}'",
                details={"allowed": [item.value for item in TrendInterval]},
            ) from exc
        points = self.cache.get_or_compute(
            "trend",
            self._cache_key(resolved, date_range, resolved_interval.value),
            lambda: self._compute_trend(session, resolved, date_range, resolved_interval),
        )
        return [point.model_copy() for point in points]

    def _compute_metrics(self, session: Session, identity: Identity, date_range: DateRange) -> dict[str, Any]:
        started = time.perf_counter()
        with (
            engine_span("reports.dashboard.metrics", identity),
            translate_store_errors("reports.dashboard.metrics"),
        ):
            rows = self.metrics_repository.scoped_lead_rows(session, identity, date_range)
            online_expenses, field_expenses = self.expense_repository.split_totals(
                session,
                date_range.date_from.date(),
                date_range.date_to.date(),
            )

        buckets = {status: 0 for status in SurveyStatus}
        surveys_booked = 0
        online_leads = 0
        field_leads = 0
        total_lead_cost = _ZERO
        for row in rows:
            if row.lead_source == LeadSource.ONLINE.value:
                online_leads += 1
            elif row.lead_source == LeadSource.FIELD.value:
                field_leads += 1
            if row.lead_cost is not None:
                total_lead_cost += Decimal(str(row.lead_cost))
            bucket = _survey_bucket(row)
            if bucket is not None:
                surveys_booked += 1
                buckets[bucket] += 1

        total_leads = len(rows)
        metrics = {
            "date_from": date_range.date_from,
            "date_to": date_range.date_to,
            "total_leads": total_leads,
            "surveys_booked": surveys_booked,
            "pending_surveys": buckets[SurveyStatus.PENDING],
            "good_surveys": buckets[SurveyStatus.GOOD],
            "bad_surveys": buckets[SurveyStatus.BAD],
            "sold_surveys": buckets[SurveyStatus.SOLD],
            "conversion_leads_to_surveys": _percentage(surveys_booked, total_leads),
            "conversion_leads_to_sold": _percentage(buckets[SurveyStatus.SOLD], total_leads),
            "total_lead_cost": total_lead_cost.quantize(_CENT, rounding=ROUND_HALF_UP),
            "cost_per_lead": _ratio(total_lead_cost, total_leads),
            "online_leads": online_leads,
            "field_leads": field_leads,
            "total_online_expenses": online_expenses.quantize(_CENT, rounding=ROUND_HALF_UP),
            "total_field_expenses": field_expenses.quantize(_CENT, rounding=ROUND_HALF_UP),
            "cost_per_lead_online": _ratio(online_expenses, online_leads),
            "cost_per_lead_field": _ratio(field_expenses, field_leads),
        }
        observe_dashboard_aggregation("metrics", time.perf_counter() - started)
        logger.info("reports.dashboard.metrics", extra={"role": identity.role.value, "row_count": total_leads})
        return metrics

    def _compute_staff_performance(
        self,
        session: Session,
        identity: Identity,
        date_range: DateRange,
        grouping: StaffGroupBy,
    ) -> list[StaffPerformanceRow]:
        started = time.perf_counter()
        with (
            engine_span("reports.dashboard.staff", identity, group_by=grouping.value),
            translate_store_errors("reports.dashboard.staff"),
        ):
            rows = self.staff_repository.scoped_lead_rows(session, identity, date_range)

        # Insertion order follows the scan; no ranking is implied.
        tallies: dict[str, dict[str, int]] = {}
        for row in rows:
            staff_name = getattr(row, grouping.value)
            if not staff_name or not str(staff_name).strip():
                continue
            tally = tallies.setdefault(staff_name, {"total": 0, "good": 0, "bad": 0, "sold": 0})
            tally["total"] += 1
            bucket = _survey_bucket(row)
            if bucket == SurveyStatus.GOOD:
                tally["good"] += 1
            elif bucket == SurveyStatus.BAD:
                tally["bad"] += 1
            elif bucket == SurveyStatus.SOLD:
                tally["sold"] += 1

        result = [
            StaffPerformanceRow(
                staff_name=staff_name,
                total_leads=tally["total"],
                good_surveys=tally["good"],
                bad_surveys=tally["bad"],
                sold_surveys=tally["sold"],
                conversion_rate=_percentage(tally["sold"], tally["total"]),
            )
            for staff_name, tally in tallies.items()
        ]
        observe_dashboard_aggregation("staff_performance", time.perf_counter() - started)
        logger.info(
            "reports.dashboard.staff_performance",
            extra={"role": identity.role.value, "row_count": len(result), "total_count": len(rows)},
        )
        return result

    def _compute_trend(
        self,
        session: Session,
        identity: Identity,
        date_range: DateRange,
        interval: TrendInterval,
    ) -> list[MetricsTrendPoint]:
        started = time.perf_counter()
        with (
            engine_span("reports.dashboard.trend", identity, interval=interval.value),
            translate_store_errors("reports.dashboard.trend"),
        ):
            rows = self.trend_repository.scoped_lead_rows(session, identity, date_range)

        counts: dict[date, int] = {}
        for row in rows:
            start = _bucket_start(as_utc(row.created_at).date(), interval)
            counts[start] = counts.get(start, 0) + 1

        points = [MetricsTrendPoint(period_start=day, value=counts[day]) for day in sorted(counts)]
        observe_dashboard_aggregation("trend", time.perf_counter() - started)
        return points

    @staticmethod
    def _resolve_group_by(group_by: StaffGroupBy | str | None) -> StaffGroupBy:
        raw = group_by if group_by is not None else get_settings().staff_performance_group_by
        try:
            return StaffGroupBy(raw)
        except ValueError as exc:
            raise InvalidRequestError(
                f"Unknown group_by '{raw}'",
                details={"allowed": [item.value for item in StaffGroupBy]},
            ) from exc

    @staticmethod
    def _cache_key(identity: Identity, date_range: DateRange, *extra: str) -> Hashable:
        # Scope depends only on role and display name, so those identify the row set.
        return (identity.role.value, identity.display_name, date_range.date_from, date_range.date_to, *extra)


dashboard_reporting_service = DashboardReportingService()
