from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from leaddesk import audit, events
from leaddesk.core.database import translate_store_errors
from leaddesk.core.dates import DateRange
from leaddesk.core.errors import InvalidRequestError, NotFoundError
from leaddesk.leads.models import SolarLead, SurveyStatus, utcnow
from leaddesk.leads.repositories import LeadRepository
from leaddesk.leads.schemas import (
    REQUIRED_LEAD_FIELDS,
    LeadCreate,
    LeadFilters,
    LeadPage,
    LeadRead,
    LeadSort,
    LeadUpdate,
)
from leaddesk.metrics import observe_lead_mutation
from leaddesk.otel import engine_span
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.errors import ForbiddenFieldError, OutOfScopeError
from leaddesk.platform.security.fls import apply_fls_read, writable_fields
from leaddesk.platform.security.policies import LEAD_RESOURCE, ResourceAction
from leaddesk.platform.security.rbac import require_resource_action


logger = logging.getLogger("leaddesk.leads")

PAGE_SIZES = (25, 50, 100)
SORTABLE_COLUMNS = {
    "created_at": SolarLead.created_at,
    "customer_name": SolarLead.customer_name,
    "postcode": SolarLead.postcode,
    "status": SolarLead.status,
    "survey_status": SolarLead.survey_status,
    "survey_booked_date": SolarLead.survey_booked_date,
    "account_manager": SolarLead.account_manager,
    "field_rep": SolarLead.field_rep,
    "lead_source": SolarLead.lead_source,
}
SORT_DIRECTIONS = {"asc", "desc"}


class LeadNotFoundError(NotFoundError):
    """Lead is missing or outside the caller's scope; the two are indistinguishable."""

    def __init__(self, lead_id: object) -> None:
        super().__init__("lead", lead_id)


def _to_read(lead: SolarLead, identity: Identity | None = None) -> LeadRead:
    read = LeadRead.model_validate(lead)
    if identity is None:
        return read
    shaped = apply_fls_read(LEAD_RESOURCE, read.model_dump(exclude={"editable_fields"}), identity)
    return LeadRead(
        **shaped,
        editable_fields=writable_fields(LEAD_RESOURCE, LeadUpdate.model_fields.keys(), identity),
    )


def _column_values(payload: dict[str, Any]) -> dict[str, Any]:
    return {name: value.value if isinstance(value, Enum) else value for name, value in payload.items()}


def _load_in_scope(
    repository: LeadRepository,
    session: Session,
    identity: Identity,
    lead_id: int,
    *,
    action: str,
    for_update: bool = False,
) -> SolarLead:
    with translate_store_errors(f"leads.{action}"):
        lead = repository.get_by_id(session, lead_id, for_update=for_update)
    if lead is None:
        raise LeadNotFoundError(lead_id)
    try:
        repository.validate_read_scope(lead, identity, action=action)
    except OutOfScopeError as exc:
        raise LeadNotFoundError(lead_id) from exc
    return lead


@dataclass(slots=True)
class LeadQueryService:
    repository: LeadRepository = LeadRepository()

    def list_leads(
        self,
        session: Session,
        identity: Identity | None,
        filters: LeadFilters | None = None,
        sort: LeadSort | None = None,
        page: int = 1,
        page_size: int = 25,
    ) -> LeadPage:
        resolved = require_resource_action(LEAD_RESOURCE, ResourceAction.READ, identity)
        sort = sort or LeadSort()
        order_by = self._order_by(sort)
        if page < 1:
            raise InvalidRequestError("page must be >= 1", details={"page": page})
        if page_size not in PAGE_SIZES:
            raise InvalidRequestError(
                f"page_size must be one of {', '.join(str(size) for size in PAGE_SIZES)}",
                details={"page_size": page_size},
            )
        if filters is not None and filters.date_from is not None and filters.date_to is not None:
            DateRange.of(filters.date_from, filters.date_to)

        stmt = self.scoped_select(resolved, filters)
        with (
            engine_span("leads.list", resolved, page=page, page_size=page_size),
            translate_store_errors("leads.list"),
        ):
            total_count = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            leads = session.scalars(
                stmt.order_by(order_by, SolarLead.id.asc()).offset((page - 1) * page_size).limit(page_size)
            ).all()

        logger.info(
            "leads.list",
            extra={"role": resolved.role.value, "row_count": len(leads), "total_count": total_count},
        )
        return LeadPage(
            rows=[_to_read(lead, resolved) for lead in leads],
            total_count=total_count,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total_count / page_size) if total_count else 0,
        )

    def get_lead(self, session: Session, identity: Identity | None, lead_id: int) -> LeadRead:
        resolved = require_resource_action(LEAD_RESOURCE, ResourceAction.READ, identity)
        lead = _load_in_scope(self.repository, session, resolved, lead_id, action="read")
        return _to_read(lead, resolved)

    def scoped_select(self, identity: Identity, filters: LeadFilters | None = None) -> Select[tuple[SolarLead]]:
        stmt: Select[tuple[SolarLead]] = self.repository.apply_scope_query(select(SolarLead), identity)
        return self.repository.apply_filters(stmt, filters)

    @staticmethod
    def _order_by(sort: LeadSort) -> Any:
        column = SORTABLE_COLUMNS.get(sort.column)
        if column is None:
            raise InvalidRequestError(
                f"Unknown sort column '{sort.column}'",
                details={"allowed": sorted(SORTABLE_COLUMNS)},
            )
        direction = sort.direction.lower()
        if direction not in SORT_DIRECTIONS:
            raise InvalidRequestError(f"Unknown sort direction '{sort.direction}'", details={"allowed": ["asc", "desc"]})
        return column.asc() if direction == "asc" else column.desc()


@dataclass(slots=True)
class LeadMutationService:
    repository: LeadRepository = LeadRepository()
    entity_type = "leads.lead"

    def create_lead(self, session: Session, identity: Identity | None, dto: LeadCreate) -> LeadRead:
        resolved = require_resource_action(LEAD_RESOURCE, ResourceAction.CREATE, identity)

        payload = dto.model_dump(exclude_none=True)
        missing = [name for name in REQUIRED_LEAD_FIELDS if not str(payload.get(name) or "").strip()]
        if missing:
            raise InvalidRequestError(
                f"Missing required lead fields: {', '.join(missing)}",
                details={"missing_fields": missing},
            )
        self.repository.validate_write_security(payload, resolved, action="create")

        lead = SolarLead(**_column_values(payload))
        with translate_store_errors("leads.create"):
            session.add(lead)
            session.flush()
            created = _to_read(lead)
            audit.record(
                actor_user_id=resolved.user_id,
                entity_type=self.entity_type,
                entity_id=str(lead.id),
                action="create",
                before=None,
                after=created.model_dump(mode="json"),
                correlation_id=resolved.correlation_id,
            )
            session.commit()

        self._publish("leads.lead.created", resolved, created)
        observe_lead_mutation("create")
        logger.info("leads.created", extra={"lead_id": created.id, "role": resolved.role.value})
        return _to_read(lead, resolved)

    def update_lead(self, session: Session, identity: Identity | None, lead_id: int, dto: LeadUpdate) -> LeadRead:
        resolved = require_resource_action(LEAD_RESOURCE, ResourceAction.UPDATE, identity)
        payload = dto.model_dump(exclude_unset=True)
        try:
            lead = _load_in_scope(self.repository, session, resolved, lead_id, action="update", for_update=True)
            self.repository.validate_write_security(payload, resolved, record_id=lead.id, action="update")
        except (LeadNotFoundError, ForbiddenFieldError):
            session.rollback()
            raise
        if not payload:
            current = _to_read(lead, resolved)
            # Release the row lock taken by the scoped load.
            session.rollback()
            return current

        before = _to_read(lead).model_dump(mode="json")
        for field_name, value in _column_values(payload).items():
            setattr(lead, field_name, value)
        lead.updated_at = utcnow()

        with translate_store_errors("leads.update"):
            session.flush()
            updated = _to_read(lead)
            audit.record(
                actor_user_id=resolved.user_id,
                entity_type=self.entity_type,
                entity_id=str(lead.id),
                action="update",
                before=before,
                after=updated.model_dump(mode="json"),
                correlation_id=resolved.correlation_id,
            )
            session.commit()

        self._publish("leads.lead.updated", resolved, updated, changed_fields=sorted(payload))
        observe_lead_mutation("update")
        logger.info("leads.updated", extra={"lead_id": updated.id, "fields": sorted(payload), "role": resolved.role.value})
        return _to_read(lead, resolved)

    def update_survey_status(
        self,
        session: Session,
        identity: Identity | None,
        lead_id: int,
        survey_status: SurveyStatus | None,
    ) -> LeadRead:
        return self.update_lead(session, identity, lead_id, LeadUpdate(survey_status=survey_status))

    def delete_lead(self, session: Session, identity: Identity | None, lead_id: int) -> None:
        resolved = require_resource_action(LEAD_RESOURCE, ResourceAction.DELETE, identity)
        try:
            lead = _load_in_scope(self.repository, session, resolved, lead_id, action="delete", for_update=True)
        except LeadNotFoundError:
            session.rollback()
            raise

        before = _to_read(lead)
        with translate_store_errors("leads.delete"):
            session.delete(lead)
            session.flush()
            audit.record(
                actor_user_id=resolved.user_id,
                entity_type=self.entity_type,
                entity_id=str(lead_id),
                action="delete",
                before=before.model_dump(mode="json"),
                after=None,
                correlation_id=resolved.correlation_id,
            )
            session.commit()

        self._publish("leads.lead.deleted", resolved, before)
        observe_lead_mutation("delete")
        logger.info("leads.deleted", extra={"lead_id": lead_id, "role": resolved.role.value})

    @staticmethod
    def _publish(event_type: str, identity: Identity, lead: LeadRead, **extra: Any) -> None:
        events.publish(
            {
                "event_type": event_type,
                "collection": "leads",
                "actor_user_id": identity.user_id,
                "correlation_id": identity.correlation_id,
                "payload": {"lead_id": lead.id, "status": lead.status, **extra},
            }
        )


lead_query_service = LeadQueryService()
lead_mutation_service = LeadMutationService()
