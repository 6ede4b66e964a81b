from __future__ import annotations

from collections.abc import Generator
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk import audit, events
from leaddesk.core.database import Base
from leaddesk.core.errors import InvalidRequestError
from leaddesk.leads.models import LeadStatus, SolarLead, SurveyStatus
from leaddesk.leads.schemas import LeadCreate, LeadUpdate
from leaddesk.leads.service import LeadMutationService, LeadNotFoundError
from leaddesk.platform.security.context import Identity, Role
from leaddesk.platform.security.errors import AuthorizationError, DenialReason, ForbiddenFieldError
from leaddesk.platform.security.policies import build_default_policy_backend, set_policy_backend


ADMIN = Identity(user_id="u-admin", role=Role.ADMIN, display_name="Ada", correlation_id="corr-1")
ALICE = Identity(user_id="u-am", role=Role.ACCOUNT_MANAGER, display_name="Alice")
FRANK = Identity(user_id="u-fr", role=Role.FIELD_REP, display_name="Frank")
IAN = Identity(user_id="u-in", role=Role.INSTALLER, display_name="Ian")

service = LeadMutationService()


@pytest.fixture(autouse=True)
def reset_state() -> Generator[None, None, None]:
    set_policy_backend(build_default_policy_backend())
    audit.audit_entries.clear()
    events.published_events.clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def lead(db_session: Session) -> SolarLead:
    row = SolarLead(
        customer_name="Jane Doe",
        customer_tel="07000000001",
        first_line_of_address="1 High Street",
        postcode="SW1A 1AA",
        account_manager="Alice",
        field_rep="Frank",
        installer="Ian",
        notes="original",
        survey_booked_date=date(2024, 3, 10),
    )
    db_session.add(row)
    db_session.commit()
    return row


def _create_payload(**overrides: object) -> LeadCreate:
    values: dict[str, object] = {
        "customer_name": "New Customer",
        "customer_tel": "07000000002",
        "first_line_of_address": "2 Low Road",
        "postcode": "M1 2AB",
        "account_manager": "Alice",
    }
    values.update(overrides)
    return LeadCreate(**values)


def _stored(session: Session, lead_id: int) -> SolarLead:
    session.expire_all()
    row = session.scalar(select(SolarLead).where(SolarLead.id == lead_id))
    assert row is not None
    return row


def test_admin_create_persists_audits_and_publishes(db_session: Session) -> None:
    created = service.create_lead(db_session, ADMIN, _create_payload(lead_cost=Decimal("120.00")))

    assert created.status == LeadStatus.NEW_LEAD.value
    assert created.lead_cost == Decimal("120.00")
    assert _stored(db_session, created.id).customer_name == "New Customer"

    entries = audit.entries_for("leads.lead", str(created.id))
    assert [entry["action"] for entry in entries] == ["create"]
    assert entries[0]["correlation_id"] == "corr-1"
    assert events.published_events[-1]["event_type"] == "leads.lead.created"
    assert events.published_events[-1]["payload"]["lead_id"] == created.id


def test_field_rep_cannot_create(db_session: Session) -> None:
    with pytest.raises(AuthorizationError) as exc_info:
        service.create_lead(db_session, FRANK, _create_payload())

    assert exc_info.value.reason == DenialReason.ROLE_CANNOT_CREATE
    assert db_session.scalar(select(SolarLead)) is None


def test_create_reports_every_missing_required_field(db_session: Session) -> None:
    with pytest.raises(InvalidRequestError) as exc_info:
        service.create_lead(db_session, ALICE, LeadCreate(customer_name="  ", postcode="M1"))

    assert exc_info.value.details == {"missing_fields": ["customer_name", "customer_tel", "first_line_of_address"]}


def test_account_manager_create_with_financial_field_is_refused(db_session: Session) -> None:
    with pytest.raises(ForbiddenFieldError) as exc_info:
        service.create_lead(db_session, ALICE, _create_payload(lead_cost=Decimal("50")))

    assert exc_info.value.fields == ["lead_cost"]
    assert db_session.scalar(select(SolarLead)) is None
    assert events.published_events == []


def test_account_manager_updates_non_financial_fields(db_session: Session, lead: SolarLead) -> None:
    updated = service.update_lead(
        db_session,
        ALICE,
        lead.id,
        LeadUpdate(status=LeadStatus.SURVEY_BOOKED, commission_paid_date=date(2024, 4, 1)),
    )

    assert updated.status == LeadStatus.SURVEY_BOOKED.value
    assert updated.commission_paid_date == date(2024, 4, 1)
    assert "lead_cost" not in updated.editable_fields
    assert events.published_events[-1]["payload"]["changed_fields"] == ["commission_paid_date", "status"]
    audited = audit.entries_for("leads.lead", str(lead.id))[-1]
    assert audited["action"] == "update"
    assert {"commission_paid_date", "status"} <= set(audited["changed_fields"])
    assert "lead_cost" not in audited["changed_fields"]


def test_field_rep_mixed_update_is_rejected_whole(db_session: Session, lead: SolarLead) -> None:
    with pytest.raises(ForbiddenFieldError) as exc_info:
        service.update_lead(db_session, FRANK, lead.id, LeadUpdate(notes="changed", lead_cost=Decimal("10")))

    assert exc_info.value.fields == ["lead_cost"]
    assert _stored(db_session, lead.id).notes == "original"
    assert audit.entries_for("leads.lead") == []
    assert audit.entries_for("security.fls", str(lead.id))[0]["after"]["denied_fields"] == ["lead_cost"]


def test_field_rep_updates_notes(db_session: Session, lead: SolarLead) -> None:
    updated = service.update_lead(db_session, FRANK, lead.id, LeadUpdate(notes="called back"))

    assert updated.notes == "called back"
    assert _stored(db_session, lead.id).notes == "called back"


def test_installer_may_only_touch_installer_notes(db_session: Session, lead: SolarLead) -> None:
    updated = service.update_lead(db_session, IAN, lead.id, LeadUpdate(installer_notes="roof ok"))
    assert updated.installer_notes == "roof ok"

    with pytest.raises(ForbiddenFieldError):
        service.update_lead(db_session, IAN, lead.id, LeadUpdate(notes="nope"))


def test_update_out_of_scope_is_not_found(db_session: Session, lead: SolarLead) -> None:
    other_rep = Identity(user_id="u-fr2", role=Role.FIELD_REP, display_name="Greta")

    with pytest.raises(LeadNotFoundError):
        service.update_lead(db_session, other_rep, lead.id, LeadUpdate(notes="x"))
    assert _stored(db_session, lead.id).notes == "original"


def test_empty_update_returns_current_lead_without_events(db_session: Session, lead: SolarLead) -> None:
    current = service.update_lead(db_session, ALICE, lead.id, LeadUpdate())

    assert current.notes == "original"
    assert events.published_events == []
    assert not db_session.in_transaction()


def test_survey_status_update_follows_field_matrix(db_session: Session, lead: SolarLead) -> None:
    updated = service.update_survey_status(db_session, ALICE, lead.id, SurveyStatus.SOLD)
    assert updated.survey_status == SurveyStatus.SOLD.value

    with pytest.raises(ForbiddenFieldError) as exc_info:
        service.update_survey_status(db_session, FRANK, lead.id, SurveyStatus.BAD)
    assert exc_info.value.fields == ["survey_status"]


@pytest.mark.parametrize("identity", [FRANK, IAN])
def test_field_roles_cannot_delete(db_session: Session, lead: SolarLead, identity: Identity) -> None:
    with pytest.raises(AuthorizationError) as exc_info:
        service.delete_lead(db_session, identity, lead.id)

    assert exc_info.value.reason == DenialReason.ROLE_CANNOT_DELETE


def test_account_manager_cannot_delete_outside_scope(db_session: Session, lead: SolarLead) -> None:
    bob = Identity(user_id="u-am2", role=Role.ACCOUNT_MANAGER, display_name="Bob")

    with pytest.raises(LeadNotFoundError):
        service.delete_lead(db_session, bob, lead.id)


def test_delete_removes_lead_and_publishes(db_session: Session, lead: SolarLead) -> None:
    lead_id = lead.id
    service.delete_lead(db_session, ALICE, lead_id)

    db_session.expire_all()
    assert db_session.scalar(select(SolarLead).where(SolarLead.id == lead_id)) is None
    assert events.published_events[-1]["event_type"] == "leads.lead.deleted"
    assert audit.entries_for("leads.lead", str(lead_id))[0]["before"]["customer_name"] == "Jane Doe"
