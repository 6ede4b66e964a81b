from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk import audit, events
from leaddesk.core.auth import issue_token
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db
from leaddesk.leads.models import SolarLead
from leaddesk.main import app
from leaddesk.middleware.rate_limit import reset_rate_limiter
from leaddesk.platform.security.context import Role
from leaddesk.platform.security.policies import build_default_policy_backend, set_policy_backend
from leaddesk.reporting.dashboard.cache import dashboard_metrics_cache
from leaddesk.users.models import UserAccount


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


@pytest.fixture(autouse=True)
def clear_stubs(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    set_policy_backend(build_default_policy_backend())
    dashboard_metrics_cache.clear()
    audit.audit_entries.clear()
    events.published_events.clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    dashboard_metrics_cache.clear()
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def tokens(db_session: Session) -> dict[str, str]:
    accounts = {
        "admin": UserAccount(email="ada@example.com", full_name="Ada", role=Role.ADMIN.value),
        "manager": UserAccount(email="alice@example.com", full_name="Alice", role=Role.ACCOUNT_MANAGER.value),
        "rep": UserAccount(
            email="frank@example.com",
            full_name="Frank",
            role=Role.FIELD_REP.value,
            account_manager_name="Alice",
        ),
        "installer": UserAccount(email="ian@example.com", full_name="Ian", role=Role.INSTALLER.value),
    }
    for account in accounts.values():
        account.id = uuid.uuid4()
        account.is_active = True
        db_session.add(account)
    db_session.commit()
    return {key: issue_token(str(account.id)) for key, account in accounts.items()}


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(tokens: dict[str, str], who: str, **headers: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {tokens[who]}", **headers}


def _seed_leads(session: Session) -> dict[str, int]:
    leads = {
        "mine": SolarLead(
            customer_name="Jane Doe",
            customer_tel="07000000001",
            first_line_of_address="1 High Street",
            postcode="SW1A 1AA",
            account_manager="Alice",
            field_rep="Frank",
            installer="Ian",
            lead_cost=40,
            notes="original",
            survey_booked_date=date(2024, 3, 10),
        ),
        "other": SolarLead(
            customer_name="John Roe",
            customer_tel="07000000002",
            first_line_of_address="2 Low Road",
            postcode="M1 2AB",
            account_manager="Bob",
            field_rep="Greta",
        ),
    }
    session.add_all(leads.values())
    session.commit()
    return {key: lead.id for key, lead in leads.items()}


def test_missing_or_invalid_token_is_unauthenticated(client: TestClient) -> None:
    missing = client.get("/api/leads")
    invalid = client.get("/api/leads", headers={"Authorization": "Bearer not-a-jwt"})

    for response in (missing, invalid):
        assert response.status_code == 401
        body = response.json()
        assert body["code"] == "unauthenticated"
        assert body["correlation_id"] == response.headers["x-correlation-id"]


def test_token_for_unknown_user_is_unauthenticated(client: TestClient, tokens: dict[str, str]) -> None:
    response = client.get("/api/leads", headers={"Authorization": f"Bearer {issue_token(str(uuid.uuid4()))}"})

    assert response.status_code == 401


def test_me_reports_role_and_editable_fields(client: TestClient, tokens: dict[str, str]) -> None:
    response = client.get("/me", headers=_auth(tokens, "rep"))

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "field_rep"
    assert body["display_name"] == "Frank"
    assert body["editable_lead_fields"] == ["notes", "installer_notes"]


def test_list_is_scoped_to_caller(client: TestClient, db_session: Session, tokens: dict[str, str]) -> None:
    ids = _seed_leads(db_session)

    admin_page = client.get("/api/leads", headers=_auth(tokens, "admin")).json()
    rep_page = client.get("/api/leads", params={"field_rep": "Greta"}, headers=_auth(tokens, "rep")).json()
    installer_page = client.get("/api/leads", headers=_auth(tokens, "installer")).json()

    assert admin_page["total_count"] == 2
    assert rep_page["total_count"] == 0
    assert [row["id"] for row in installer_page["rows"]] == [ids["mine"]]


def test_invalid_page_size_is_validation_error(client: TestClient, tokens: dict[str, str]) -> None:
    response = client.get("/api/leads", params={"page_size": 10}, headers=_auth(tokens, "admin"))

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
    assert response.json()["details"] == {"page_size": 10}


def test_out_of_scope_lead_is_not_found(client: TestClient, db_session: Session, tokens: dict[str, str]) -> None:
    ids = _seed_leads(db_session)

    hidden = client.get(f"/api/leads/{ids['other']}", headers=_auth(tokens, "rep"))
    missing = client.get("/api/leads/9999", headers=_auth(tokens, "rep"))

    assert hidden.status_code == missing.status_code == 404
    assert hidden.json()["code"] == "not_found"
    assert hidden.json()["message"] == missing.json()["message"]


def test_create_lead(client: TestClient, tokens: dict[str, str]) -> None:
    response = client.post(
        "/api/leads",
        json={
            "customer_name": "New Customer",
            "customer_tel": "07000000003",
            "first_line_of_address": "3 Mill Lane",
            "postcode": "LS1 4AP",
            "account_manager": "Alice",
            "lead_source": "Online",
        },
        headers=_auth(tokens, "manager", **{"X-Correlation-Id": "corr-create"}),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "New Lead"
    assert "lead_cost" not in body["editable_fields"]
    assert events.published_events[-1]["correlation_id"] == "corr-create"


def test_create_with_missing_fields_lists_them(client: TestClient, tokens: dict[str, str]) -> None:
    response = client.post("/api/leads", json={"customer_name": "Only Name"}, headers=_auth(tokens, "admin"))

    assert response.status_code == 422
    assert response.json()["details"] == {"missing_fields": ["customer_tel", "first_line_of_address", "postcode"]}


@pytest.mark.parametrize(
    "overrides",
    [
        {"postcode": "SW1A 1AA EXTRA LONG"},
        {"customer_tel": "0" * 65},
        {"lead_cost": "12345678901.00"},
        {"lead_cost": "10.005"},
    ],
)
def test_values_wider_than_columns_are_validation_errors(
    client: TestClient,
    db_session: Session,
    tokens: dict[str, str],
    overrides: dict[str, str],
) -> None:
    payload = {
        "customer_name": "Wide Customer",
        "customer_tel": "07000000004",
        "first_line_of_address": "4 Mill Lane",
        "postcode": "LS1 4AP",
        **overrides,
    }

    response = client.post("/api/leads", json=payload, headers=_auth(tokens, "admin"))

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
    assert db_session.scalar(select(SolarLead.id).where(SolarLead.customer_name == "Wide Customer")) is None


def test_field_rep_create_is_forbidden(client: TestClient, tokens: dict[str, str]) -> None:
    response = client.post(
        "/api/leads",
        json={"customer_name": "X", "customer_tel": "1", "first_line_of_address": "1", "postcode": "1"},
        headers=_auth(tokens, "rep"),
    )

    assert response.status_code == 403
    assert response.json()["details"] == {"reason": "role_cannot_create"}


def test_forbidden_fields_are_listed_and_nothing_changes(
    client: TestClient,
    db_session: Session,
    tokens: dict[str, str],
) -> None:
    ids = _seed_leads(db_session)

    response = client.patch(
        f"/api/leads/{ids['mine']}",
        json={"notes": "updated", "lead_cost": "10.00", "status": "Fall Off"},
        headers=_auth(tokens, "rep"),
    )

    assert response.status_code == 403
    assert response.json()["code"] == "permission_denied"
    assert response.json()["details"] == {"reason": "field_not_writable", "fields": ["lead_cost", "status"]}
    db_session.expire_all()
    assert db_session.scalar(select(SolarLead.notes).where(SolarLead.id == ids["mine"])) == "original"


def test_field_rep_updates_notes(client: TestClient, db_session: Session, tokens: dict[str, str]) -> None:
    ids = _seed_leads(db_session)

    response = client.patch(f"/api/leads/{ids['mine']}", json={"notes": "updated"}, headers=_auth(tokens, "rep"))

    assert response.status_code == 200
    assert response.json()["notes"] == "updated"


def test_clearing_required_field_is_rejected(client: TestClient, db_session: Session, tokens: dict[str, str]) -> None:
    ids = _seed_leads(db_session)

    response = client.patch(f"/api/leads/{ids['mine']}", json={"postcode": ""}, headers=_auth(tokens, "admin"))

    assert response.status_code == 422


def test_survey_status_endpoint(client: TestClient, db_session: Session, tokens: dict[str, str]) -> None:
    ids = _seed_leads(db_session)

    updated = client.patch(
        f"/api/leads/{ids['mine']}/survey-status",
        json={"survey_status": "Sold Survey"},
        headers=_auth(tokens, "manager"),
    )
    refused = client.patch(
        f"/api/leads/{ids['mine']}/survey-status",
        json={"survey_status": "Bad Survey"},
        headers=_auth(tokens, "installer"),
    )

    assert updated.status_code == 200
    assert updated.json()["survey_status"] == "Sold Survey"
    assert refused.status_code == 403
    assert refused.json()["details"]["fields"] == ["survey_status"]


def test_delete_lead(client: TestClient, db_session: Session, tokens: dict[str, str]) -> None:
    ids = _seed_leads(db_session)

    refused = client.delete(f"/api/leads/{ids['mine']}", headers=_auth(tokens, "rep"))
    deleted = client.delete(f"/api/leads/{ids['mine']}", headers=_auth(tokens, "manager"))
    again = client.delete(f"/api/leads/{ids['mine']}", headers=_auth(tokens, "manager"))

    assert refused.status_code == 403
    assert deleted.status_code == 204
    assert again.status_code == 404
