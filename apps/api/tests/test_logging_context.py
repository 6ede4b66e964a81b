from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk.context import reset_correlation_id, set_correlation_id
from leaddesk.core.auth import issue_token
from leaddesk.core.config import get_settings
from leaddesk.core.database import Base, get_db
from leaddesk.logging import CorrelationIdFilter, JsonLogFormatter
from leaddesk.main import app
from leaddesk.middleware.rate_limit import reset_rate_limiter
from leaddesk.platform.security.context import Role
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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    dashboard_metrics_cache.clear()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()
    dashboard_metrics_cache.clear()


@pytest.fixture()
def account(db_session: Session) -> UserAccount:
    user = UserAccount(
        id=uuid.uuid4(),
        email="frank@example.com",
        full_name="Frank",
        role=Role.FIELD_REP.value,
        account_manager_name="Alice",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_id_for_http(
    client: TestClient,
    account: UserAccount,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(
        "/api/leads/4242",
        headers={"X-Correlation-Id": "abc-123", "Authorization": f"Bearer {issue_token(str(account.id))}"},
    )
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "leaddesk.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/leads/{id}"
        and getattr(record, "status_code", None) == 404
        and getattr(record, "user_id", None) == str(account.id)
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_engine_logs_carry_role_and_counts(
    client: TestClient,
    account: UserAccount,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(
        "/api/reports/dashboard/staff-performance",
        params={"date_from": "2024-03-01T00:00:00Z", "date_to": "2024-03-31T00:00:00Z"},
        headers={"X-Correlation-Id": "abc-456", "Authorization": f"Bearer {issue_token(str(account.id))}"},
    )
    assert response.status_code == 200

    records = [record for record in caplog.records if record.name == "leaddesk.reporting"]
    assert any(
        record.getMessage() == "reports.dashboard.staff_performance"
        and getattr(record, "role", None) == "field_rep"
        and getattr(record, "row_count", None) == 0
        and getattr(record, "correlation_id", None) == "abc-456"
        for record in records
    )


def test_json_formatter_emits_known_fields_only() -> None:
    token = set_correlation_id("fmt-1")
    try:
        record = logging.getLogger("leaddesk.leads").makeRecord(
            "leaddesk.leads",
            logging.INFO,
            __file__,
            1,
            "leads.updated",
            None,
            None,
            extra={"lead_id": 7, "fields": ["notes"], "customer_tel": "07000000000"},
        )
        CorrelationIdFilter().filter(record)
        payload = json.loads(JsonLogFormatter().format(record))
    finally:
        reset_correlation_id(token)

    assert payload["msg"] == "leads.updated"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"] == {"lead_id": 7, "fields": ["notes"]}
