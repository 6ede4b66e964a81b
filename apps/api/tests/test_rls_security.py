from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leaddesk import audit
from leaddesk.core.database import Base
from leaddesk.expenses.models import Expense
from leaddesk.leads.models import SolarLead
from leaddesk.platform.security.context import Identity, Role
from leaddesk.platform.security.errors import DenialReason, OutOfScopeError
from leaddesk.platform.security.policies import LEAD_RESOURCE, build_default_policy_backend, set_policy_backend
from leaddesk.platform.security.rls import apply_rls_filter, build_scope, validate_rls_read_scope


IDENTITIES = [
    Identity(user_id="u-admin", role=Role.ADMIN, display_name="Ada Admin"),
    Identity(user_id="u-am-1", role=Role.ACCOUNT_MANAGER, display_name="Alice"),
    Identity(user_id="u-am-2", role=Role.ACCOUNT_MANAGER, display_name="Bob"),
    Identity(user_id="u-fr-1", role=Role.FIELD_REP, display_name="Frank"),
    Identity(user_id="u-fr-2", role=Role.FIELD_REP, display_name="alice"),
    Identity(user_id="u-in-1", role=Role.INSTALLER, display_name="Ian"),
    Identity(user_id="u-blank", role=Role.FIELD_REP, display_name="   "),
]


@pytest.fixture(autouse=True)
def reset_policy_backend() -> Generator[None, None, None]:
    set_policy_backend(build_default_policy_backend())
    audit.audit_entries.clear()
    yield
    set_policy_backend(build_default_policy_backend())
    audit.audit_entries.clear()


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


def _seed(session: Session) -> list[SolarLead]:
    attributions = [
        ("Alice", "Frank", "Ian"),
        ("Alice", None, None),
        ("Bob", "Frank", None),
        ("Bob", "Greta", "Ian"),
        (None, "Frank", None),
        ("alice", "", "Ivy"),
        (None, None, None),
    ]
    leads = []
    for index, (account_manager, field_rep, installer) in enumerate(attributions):
        lead = SolarLead(
            created_at=datetime(2024, 1, index + 1, tzinfo=timezone.utc),
            customer_name=f"Customer {index}",
            customer_tel="0100",
            first_line_of_address="1 Road",
            postcode="AB1",
            account_manager=account_manager,
            field_rep=field_rep,
            installer=installer,
        )
        session.add(lead)
        leads.append(lead)
    session.commit()
    return leads


def test_admin_scope_is_unrestricted() -> None:
    scope = build_scope(IDENTITIES[0])

    assert scope.unrestricted
    assert scope.matches({"account_manager": None})


@pytest.mark.parametrize(
    ("role", "attribute"),
    [
        (Role.ACCOUNT_MANAGER, "account_manager"),
        (Role.FIELD_REP, "field_rep"),
        (Role.INSTALLER, "installer"),
    ],
)
def test_scope_matches_on_role_attribution_field(role: Role, attribute: str) -> None:
    scope = build_scope(Identity(user_id="u-1", role=role, display_name="Sam"))

    assert scope.attribute == attribute
    assert scope.matches({attribute: "Sam"})
    assert not scope.matches({attribute: "sam"})
    assert not scope.matches({attribute: None})
    assert not scope.matches({})


def test_missing_identity_and_blank_display_name_deny_everything() -> None:
    assert build_scope(None).denies_all
    assert build_scope(Identity(user_id="u-1", role=Role.FIELD_REP, display_name="")).denies_all
    assert not build_scope(Identity(user_id="u-1", role=Role.FIELD_REP, display_name="")).matches({"field_rep": ""})


def test_sql_clause_and_in_memory_predicate_agree_for_every_identity(db_session: Session) -> None:
    leads = _seed(db_session)

    for identity in IDENTITIES:
        scope = build_scope(identity)
        expected = {lead.id for lead in leads if scope.matches(lead)}
        actual = set(db_session.scalars(apply_rls_filter(select(SolarLead.id), LEAD_RESOURCE, identity)).all())
        assert actual == expected, identity


def test_scope_returns_only_attributed_leads(db_session: Session) -> None:
    _seed(db_session)
    frank = IDENTITIES[3]

    visible = db_session.scalars(apply_rls_filter(select(SolarLead), LEAD_RESOURCE, frank)).all()

    assert len(visible) == 3
    assert all(lead.field_rep == "Frank" for lead in visible)


def test_filter_fails_closed_when_no_entity_has_the_attribution_column(db_session: Session) -> None:
    _seed(db_session)
    db_session.add(
        Expense(
            expense_date=datetime(2024, 1, 1).date(),
            category="Rent",
            description="Office",
            total_amount=100,
            online_amount=50,
            field_amount=50,
        )
    )
    db_session.commit()

    restricted = db_session.scalars(apply_rls_filter(select(Expense), "expenses.expense", IDENTITIES[1])).all()
    unrestricted = db_session.scalars(apply_rls_filter(select(Expense), "expenses.expense", IDENTITIES[0])).all()

    assert restricted == []
    assert len(unrestricted) == 1


def test_validate_read_scope_raises_and_audits_out_of_scope_access() -> None:
    frank = IDENTITIES[3]

    validate_rls_read_scope(LEAD_RESOURCE, {"id": 1, "field_rep": "Frank"}, frank)
    with pytest.raises(OutOfScopeError) as exc_info:
        validate_rls_read_scope(LEAD_RESOURCE, {"id": 2, "field_rep": "Greta"}, frank)

    assert exc_info.value.reason == DenialReason.NOT_IN_SCOPE
    denied = audit.entries_for("security.rls", "2")
    assert len(denied) == 1
    assert denied[0]["action"] == "rls.denied"
    assert denied[0]["after"]["scope_type"] == "field_rep"
