"""create user accounts, solar leads and expenses

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "user_account",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("account_manager_name", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_user_account_email"),
        sa.CheckConstraint(
            "role IN ('admin', 'account_manager', 'field_rep', 'installer')",
            name="ck_user_account_role",
        ),
    )

    op.create_table(
        "solar_lead",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("customer_tel", sa.String(length=64), nullable=False),
        sa.Column("alternative_tel", sa.String(length=64), nullable=True),
        sa.Column("customer_email", sa.Text(), nullable=True),
        sa.Column("first_line_of_address", sa.Text(), nullable=False),
        sa.Column("postcode", sa.String(length=16), nullable=False),
        sa.Column("property_type", sa.String(length=64), nullable=True),
        sa.Column("monthly_electricity_costs", sa.String(length=64), nullable=True),
        sa.Column("lead_source", sa.String(length=16), nullable=True),
        sa.Column("account_manager", sa.Text(), nullable=True),
        sa.Column("field_rep", sa.Text(), nullable=True),
        sa.Column("installer", sa.Text(), nullable=True),
        sa.Column("installer_assigned_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="New Lead"),
        sa.Column("survey_status", sa.String(length=32), nullable=True),
        sa.Column("survey_booked_date", sa.Date(), nullable=True),
        sa.Column("survey_complete_date", sa.Date(), nullable=True),
        sa.Column("install_booked_date", sa.Date(), nullable=True),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("fall_off_stage", sa.String(length=64), nullable=True),
        sa.Column("fall_off_reason", sa.Text(), nullable=True),
        sa.Column("payment_model", sa.String(length=64), nullable=True),
        sa.Column("lead_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("lead_revenue", sa.Numeric(12, 2), nullable=True),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("commission_paid", sa.String(length=16), nullable=True),
        sa.Column("commission_paid_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("installer_notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_solar_lead_created_at", "solar_lead", ["created_at"])
    op.create_index("ix_solar_lead_account_manager", "solar_lead", ["account_manager"])
    op.create_index("ix_solar_lead_field_rep", "solar_lead", ["field_rep"])
    op.create_index("ix_solar_lead_installer", "solar_lead", ["installer"])

    op.create_table(
        "expense",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("online_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("field_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "total_amount >= 0 AND online_amount >= 0 AND field_amount >= 0",
            name="ck_expense_amounts_non_negative",
        ),
    )
    op.create_index("ix_expense_expense_date", "expense", ["expense_date"])


def downgrade() -> None:
    op.drop_index("ix_expense_expense_date", table_name="expense")
    op.drop_table("expense")

    op.drop_index("ix_solar_lead_installer", table_name="solar_lead")
    op.drop_index("ix_solar_lead_field_rep", table_name="solar_lead")
    op.drop_index("ix_solar_lead_account_manager", table_name="solar_lead")
    op.drop_index("ix_solar_lead_created_at", table_name="solar_lead")
    op.drop_table("solar_lead")

    op.drop_table("user_account")
