"""Add dashboard record tables (partners, external partners, personnel, deliverables, financials, compliance).

Revision ID: 20260301100000
Revises: 20260301000000
Create Date: 2026-03-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20260301100000"
down_revision: Union[str, None] = "20260301000000"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _record_columns() -> list[sa.Column]:
    """id and timestamps shared by every dashboard record table."""
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "partners",
        *_record_columns(),
        sa.Column("partner_id", sa.String(length=64), nullable=True),
        sa.Column("partner_name", sa.String(length=255), nullable=False),
        sa.Column("partner_type", sa.String(length=128), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=False),
        sa.Column("contact_phone", sa.String(length=64), nullable=True),
        sa.Column("contract_status", sa.String(length=64), nullable=True),
        sa.Column("contract_start_date", sa.String(length=40), nullable=True),
        sa.Column("commencement_date", sa.String(length=40), nullable=True),
        sa.Column("contract_duration", sa.String(length=128), nullable=True),
        sa.Column("contract_value", sa.Float(), nullable=True),
        sa.Column("regions_of_operation", sa.Text(), nullable=True),
        sa.Column("key_personnel", sa.Text(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_partners_partner_id"), "partners", ["partner_id"], unique=True)
    op.create_index(op.f("ix_partners_partner_name"), "partners", ["partner_name"], unique=False)
    op.create_index(op.f("ix_partners_contact_email"), "partners", ["contact_email"], unique=False)

    op.create_table(
        "external_partners",
        *_record_columns(),
        sa.Column("partner_name", sa.String(length=255), nullable=False),
        sa.Column("partner_type", sa.String(length=128), nullable=True),
        sa.Column("key_contact", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.String(length=320), nullable=True),
        sa.Column("contact_phone", sa.String(length=64), nullable=True),
        sa.Column("date_initiated", sa.String(length=40), nullable=True),
        sa.Column("current_stage", sa.String(length=128), nullable=True),
        sa.Column("key_objectives", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=True),
        sa.Column("pending_tasks", sa.Text(), nullable=True),
        sa.Column("responsible", sa.String(length=255), nullable=True),
        sa.Column("deadline", sa.String(length=40), nullable=True),
        sa.Column("notes_blockers", sa.Text(), nullable=True),
        sa.Column("estimated_value", sa.Float(), nullable=True),
        sa.Column("priority", sa.String(length=32), nullable=True),
        sa.Column("region", sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_external_partners_partner_name"),
        "external_partners",
        ["partner_name"],
        unique=False,
    )

    op.create_table(
        "personnel",
        *_record_columns(),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("job_title", sa.String(length=255), nullable=True),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("email_address", sa.String(length=320), nullable=False),
        sa.Column("phone_number", sa.String(length=64), nullable=True),
        sa.Column("partner_id", sa.String(length=64), nullable=True),
        sa.Column("partner_name", sa.String(length=255), nullable=True),
        sa.Column("partner_type", sa.String(length=128), nullable=True),
        sa.Column("work_status", sa.String(length=64), nullable=True),
        sa.Column("responsibilities", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_personnel_full_name"), "personnel", ["full_name"], unique=False)
    op.create_index(op.f("ix_personnel_email_address"), "personnel", ["email_address"], unique=True)
    op.create_index(op.f("ix_personnel_partner_id"), "personnel", ["partner_id"], unique=False)

    op.create_table(
        "deliverables",
        *_record_columns(),
        sa.Column("partner_id", sa.String(length=64), nullable=True),
        sa.Column("partner_name", sa.String(length=255), nullable=True),
        sa.Column("deliverable_number", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("milestone_date", sa.String(length=40), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=False, server_default="pending"),
        sa.Column("actual_submission", sa.String(length=40), nullable=True),
        sa.Column("approval_date", sa.String(length=40), nullable=True),
        sa.Column("payment_percentage", sa.String(length=32), nullable=True),
        sa.Column("payment_amount", sa.Float(), nullable=True),
        sa.Column("payment_status", sa.String(length=64), nullable=True),
        sa.Column("priority", sa.String(length=32), nullable=True),
        sa.Column("assigned_to", sa.String(length=255), nullable=True),
        sa.Column("imported_from_excel", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("imported_at", sa.String(length=40), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_deliverables_partner_id"), "deliverables", ["partner_id"], unique=False)

    op.create_table(
        "financial_records",
        *_record_columns(),
        sa.Column("partner_id", sa.String(length=64), nullable=True),
        sa.Column("partner_name", sa.String(length=255), nullable=True),
        sa.Column("contract_value", sa.Float(), nullable=True),
        sa.Column("budget_allocated", sa.Float(), nullable=True),
        sa.Column("actual_spent", sa.Float(), nullable=True),
        sa.Column("q1_actual_paid", sa.Float(), nullable=True),
        sa.Column("q2_actual_paid", sa.Float(), nullable=True),
        sa.Column("q3_actual_paid", sa.Float(), nullable=True),
        sa.Column("q4_actual_paid", sa.Float(), nullable=True),
        sa.Column("total_disbursed", sa.Float(), nullable=True),
        sa.Column("payment_schedule", sa.String(length=255), nullable=True),
        sa.Column("last_payment_date", sa.String(length=40), nullable=True),
        sa.Column("next_payment_due", sa.String(length=40), nullable=True),
        sa.Column("financial_status", sa.String(length=64), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_financial_records_partner_id"), "financial_records", ["partner_id"], unique=False
    )

    op.create_table(
        "compliance_records",
        *_record_columns(),
        sa.Column("partner_id", sa.String(length=64), nullable=True),
        sa.Column(
            "partner_name", sa.String(length=255), nullable=False, server_default="Unknown Partner"
        ),
        sa.Column("requirement", sa.Text(), nullable=False),
        sa.Column(
            "compliance_type", sa.String(length=64), nullable=False, server_default="reporting"
        ),
        sa.Column("reporting_period", sa.String(length=64), nullable=True),
        sa.Column("due_date", sa.String(length=40), nullable=True),
        sa.Column("submission_date", sa.String(length=40), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=True),
        sa.Column("audit_status", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_compliance_records_partner_id"), "compliance_records", ["partner_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_compliance_records_partner_id"), table_name="compliance_records")
    op.drop_table("compliance_records")
    op.drop_index(op.f("ix_financial_records_partner_id"), table_name="financial_records")
    op.drop_table("financial_records")
    op.drop_index(op.f("ix_deliverables_partner_id"), table_name="deliverables")
    op.drop_table("deliverables")
    op.drop_index(op.f("ix_personnel_partner_id"), table_name="personnel")
    op.drop_index(op.f("ix_personnel_email_address"), table_name="personnel")
    op.drop_index(op.f("ix_personnel_full_name"), table_name="personnel")
    op.drop_table("personnel")
    op.drop_index(op.f("ix_external_partners_partner_name"), table_name="external_partners")
    op.drop_table("external_partners")
    op.drop_index(op.f("ix_partners_contact_email"), table_name="partners")
    op.drop_index(op.f("ix_partners_partner_name"), table_name="partners")
    op.drop_index(op.f("ix_partners_partner_id"), table_name="partners")
    op.drop_table("partners")
