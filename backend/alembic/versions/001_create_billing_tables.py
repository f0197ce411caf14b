"""Create patient, note and billing tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def upgrade() -> None:
    # Create bill_status enum type
    bill_status_enum = postgresql.ENUM(
        "pending",
        "submitted",
        name="bill_status",
        create_type=False,
    )
    bill_status_enum.create(op.get_bind(), checkfirst=True)

    # Create patients table
    op.create_table(
        "patients",
        *_base_columns(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("mrn", sa.String(100), nullable=True),
        sa.Column("dob", sa.Date(), nullable=True),
        sa.Column("facility", sa.String(255), nullable=True),
    )
    op.create_index("ix_patients_created_at", "patients", ["created_at"])
    op.create_index("ix_patients_user_id", "patients", ["user_id"])
    op.create_index("ix_patients_mrn", "patients", ["mrn"])

    # Create clinical_notes table
    op.create_table(
        "clinical_notes",
        *_base_columns(),
        sa.Column(
            "patient_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("patients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("note_type", sa.String(100), nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
    )
    op.create_index("ix_clinical_notes_created_at", "clinical_notes", ["created_at"])
    op.create_index("ix_clinical_notes_patient_id", "clinical_notes", ["patient_id"])
    op.create_index("ix_clinical_notes_user_id", "clinical_notes", ["user_id"])

    # Create billing_records table (note-based bills)
    op.create_table(
        "billing_records",
        *_base_columns(),
        sa.Column(
            "note_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("clinical_notes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("status", bill_status_enum, nullable=False, server_default="pending"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("facility", sa.String(255), nullable=True),
        sa.Column("rvu", sa.Float(), nullable=False, server_default="0"),
        sa.Column("cpt_codes", postgresql.ARRAY(sa.String(10)), nullable=False, server_default="{}"),
        sa.Column("icd10_codes", postgresql.ARRAY(sa.String(10)), nullable=False, server_default="{}"),
        sa.Column("em_level", sa.String(10), nullable=True),
        sa.Column("mdm_complexity", sa.String(50), nullable=True),
        sa.Column("denial_risk_score", sa.Integer(), nullable=True),
        sa.Column("denial_risk_factors", postgresql.JSONB(), nullable=True),
    )
    op.create_index("ix_billing_records_created_at", "billing_records", ["created_at"])
    op.create_index("ix_billing_records_note_id", "billing_records", ["note_id"])
    op.create_index("ix_billing_records_user_id", "billing_records", ["user_id"])
    op.create_index("ix_billing_records_status", "billing_records", ["status"])
    op.create_index("ix_billing_records_facility", "billing_records", ["facility"])

    # Create bills table (manual bills)
    op.create_table(
        "bills",
        *_base_columns(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("patient_name", sa.String(255), nullable=False),
        sa.Column("patient_mrn", sa.String(100), nullable=True),
        sa.Column("patient_dob", sa.Date(), nullable=True),
        sa.Column("date_of_service", sa.Date(), nullable=False),
        sa.Column("facility", sa.String(255), nullable=True),
        sa.Column("cpt_code", sa.String(10), nullable=False),
        sa.Column("cpt_description", sa.Text(), nullable=True),
        sa.Column("modifiers", postgresql.ARRAY(sa.String(10)), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=True),
        sa.Column("rvu", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", bill_status_enum, nullable=False, server_default="pending"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_bills_created_at", "bills", ["created_at"])
    op.create_index("ix_bills_user_id", "bills", ["user_id"])
    op.create_index("ix_bills_status", "bills", ["status"])
    op.create_index("ix_bills_facility", "bills", ["facility"])

    # Create provider_profiles table
    op.create_table(
        "provider_profiles",
        *_base_columns(),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("specialty", sa.String(255), nullable=True),
    )
    op.create_index("ix_provider_profiles_created_at", "provider_profiles", ["created_at"])
    op.create_index("ix_provider_profiles_user_id", "provider_profiles", ["user_id"], unique=True)


def downgrade() -> None:
    op.drop_table("provider_profiles")
    op.drop_table("bills")
    op.drop_table("billing_records")
    op.drop_table("clinical_notes")
    op.drop_table("patients")

    # Drop enum types
    op.execute("DROP TYPE IF EXISTS bill_status")
