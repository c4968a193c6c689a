"""Create appointments table with per-pet overlap constraint

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create appointments table."""
    op.create_table(
        "appointments",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pet_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("staff_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("appointment_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("priority", sa.Text(), server_default=sa.text("'normal'"), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("scheduled_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actual_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("symptoms", sa.Text(), nullable=True),
        sa.Column("diagnosis", sa.Text(), nullable=True),
        sa.Column("treatment_plan", sa.Text(), nullable=True),
        sa.Column("prescriptions", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("follow_up_instructions", sa.Text(), nullable=True),
        sa.Column("cost", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column(
            "payment_status", sa.Text(), server_default=sa.text("'pending'"), nullable=False
        ),
        sa.Column("is_telemedicine", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("telemedicine_link", sa.Text(), nullable=True),
        sa.Column("is_home_visit", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("home_visit_address", sa.Text(), nullable=True),
        sa.Column(
            "pet_anxiety_mode", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("reminder_settings", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("duration_minutes >= 15", name="appointments_duration_check"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled', "
            "'no_show', 'rescheduled', 'waiting')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "priority IN ('low', 'normal', 'high', 'urgent', 'emergency')",
            name="appointments_priority_check",
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'paid', 'partial', 'refunded', 'failed')",
            name="appointments_payment_status_check",
        ),
        sa.CheckConstraint(
            "scheduled_end > scheduled_date", name="appointments_interval_check"
        ),
    )

    # Create indexes
    op.create_index("idx_appointments_pet_status", "appointments", ["pet_id", "status"])
    op.create_index(
        "idx_appointments_clinic_scheduled", "appointments", ["clinic_id", "scheduled_date"]
    )
    op.create_index("idx_appointments_owner_id", "appointments", ["owner_id"])
    op.create_index("idx_appointments_staff_id", "appointments", ["staff_id"])

    # A pet never holds two overlapping pending/confirmed appointments
    op.execute('CREATE EXTENSION IF NOT EXISTS "btree_gist"')
    op.execute(
        """
        ALTER TABLE appointments
        ADD CONSTRAINT appointments_pet_no_overlap
        EXCLUDE USING gist (
            pet_id WITH =,
            tstzrange(scheduled_date, scheduled_end, '[)') WITH &&
        )
        WHERE (status IN ('pending', 'confirmed') AND is_active)
    """
    )


def downgrade() -> None:
    """Drop appointments table."""
    op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_pet_no_overlap")
    op.drop_table("appointments")
