"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    Table,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB

# Metadata for all tables
metadata = MetaData()

JSONType = JSON().with_variant(JSONB(), "postgresql")

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True),
    # References (owned by the pet, clinic and user domains)
    Column("owner_id", Uuid, nullable=False),
    Column("pet_id", Uuid, nullable=False),
    Column("clinic_id", Uuid, nullable=False),
    Column("staff_id", Uuid, nullable=True),
    Column("service_id", Uuid, nullable=True),
    # Classification
    Column("appointment_type", Text, nullable=False),
    Column("status", Text, nullable=False, server_default="pending"),
    Column("priority", Text, nullable=False, server_default="normal"),
    # Scheduling; scheduled_end is maintained by the store for range queries
    # and the overlap exclusion constraint
    Column("scheduled_date", DateTime(timezone=True), nullable=False),
    Column("duration_minutes", Integer, nullable=False, server_default="30"),
    Column("scheduled_end", DateTime(timezone=True), nullable=False),
    Column("actual_start_time", DateTime(timezone=True), nullable=True),
    Column("actual_end_time", DateTime(timezone=True), nullable=True),
    # Narrative
    Column("notes", Text, nullable=True),
    Column("reason", Text, nullable=True),
    Column("symptoms", Text, nullable=True),
    Column("diagnosis", Text, nullable=True),
    Column("treatment_plan", Text, nullable=True),
    Column("prescriptions", JSONType, nullable=True),
    Column("follow_up_instructions", Text, nullable=True),
    Column("cost", Numeric(10, 2), nullable=True),
    Column("payment_status", Text, nullable=False, server_default="pending"),
    # Modality
    Column("is_telemedicine", Boolean, nullable=False, server_default=text("false")),
    Column("telemedicine_link", Text, nullable=True),
    Column("is_home_visit", Boolean, nullable=False, server_default=text("false")),
    Column("home_visit_address", Text, nullable=True),
    Column("pet_anxiety_mode", Boolean, nullable=False, server_default=text("false")),
    Column("reminder_settings", JSONType, nullable=True),
    # Lifecycle
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    # Constraints
    CheckConstraint("duration_minutes >= 15", name="appointments_duration_check"),
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled', "
        "'no_show', 'rescheduled', 'waiting')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "priority IN ('low', 'normal', 'high', 'urgent', 'emergency')",
        name="appointments_priority_check",
    ),
    CheckConstraint(
        "payment_status IN ('pending', 'paid', 'partial', 'refunded', 'failed')",
        name="appointments_payment_status_check",
    ),
    Index("idx_appointments_pet_status", "pet_id", "status"),
    Index("idx_appointments_clinic_scheduled", "clinic_id", "scheduled_date"),
    Index("idx_appointments_owner_id", "owner_id"),
    Index("idx_appointments_staff_id", "staff_id"),
)
