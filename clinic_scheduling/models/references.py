"""
Read models for the records scheduling depends on.

Pets, clinics, staff and services are owned and written by other parts of the
clinic platform; scheduling only reads them to validate references.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, MetaData, Table, Text, Uuid, text

metadata = MetaData()

pets = Table(
    "pets",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("owner_id", Uuid, nullable=False, index=True),
    Column("name", Text, nullable=False),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
)

clinics = Table(
    "clinics",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("name", Text, nullable=False),
    Column("timezone", Text, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
)

clinic_staff = Table(
    "clinic_staff",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("clinic_id", Uuid, ForeignKey("clinics.id"), nullable=False, index=True),
    Column("name", Text, nullable=False),
    Column("role", Text, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
)

clinic_services = Table(
    "clinic_services",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("clinic_id", Uuid, ForeignKey("clinics.id"), nullable=False, index=True),
    Column("name", Text, nullable=False),
    Column("duration_minutes", Integer, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
)
