"""Database models."""

from clinic_scheduling.models.appointments import appointments
from clinic_scheduling.models.references import clinic_services, clinic_staff, clinics, pets

__all__ = [
    "appointments",
    "clinic_services",
    "clinic_staff",
    "clinics",
    "pets",
]
