"""Scheduling policy schemas."""

from pydantic import BaseModel, Field

from clinic_scheduling.schemas.appointments import MIN_DURATION_MINUTES


class PolicyConfig(BaseModel):
    """Clinic-wide appointment policy, maintained by clinic administrators."""

    booking_lead_time_hours: int = Field(24, ge=0)
    cancellation_window_hours: int = Field(24, ge=0)
    default_duration_minutes: int = Field(30, ge=MIN_DURATION_MINUTES)
    max_appointments_per_day: int = Field(50, ge=1)


class PolicyDecision(BaseModel):
    """Outcome of a policy check."""

    ok: bool
    reason: str | None = None
