"""Booking and cancellation timing rules."""

from datetime import datetime, timedelta

from clinic_scheduling.schemas.appointments import as_utc
from clinic_scheduling.schemas.policy import PolicyConfig, PolicyDecision
from clinic_scheduling.services.policy_config import PolicyConfigCache


class SchedulingPolicyGuard:
    """Evaluates the current policy; values are read from the cache on each call."""

    def __init__(self, policy_cache: PolicyConfigCache):
        self.policy_cache = policy_cache

    @property
    def policy(self) -> PolicyConfig:
        return self.policy_cache.get()

    def can_book(self, proposed_start: datetime, now: datetime) -> PolicyDecision:
        """Reject bookings starting sooner than the lead time from ``now``."""
        lead_time = self.policy.booking_lead_time_hours
        earliest = as_utc(now) + timedelta(hours=lead_time)
        if as_utc(proposed_start) < earliest:
            return PolicyDecision(
                ok=False,
                reason=f"Appointments must be booked at least {lead_time} hours in advance",
            )
        return PolicyDecision(ok=True)

    def can_cancel(self, appointment_start: datetime, now: datetime) -> PolicyDecision:
        """Reject cancellations inside the window before the appointment."""
        window = self.policy.cancellation_window_hours
        deadline = as_utc(appointment_start) - timedelta(hours=window)
        if as_utc(now) > deadline:
            return PolicyDecision(
                ok=False,
                reason=f"Appointments must be cancelled at least {window} hours in advance",
            )
        return PolicyDecision(ok=True)

    def within_daily_cap(self, current_count: int) -> PolicyDecision:
        """Reject a booking once the clinic's day is full."""
        cap = self.policy.max_appointments_per_day
        if current_count >= cap:
            return PolicyDecision(
                ok=False,
                reason=f"The clinic has reached its limit of {cap} appointments for this day",
            )
        return PolicyDecision(ok=True)
