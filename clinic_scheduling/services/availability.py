"""Bookable time slots for a clinic day."""

from datetime import UTC, date, datetime, time, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from clinic_scheduling.schemas.appointments import TimeSlot
from clinic_scheduling.services.appointment_store import AppointmentStore
from clinic_scheduling.services.conflict_detector import intervals_overlap

# Clinic working window (local time) and slot step
WORKDAY_START = time(8, 0)
WORKDAY_END = time(18, 0)
SLOT_STEP = timedelta(minutes=30)


def local_day_bounds(day: date, timezone: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC instants of local midnight at the start and end of ``day``."""
    start = datetime.combine(day, time.min, tzinfo=timezone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone)
    return start.astimezone(UTC), end.astimezone(UTC)


class AvailabilityGenerator:
    """Slots of a fixed duration inside the working window, stepped every ``SLOT_STEP``."""

    def __init__(self, store: AppointmentStore, timezone: ZoneInfo | None = None):
        self.store = store
        self.timezone = timezone or ZoneInfo("UTC")

    def working_window(self, day: date) -> tuple[datetime, datetime]:
        start = datetime.combine(day, WORKDAY_START, tzinfo=self.timezone)
        end = datetime.combine(day, WORKDAY_END, tzinfo=self.timezone)
        return start.astimezone(UTC), end.astimezone(UTC)

    async def available_slots(
        self, clinic_id: UUID, day: date, duration_minutes: int
    ) -> list[TimeSlot]:
        """
        List the candidate slots of ``day`` and whether each is free.

        A slot is taken when it overlaps any pending or confirmed appointment
        of the clinic, including one that began the previous evening; it then
        carries the earliest such appointment's id. A trailing slot that
        would end after the window is not emitted.

        Args:
            clinic_id: Clinic ID
            day: Calendar day, local to the clinic
            duration_minutes: Length of each slot

        Returns:
            Slots in chronological order
        """
        duration = timedelta(minutes=duration_minutes)
        window_start, window_end = self.working_window(day)

        booked = sorted(
            await self.store.find_blocking_for_clinic(clinic_id, window_start, window_end),
            key=lambda appointment: appointment.scheduled_date,
        )

        slots: list[TimeSlot] = []
        slot_start = window_start
        while slot_start + duration <= window_end:
            slot_end = slot_start + duration
            blocking = next(
                (
                    appointment
                    for appointment in booked
                    if intervals_overlap(
                        slot_start, slot_end, appointment.scheduled_date, appointment.end
                    )
                ),
                None,
            )
            slots.append(
                TimeSlot(
                    start=slot_start,
                    end=slot_end,
                    available=blocking is None,
                    appointment_id=blocking.id if blocking else None,
                )
            )
            slot_start += SLOT_STEP

        return slots
