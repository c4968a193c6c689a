"""Double-booking detection for pets."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from clinic_scheduling.schemas.appointments import Appointment, as_utc
from clinic_scheduling.services.appointment_store import AppointmentStore


def intervals_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """
    Check whether two half-open intervals ``[start, end)`` overlap.

    Intervals that merely touch (one ends exactly when the other starts) do
    not overlap.
    """
    return start_a < end_b and start_b < end_a


@dataclass
class ConflictResult:
    """Outcome of a conflict check; ``conflicts`` is in chronological order."""

    has_conflict: bool
    conflicts: list[Appointment] = field(default_factory=list)

    @property
    def first(self) -> Appointment | None:
        return self.conflicts[0] if self.conflicts else None


class ConflictDetector:
    """Checks a proposed interval against a pet's blocking appointments."""

    def __init__(self, store: AppointmentStore):
        self.store = store

    async def has_conflict(
        self,
        pet_id: UUID,
        start: datetime,
        end: datetime,
        exclude_id: UUID | None = None,
    ) -> ConflictResult:
        """
        Find the pet's pending or confirmed appointments overlapping ``[start, end)``.

        Args:
            pet_id: Pet ID
            start: Proposed start
            end: Proposed end
            exclude_id: Appointment being moved, ignored in the check

        Returns:
            ConflictResult with every overlapping appointment
        """
        start, end = as_utc(start), as_utc(end)
        candidates = await self.store.find_blocking_for_pet(
            pet_id, starts_before=end, exclude_id=exclude_id
        )
        conflicts = sorted(
            (
                appointment
                for appointment in candidates
                if intervals_overlap(start, end, appointment.scheduled_date, appointment.end)
            ),
            key=lambda appointment: appointment.scheduled_date,
        )
        return ConflictResult(has_conflict=bool(conflicts), conflicts=conflicts)
