"""Day/staff calendar grouping."""

from collections.abc import Iterable, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo

from clinic_scheduling.schemas.appointments import (
    Appointment,
    CalendarDay,
    CalendarStaffGroup,
)


class CalendarViewBuilder:
    """
    Groups appointments by local day, then by staff member.

    Days are ordered by their ``YYYY-MM-DD`` key and staff groups by staff id,
    with unassigned appointments last. Within a group appointments keep the
    order they were given in.
    """

    def __init__(self, timezone: ZoneInfo | None = None):
        self.timezone = timezone or ZoneInfo("UTC")

    def day_key(self, appointment: Appointment) -> str:
        return appointment.scheduled_date.astimezone(self.timezone).date().isoformat()

    def build(
        self,
        appointments: Iterable[Appointment],
        staff_names: Mapping[UUID, str] | None = None,
    ) -> list[CalendarDay]:
        staff_names = staff_names or {}
        grouped: dict[str, dict[UUID | None, list[Appointment]]] = {}
        for appointment in appointments:
            day = grouped.setdefault(self.day_key(appointment), {})
            day.setdefault(appointment.staff_id, []).append(appointment)

        days: list[CalendarDay] = []
        for day_key in sorted(grouped):
            groups = grouped[day_key]
            staff_order = sorted(
                groups,
                key=lambda staff_id: (staff_id is None, str(staff_id) if staff_id else ""),
            )
            days.append(
                CalendarDay(
                    date=day_key,
                    staff=[
                        CalendarStaffGroup(
                            staff_id=staff_id,
                            staff_name=staff_names.get(staff_id) if staff_id else None,
                            appointments=groups[staff_id],
                        )
                        for staff_id in staff_order
                    ],
                )
            )
        return days
