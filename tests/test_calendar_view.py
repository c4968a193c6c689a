"""Tests for the day/staff calendar grouping."""

from datetime import UTC, datetime
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from clinic_scheduling.schemas.appointments import Appointment, AppointmentType
from clinic_scheduling.services.calendar_view import CalendarViewBuilder

STAFF_A = UUID("00000000-0000-0000-0000-00000000000a")
STAFF_B = UUID("00000000-0000-0000-0000-00000000000b")


def make(start: datetime, staff_id: UUID | None = None) -> Appointment:
    return Appointment(
        id=uuid4(),
        pet_id=uuid4(),
        owner_id=uuid4(),
        clinic_id=uuid4(),
        staff_id=staff_id,
        appointment_type=AppointmentType.CONSULTATION,
        scheduled_date=start,
    )


def test_empty_input_builds_empty_calendar():
    assert CalendarViewBuilder().build([]) == []


def test_groups_by_day_then_staff_with_unassigned_last():
    first = make(datetime(2024, 1, 21, 9, tzinfo=UTC), None)
    second = make(datetime(2024, 1, 20, 11, tzinfo=UTC), STAFF_B)
    third = make(datetime(2024, 1, 20, 9, tzinfo=UTC), STAFF_A)
    fourth = make(datetime(2024, 1, 21, 10, tzinfo=UTC), STAFF_A)

    days = CalendarViewBuilder().build(
        [first, second, third, fourth], {STAFF_A: "Dr. Alvarez", STAFF_B: "Dr. Okafor"}
    )

    assert [day.date for day in days] == ["2024-01-20", "2024-01-21"]
    assert [group.staff_id for group in days[0].staff] == [STAFF_A, STAFF_B]
    assert [group.staff_id for group in days[1].staff] == [STAFF_A, None]
    assert days[0].staff[0].staff_name == "Dr. Alvarez"
    assert days[1].staff[1].staff_name is None
    assert days[1].staff[1].appointments == [first]


def test_appointments_keep_input_order_within_group():
    late = make(datetime(2024, 1, 20, 15, tzinfo=UTC), STAFF_A)
    early = make(datetime(2024, 1, 20, 9, tzinfo=UTC), STAFF_A)

    days = CalendarViewBuilder().build([late, early])

    assert days[0].staff[0].appointments == [late, early]


def test_grouping_is_independent_of_input_order():
    items = [
        make(datetime(2024, 1, 22, 9, tzinfo=UTC), STAFF_B),
        make(datetime(2024, 1, 20, 9, tzinfo=UTC), None),
        make(datetime(2024, 1, 20, 10, tzinfo=UTC), STAFF_A),
    ]

    forward = CalendarViewBuilder().build(items)
    backward = CalendarViewBuilder().build(list(reversed(items)))

    def shape(days):
        return [(day.date, [group.staff_id for group in day.staff]) for day in days]

    assert shape(forward) == shape(backward)


def test_day_key_uses_clinic_timezone():
    # 03:00 UTC on the 21st is still the 20th in New York
    late_evening = make(datetime(2024, 1, 21, 3, tzinfo=UTC), STAFF_A)

    days = CalendarViewBuilder(ZoneInfo("America/New_York")).build([late_evening])

    assert days[0].date == "2024-01-20"
