"""Tests for clinic slot generation."""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest

from clinic_scheduling.schemas.appointments import AppointmentStatus, AppointmentType
from clinic_scheduling.services.availability import AvailabilityGenerator

DAY = date(2024, 1, 20)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 20, hour, minute, tzinfo=UTC)


async def _book(store, refs, start, duration=30, status=AppointmentStatus.CONFIRMED, clinic=None):
    return await store.insert(
        {
            "pet_id": refs["pet"],
            "owner_id": refs["owner"],
            "clinic_id": clinic or refs["clinic"],
            "appointment_type": AppointmentType.CONSULTATION,
            "status": status,
            "scheduled_date": start,
            "duration_minutes": duration,
        }
    )


@pytest.mark.asyncio
async def test_empty_day_has_every_slot_free(store, refs):
    slots = await AvailabilityGenerator(store).available_slots(refs["clinic"], DAY, 30)

    assert len(slots) == 20
    assert slots[0].start == at(8)
    assert slots[-1].end == at(18)
    assert all(slot.available for slot in slots)


@pytest.mark.asyncio
async def test_45_minute_slots_never_end_after_window(store, refs):
    slots = await AvailabilityGenerator(store).available_slots(refs["clinic"], DAY, 45)

    assert all(slot.end <= at(18) for slot in slots)
    # 17:30 + 45 would end at 18:15 and is dropped
    assert slots[-1].start == at(17)
    assert slots[-1].end == at(17, 45)
    assert len(slots) == 19


@pytest.mark.asyncio
async def test_slots_are_chronological_and_stepped(store, refs):
    slots = await AvailabilityGenerator(store).available_slots(refs["clinic"], DAY, 60)

    starts = [slot.start for slot in slots]
    assert starts == sorted(starts)
    assert (starts[1] - starts[0]).total_seconds() == 30 * 60


@pytest.mark.asyncio
async def test_slot_containing_booking_is_unavailable(store, refs):
    booked = await _book(store, refs, at(10, 15), duration=15)

    slots = await AvailabilityGenerator(store).available_slots(refs["clinic"], DAY, 45)
    by_start = {slot.start: slot for slot in slots}

    containing = by_start[at(10)]
    assert containing.available is False
    assert containing.appointment_id == booked.id
    assert by_start[at(10, 30)].available is True
    # 09:30-10:15 ends exactly when the booking starts
    assert by_start[at(9, 30)].available is True


@pytest.mark.asyncio
async def test_slot_adjacent_to_booking_is_available(store, refs):
    await _book(store, refs, at(10), duration=30)

    slots = await AvailabilityGenerator(store).available_slots(refs["clinic"], DAY, 30)
    by_start = {slot.start: slot for slot in slots}

    assert by_start[at(9, 30)].available is True
    assert by_start[at(10)].available is False
    assert by_start[at(10, 30)].available is True


@pytest.mark.asyncio
async def test_cancelled_and_other_clinic_bookings_are_ignored(store, refs):
    await _book(store, refs, at(10), status=AppointmentStatus.CANCELLED)
    await _book(store, refs, at(11), clinic=refs["other_clinic"])

    slots = await AvailabilityGenerator(store).available_slots(refs["clinic"], DAY, 30)

    assert all(slot.available for slot in slots)


@pytest.mark.asyncio
async def test_working_window_follows_clinic_timezone(store, refs):
    generator = AvailabilityGenerator(store, ZoneInfo("America/New_York"))

    slots = await generator.available_slots(refs["clinic"], DAY, 30)

    # 08:00 EST is 13:00 UTC in January
    assert slots[0].start == at(13)
    assert slots[-1].end == at(23)


@pytest.mark.asyncio
async def test_overnight_booking_blocks_morning_slots(store, refs):
    # 22:00 the previous evening for 12 hours runs until 10:00
    booked = await _book(
        store, refs, datetime(2024, 1, 19, 22, 0, tzinfo=UTC), duration=720
    )

    slots = await AvailabilityGenerator(store).available_slots(refs["clinic"], DAY, 30)
    by_start = {slot.start: slot for slot in slots}

    assert by_start[at(8)].available is False
    assert by_start[at(8)].appointment_id == booked.id
    assert by_start[at(9, 30)].available is False
    assert by_start[at(10)].available is True
