"""Tests for pet double-booking detection."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from clinic_scheduling.schemas.appointments import AppointmentStatus, AppointmentType
from clinic_scheduling.services.appointment_store import SqlAppointmentStore
from clinic_scheduling.services.conflict_detector import ConflictDetector, intervals_overlap

T10 = datetime(2024, 1, 20, 10, 0, tzinfo=UTC)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 20, hour, minute, tzinfo=UTC)


def test_intervals_overlap_is_symmetric():
    assert intervals_overlap(at(10), at(10, 30), at(10, 15), at(10, 45))
    assert intervals_overlap(at(10, 15), at(10, 45), at(10), at(10, 30))


def test_adjacent_intervals_do_not_overlap():
    assert not intervals_overlap(at(10), at(10, 30), at(10, 30), at(11))
    assert not intervals_overlap(at(10, 30), at(11), at(10), at(10, 30))


def test_containment_overlaps():
    assert intervals_overlap(at(9), at(12), at(10), at(10, 30))
    assert intervals_overlap(at(10), at(10, 30), at(9), at(12))


async def _book(store: SqlAppointmentStore, refs, start, duration=30, status=AppointmentStatus.PENDING):
    return await store.insert(
        {
            "pet_id": refs["pet"],
            "owner_id": refs["owner"],
            "clinic_id": refs["clinic"],
            "appointment_type": AppointmentType.CONSULTATION,
            "status": status,
            "scheduled_date": start,
            "duration_minutes": duration,
        }
    )


@pytest.mark.asyncio
async def test_no_history_means_no_conflict(store, refs):
    result = await ConflictDetector(store).has_conflict(refs["pet"], at(10), at(10, 30))

    assert result.has_conflict is False
    assert result.conflicts == []
    assert result.first is None


@pytest.mark.asyncio
async def test_overlapping_booking_conflicts(store, refs):
    existing = await _book(store, refs, T10)

    result = await ConflictDetector(store).has_conflict(refs["pet"], at(10, 15), at(10, 45))

    assert result.has_conflict is True
    assert result.first.id == existing.id


@pytest.mark.asyncio
async def test_adjacent_booking_does_not_conflict(store, refs):
    await _book(store, refs, T10)

    result = await ConflictDetector(store).has_conflict(refs["pet"], at(10, 30), at(11))

    assert result.has_conflict is False


@pytest.mark.asyncio
async def test_conflicts_are_returned_in_chronological_order(store, refs):
    later = await _book(store, refs, at(11))
    earlier = await _book(store, refs, at(10))

    result = await ConflictDetector(store).has_conflict(refs["pet"], at(9), at(13))

    assert [a.id for a in result.conflicts] == [earlier.id, later.id]
    assert result.first.id == earlier.id


@pytest.mark.asyncio
async def test_excluded_appointment_is_ignored(store, refs):
    existing = await _book(store, refs, T10)

    result = await ConflictDetector(store).has_conflict(
        refs["pet"], at(10, 15), at(10, 45), exclude_id=existing.id
    )

    assert result.has_conflict is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.WAITING,
        AppointmentStatus.RESCHEDULED,
    ],
)
async def test_non_blocking_statuses_do_not_conflict(store, refs, status):
    await _book(store, refs, T10, status=status)

    result = await ConflictDetector(store).has_conflict(refs["pet"], at(10), at(10, 30))

    assert result.has_conflict is False


@pytest.mark.asyncio
async def test_confirmed_booking_conflicts(store, refs):
    await _book(store, refs, T10, status=AppointmentStatus.CONFIRMED)

    result = await ConflictDetector(store).has_conflict(refs["pet"], at(9, 45), at(10, 15))

    assert result.has_conflict is True


@pytest.mark.asyncio
async def test_other_pets_do_not_conflict(store, refs):
    await _book(store, refs, T10)

    result = await ConflictDetector(store).has_conflict(uuid4(), at(10), at(10, 30))

    assert result.has_conflict is False


@pytest.mark.asyncio
async def test_long_earlier_appointment_reaching_into_interval_conflicts(store, refs):
    await _book(store, refs, at(8), duration=180)

    result = await ConflictDetector(store).has_conflict(
        refs["pet"], at(10, 45), at(10, 45) + timedelta(minutes=30)
    )

    assert result.has_conflict is True
