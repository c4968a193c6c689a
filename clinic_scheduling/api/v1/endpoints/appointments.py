"""Appointment endpoints."""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_scheduling.dependencies import CurrentActor, Scheduling
from clinic_scheduling.schemas.appointments import (
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentPriority,
    AppointmentReschedule,
    AppointmentStats,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentType,
    AppointmentUpdate,
    CalendarViewResponse,
    CancellationResponse,
    TimeSlot,
)

router = APIRouter()


@router.post(
    "/",
    response_model=Appointment,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    service: Scheduling,
) -> Appointment:
    """
    Book an appointment for one of the caller's pets.

    Args:
        data: Appointment creation data
        actor: Authenticated caller
        service: Scheduling service

    Returns:
        Created appointment
    """
    return await service.create_appointment(data, actor)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    service: Scheduling,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    appointment_type: AppointmentType | None = Query(None),
    priority: AppointmentPriority | None = Query(None),
    clinic_id: UUID | None = Query(None),
    staff_id: UUID | None = Query(None),
    pet_id: UUID | None = Query(None),
    owner_id: UUID | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    is_telemedicine: bool | None = Query(None),
    is_home_visit: bool | None = Query(None),
    search: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List the appointments visible to the caller, oldest first.

    Owners only see their own appointments and clinic personnel only their
    clinic's.
    """
    filters = AppointmentFilters(
        status=status_filter,
        appointment_type=appointment_type,
        priority=priority,
        clinic_id=clinic_id,
        staff_id=staff_id,
        pet_id=pet_id,
        owner_id=owner_id,
        date_from=date_from,
        date_to=date_to,
        is_telemedicine=is_telemedicine,
        is_home_visit=is_home_visit,
        search=search,
    )
    return await service.list_appointments(filters, actor, page=page, limit=limit)


@router.get(
    "/upcoming",
    response_model=list[Appointment],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List upcoming appointments",
)
async def upcoming_appointments(
    actor: CurrentActor,
    service: Scheduling,
    days: int = Query(7, ge=1, le=90),
) -> list[Appointment]:
    """List the caller's appointments in the next ``days`` days."""
    return await service.upcoming_appointments(actor, days)


@router.get(
    "/today",
    response_model=list[Appointment],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List today's appointments",
)
async def today_appointments(
    actor: CurrentActor,
    service: Scheduling,
    clinic_id: UUID | None = Query(None),
) -> list[Appointment]:
    """List the caller's appointments scheduled for today in the clinic timezone."""
    return await service.today_appointments(actor, clinic_id)


@router.get(
    "/stats",
    response_model=AppointmentStats,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointment statistics",
)
async def appointment_stats(actor: CurrentActor, service: Scheduling) -> AppointmentStats:
    return await service.get_stats(actor)


@router.get(
    "/calendar",
    response_model=CalendarViewResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Calendar view",
)
async def calendar_view(
    actor: CurrentActor,
    service: Scheduling,
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    clinic_id: UUID | None = Query(None),
    staff_id: UUID | None = Query(None),
) -> CalendarViewResponse:
    """
    Appointments in a date range grouped by day, then by staff member.

    Args:
        actor: Authenticated caller (clinic personnel)
        service: Scheduling service
        date_from: Range start (required)
        date_to: Range end (required)
        clinic_id: Filter by clinic
        staff_id: Filter by staff member

    Returns:
        Calendar days in ascending order
    """
    filters = AppointmentFilters(
        date_from=date_from,
        date_to=date_to,
        clinic_id=clinic_id,
        staff_id=staff_id,
    )
    return await service.calendar_view(filters, actor)


@router.get(
    "/available-slots/{clinic_id}",
    response_model=list[TimeSlot],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Available time slots",
)
async def available_slots(
    clinic_id: UUID,
    actor: CurrentActor,
    service: Scheduling,
    day: date = Query(..., alias="date"),
    duration: int | None = Query(None, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES),
) -> list[TimeSlot]:
    """
    List the clinic's slots for a day and whether each is free.

    Args:
        clinic_id: Clinic ID
        actor: Authenticated caller
        service: Scheduling service
        day: Calendar day (``YYYY-MM-DD``) in the clinic's timezone
        duration: Slot length in minutes, the policy default if omitted

    Returns:
        Slots in chronological order
    """
    return await service.available_slots(clinic_id, day, duration)


@router.get(
    "/{appointment_id}",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: Scheduling,
) -> Appointment:
    """
    Get a specific appointment by ID.

    Raises:
        HTTPException: If appointment not found or access denied
    """
    return await service.get_appointment(appointment_id, actor)


@router.patch(
    "/{appointment_id}",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    actor: CurrentActor,
    service: Scheduling,
) -> Appointment:
    """
    Update appointment details; a new time is checked for conflicts.

    Raises:
        HTTPException: If appointment not found, access denied or the new time conflicts
    """
    return await service.update_appointment(appointment_id, data, actor)


@router.patch(
    "/{appointment_id}/status",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    actor: CurrentActor,
    service: Scheduling,
) -> Appointment:
    """
    Move an appointment through its lifecycle (confirm, start, complete, ...).

    Raises:
        HTTPException: If appointment not found, access denied or transition invalid
    """
    return await service.update_status(appointment_id, data.status, actor, notes=data.notes)


@router.patch(
    "/{appointment_id}/reschedule",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    actor: CurrentActor,
    service: Scheduling,
) -> Appointment:
    return await service.reschedule_appointment(appointment_id, data.new_date, actor)


@router.delete(
    "/{appointment_id}",
    response_model=CancellationResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    service: Scheduling,
) -> CancellationResponse:
    """
    Cancel an appointment. Owners must respect the cancellation window.

    Raises:
        HTTPException: If appointment not found, access denied or too late to cancel
    """
    return await service.cancel_appointment(appointment_id, actor)
