"""Appointment scheduling business logic."""

from collections import Counter
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog

from clinic_scheduling.core.exceptions import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from clinic_scheduling.core.permissions import Actor, AppointmentAction, authorize
from clinic_scheduling.schemas.appointments import (
    ACTIVE_BLOCKING_STATUSES,
    MIN_DURATION_MINUTES,
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentPriority,
    AppointmentStats,
    AppointmentStatus,
    AppointmentType,
    AppointmentUpdate,
    CalendarViewResponse,
    CancellationResponse,
    TimeSlot,
)
from clinic_scheduling.services.appointment_store import (
    AppointmentStore,
    clinic_lock_key,
    pet_lock_key,
)
from clinic_scheduling.services.availability import AvailabilityGenerator, local_day_bounds
from clinic_scheduling.services.calendar_view import CalendarViewBuilder
from clinic_scheduling.services.conflict_detector import ConflictDetector
from clinic_scheduling.services.policy_config import PolicyConfigCache
from clinic_scheduling.services.policy_guard import SchedulingPolicyGuard
from clinic_scheduling.services.reference_directory import ReferenceDirectory
from clinic_scheduling.services.status_machine import INITIAL_STATUSES, StatusStateMachine

logger = structlog.get_logger(__name__)

# Statuses listed by the upcoming view
UPCOMING_STATUSES = frozenset(
    {
        AppointmentStatus.PENDING,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.WAITING,
        AppointmentStatus.RESCHEDULED,
    }
)


def utc_now() -> datetime:
    return datetime.now(UTC)


class SchedulingService:
    """
    Orchestrates booking, rescheduling, status changes and cancellation.

    Every operation validates references, policy and permissions before it
    writes; the write is always the last step. Check-then-write sequences run
    inside ``store.serialized`` so that two concurrent requests for the same
    pet cannot both pass the conflict check.
    """

    def __init__(
        self,
        store: AppointmentStore,
        references: ReferenceDirectory,
        policy_cache: PolicyConfigCache,
        clock: Callable[[], datetime] = utc_now,
        timezone: ZoneInfo | None = None,
        calendar_max_range_days: int = 92,
    ):
        """Initialize service with its collaborators."""
        self.store = store
        self.references = references
        self.policy_cache = policy_cache
        self.clock = clock
        self.timezone = timezone or ZoneInfo("UTC")
        self.calendar_max_range_days = calendar_max_range_days

        self.guard = SchedulingPolicyGuard(policy_cache)
        self.conflicts = ConflictDetector(store)
        self.availability = AvailabilityGenerator(store, self.timezone)
        self.calendar = CalendarViewBuilder(self.timezone)

    # Helpers

    async def _load(
        self,
        appointment_id: UUID,
        actor: Actor,
        action: AppointmentAction,
        target_status: AppointmentStatus | None = None,
    ) -> Appointment:
        appointment = await self.store.get(appointment_id)
        if not appointment:
            raise NotFoundException("Appointment not found")

        if not authorize(actor, appointment, action, target_status):
            logger.info(
                "appointment_access_denied",
                appointment_id=str(appointment_id),
                actor_id=str(actor.id),
                action=action.value,
            )
            raise ForbiddenException("Access denied to this appointment")

        return appointment

    @staticmethod
    def _scope(filters: AppointmentFilters, actor: Actor) -> AppointmentFilters:
        """Restrict filters to what the actor may see."""
        if not actor.is_privileged:
            return filters.model_copy(update={"owner_id": actor.id})
        if actor.scoped_clinic_id:
            return filters.model_copy(update={"clinic_id": actor.scoped_clinic_id})
        return filters

    async def _ensure_staff_and_service(
        self, clinic_id: UUID, staff_id: UUID | None, service_id: UUID | None
    ) -> dict[str, Any] | None:
        if staff_id and not await self.references.get_staff(staff_id, clinic_id):
            raise NotFoundException("Staff member not found at this clinic")

        service = None
        if service_id:
            service = await self.references.get_service(service_id, clinic_id)
            if not service:
                raise NotFoundException("Service not found at this clinic")
        return service

    async def _ensure_no_conflict(
        self,
        pet_id: UUID,
        start: datetime,
        duration_minutes: int,
        exclude_id: UUID | None = None,
    ) -> None:
        end = start + timedelta(minutes=duration_minutes)
        result = await self.conflicts.has_conflict(pet_id, start, end, exclude_id=exclude_id)
        if result.has_conflict and result.first:
            logger.info(
                "appointment_conflict",
                pet_id=str(pet_id),
                start=start.isoformat(),
                end=end.isoformat(),
                conflicting_id=str(result.first.id),
            )
            raise ConflictException(
                "Pet already has an appointment at this time",
                conflicting_id=result.first.id,
            )

    # Operations

    async def create_appointment(self, data: AppointmentCreate, actor: Actor) -> Appointment:
        """
        Book a new appointment.

        Args:
            data: Appointment creation data
            actor: Caller booking the appointment

        Returns:
            Created appointment

        Raises:
            NotFoundException: If the pet, clinic, staff member or service is unknown
            ForbiddenException: If clinic personnel book at another clinic
            BadRequestException: If a policy or status rule is violated
            ConflictException: If the pet is already booked at that time
        """
        pet = await self.references.get_pet(data.pet_id)
        if not pet or (not actor.is_privileged and pet["owner_id"] != actor.id):
            raise NotFoundException("Pet not found")

        if actor.scoped_clinic_id and actor.scoped_clinic_id != data.clinic_id:
            raise ForbiddenException("Cannot book appointments at another clinic")

        if not await self.references.get_clinic(data.clinic_id):
            raise NotFoundException("Clinic not found")

        service = await self._ensure_staff_and_service(
            data.clinic_id, data.staff_id, data.service_id
        )

        policy = self.policy_cache.get()
        duration = (
            data.duration_minutes
            or (service or {}).get("duration_minutes")
            or policy.default_duration_minutes
        )
        if duration < MIN_DURATION_MINUTES:
            raise BadRequestException(
                f"Appointment duration must be at least {MIN_DURATION_MINUTES} minutes"
            )

        status = data.status or AppointmentStatus.PENDING
        if status not in INITIAL_STATUSES:
            raise BadRequestException(f"Appointments cannot be created with status {status.value}")

        decision = self.guard.can_book(data.scheduled_date, self.clock())
        if not decision.ok:
            raise BadRequestException(decision.reason or "Booking not allowed")

        values = data.model_dump(exclude_none=True)
        values.update(
            owner_id=pet["owner_id"],
            status=status,
            priority=data.priority or AppointmentPriority.NORMAL,
            duration_minutes=duration,
        )

        local_day = data.scheduled_date.astimezone(self.timezone).date()
        day_start, day_end = local_day_bounds(local_day, self.timezone)

        async with self.store.serialized(pet_lock_key(data.pet_id), clinic_lock_key(data.clinic_id)):
            count = await self.store.count_blocking_for_clinic(data.clinic_id, day_start, day_end)
            cap = self.guard.within_daily_cap(count)
            if not cap.ok:
                raise BadRequestException(cap.reason or "Clinic is fully booked")

            await self._ensure_no_conflict(data.pet_id, data.scheduled_date, duration)
            appointment = await self.store.insert(values)

        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            pet_id=str(appointment.pet_id),
            clinic_id=str(appointment.clinic_id),
            scheduled_date=appointment.scheduled_date.isoformat(),
        )
        return appointment

    async def get_appointment(self, appointment_id: UUID, actor: Actor) -> Appointment:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor has no access
        """
        return await self._load(appointment_id, actor, AppointmentAction.VIEW)

    async def list_appointments(
        self,
        filters: AppointmentFilters,
        actor: Actor,
        page: int = 1,
        limit: int = 10,
    ) -> AppointmentListResponse:
        """
        List appointments visible to the actor with filtering and pagination.

        Returns:
            Paginated list of appointments in chronological order
        """
        items, total = await self.store.search(self._scope(filters, actor), page, limit)
        total_pages = (total + limit - 1) // limit if total > 0 else 0

        return AppointmentListResponse(
            appointments=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
        )

    async def update_appointment(
        self, appointment_id: UUID, data: AppointmentUpdate, actor: Actor
    ) -> Appointment:
        """
        Update appointment fields.

        A change of start or duration is checked for conflicts again, with the
        appointment itself excluded.

        Raises:
            NotFoundException: If appointment, staff member or service not found
            ForbiddenException: If the actor has no access
            BadRequestException: If the appointment can no longer be moved
            ConflictException: If the new interval overlaps another appointment
        """
        appointment = await self._load(appointment_id, actor, AppointmentAction.UPDATE)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return appointment

        await self._ensure_staff_and_service(
            appointment.clinic_id, data.staff_id, data.service_id
        )

        new_start = changes.get("scheduled_date", appointment.scheduled_date)
        new_duration = changes.get("duration_minutes", appointment.duration_minutes)
        timing_changed = (
            new_start != appointment.scheduled_date
            or new_duration != appointment.duration_minutes
        )

        if not timing_changed:
            changes.pop("scheduled_date", None)
            changes.pop("duration_minutes", None)
            updated = await self.store.update(appointment_id, changes)
        else:
            StatusStateMachine.ensure_reschedulable(appointment.status)
            changes.update(scheduled_date=new_start, duration_minutes=new_duration)
            async with self.store.serialized(pet_lock_key(appointment.pet_id)):
                await self._ensure_no_conflict(
                    appointment.pet_id, new_start, new_duration, exclude_id=appointment_id
                )
                updated = await self.store.update(appointment_id, changes)

        logger.info(
            "appointment_updated",
            appointment_id=str(appointment_id),
            fields=sorted(changes),
        )
        return updated

    async def update_status(
        self,
        appointment_id: UUID,
        new_status: AppointmentStatus,
        actor: Actor,
        notes: str | None = None,
    ) -> Appointment:
        """
        Move an appointment to a new status.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor may not make this transition
            BadRequestException: If the transition is invalid or too late to cancel
            ConflictException: If re-activating the appointment would double-book the pet
        """
        appointment = await self._load(
            appointment_id, actor, AppointmentAction.TRANSITION, target_status=new_status
        )
        StatusStateMachine.validate(appointment.status, new_status)

        now = self.clock()
        values: dict[str, Any] = {"status": new_status}
        if new_status == AppointmentStatus.IN_PROGRESS:
            values["actual_start_time"] = now
        elif new_status == AppointmentStatus.COMPLETED:
            values["actual_end_time"] = now
        elif new_status == AppointmentStatus.CANCELLED:
            self._ensure_can_cancel(appointment, actor, now)
            values["cancelled_at"] = now
        if notes is not None:
            values["notes"] = notes

        reactivating = (
            new_status in ACTIVE_BLOCKING_STATUSES
            and appointment.status not in ACTIVE_BLOCKING_STATUSES
        )
        if reactivating:
            async with self.store.serialized(pet_lock_key(appointment.pet_id)):
                await self._ensure_no_conflict(
                    appointment.pet_id,
                    appointment.scheduled_date,
                    appointment.duration_minutes,
                    exclude_id=appointment_id,
                )
                updated = await self.store.update(appointment_id, values)
        else:
            updated = await self.store.update(appointment_id, values)

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            from_status=appointment.status.value,
            to_status=new_status.value,
        )
        return updated

    async def reschedule_appointment(
        self, appointment_id: UUID, new_date: datetime, actor: Actor
    ) -> Appointment:
        """
        Move an appointment to a new start time, keeping its duration.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor has no access
            BadRequestException: If the appointment has started or is finished
            ConflictException: If the new interval overlaps another appointment
        """
        appointment = await self._load(appointment_id, actor, AppointmentAction.RESCHEDULE)
        StatusStateMachine.ensure_reschedulable(appointment.status)

        async with self.store.serialized(pet_lock_key(appointment.pet_id)):
            await self._ensure_no_conflict(
                appointment.pet_id,
                new_date,
                appointment.duration_minutes,
                exclude_id=appointment_id,
            )
            updated = await self.store.update(
                appointment_id,
                {
                    "scheduled_date": new_date,
                    "duration_minutes": appointment.duration_minutes,
                    "status": AppointmentStatus.RESCHEDULED,
                },
            )

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            from_date=appointment.scheduled_date.isoformat(),
            to_date=updated.scheduled_date.isoformat(),
        )
        return updated

    def _ensure_can_cancel(self, appointment: Appointment, actor: Actor, now: datetime) -> None:
        # Clinic personnel may cancel at any time
        if actor.is_privileged:
            return
        decision = self.guard.can_cancel(appointment.scheduled_date, now)
        if not decision.ok:
            raise BadRequestException(decision.reason or "Cancellation not allowed")

    async def cancel_appointment(self, appointment_id: UUID, actor: Actor) -> CancellationResponse:
        """
        Cancel an appointment. The record stays active with status cancelled.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor has no access
            BadRequestException: If it is too late to cancel or already finished
        """
        appointment = await self._load(appointment_id, actor, AppointmentAction.CANCEL)

        now = self.clock()
        StatusStateMachine.validate(appointment.status, AppointmentStatus.CANCELLED)
        self._ensure_can_cancel(appointment, actor, now)

        await self.store.update(
            appointment_id,
            {"status": AppointmentStatus.CANCELLED, "cancelled_at": now},
        )

        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            actor_id=str(actor.id),
        )
        return CancellationResponse(message="Appointment cancelled successfully")

    async def available_slots(
        self, clinic_id: UUID, day: date, duration_minutes: int | None = None
    ) -> list[TimeSlot]:
        """
        List bookable slots of a clinic day.

        Raises:
            NotFoundException: If the clinic is unknown
            BadRequestException: If the duration is too short
        """
        if not await self.references.get_clinic(clinic_id):
            raise NotFoundException("Clinic not found")

        duration = duration_minutes or self.policy_cache.get().default_duration_minutes
        if duration < MIN_DURATION_MINUTES:
            raise BadRequestException(
                f"Appointment duration must be at least {MIN_DURATION_MINUTES} minutes"
            )

        return await self.availability.available_slots(clinic_id, day, duration)

    async def calendar_view(
        self, filters: AppointmentFilters, actor: Actor
    ) -> CalendarViewResponse:
        """
        Group appointments in a date range by day and staff member.

        Raises:
            ForbiddenException: If the actor is not clinic personnel
            BadRequestException: If the date range is missing, inverted or too long
        """
        if not actor.is_privileged:
            raise ForbiddenException("Calendar view is available to clinic staff only")

        if not filters.date_from or not filters.date_to:
            raise BadRequestException("date_from and date_to are required")
        if filters.date_to < filters.date_from:
            raise BadRequestException("date_to must not be before date_from")
        if filters.date_to - filters.date_from > timedelta(days=self.calendar_max_range_days):
            raise BadRequestException(
                f"Date range cannot exceed {self.calendar_max_range_days} days"
            )

        items = await self.store.find_all(self._scope(filters, actor))
        staff_names = await self.references.staff_names(
            {item.staff_id for item in items if item.staff_id}
        )
        return CalendarViewResponse(days=self.calendar.build(items, staff_names))

    async def get_stats(self, actor: Actor) -> AppointmentStats:
        """
        Aggregate counts over the appointments visible to clinic personnel.

        Raises:
            ForbiddenException: If the actor is not clinic personnel
        """
        if not actor.is_privileged:
            raise ForbiddenException("Statistics are available to clinic staff only")

        items = await self.store.find_all(self._scope(AppointmentFilters(), actor))
        now = self.clock()
        today = now.astimezone(self.timezone).date()

        by_status = Counter(item.status for item in items)
        by_type = Counter(item.appointment_type for item in items)
        by_priority = Counter(item.priority for item in items)

        return AppointmentStats(
            total=len(items),
            by_status={status: by_status[status] for status in AppointmentStatus},
            by_type={kind: by_type[kind] for kind in AppointmentType},
            by_priority={priority: by_priority[priority] for priority in AppointmentPriority},
            today=sum(
                1 for item in items if item.scheduled_date.astimezone(self.timezone).date() == today
            ),
            upcoming=sum(
                1
                for item in items
                if item.scheduled_date > now and item.status in ACTIVE_BLOCKING_STATUSES
            ),
            overdue=sum(
                1
                for item in items
                if item.scheduled_date < now and item.status in ACTIVE_BLOCKING_STATUSES
            ),
            telemedicine=sum(1 for item in items if item.is_telemedicine),
            home_visits=sum(1 for item in items if item.is_home_visit),
            average_duration=(
                round(sum(item.duration_minutes for item in items) / len(items)) if items else 0
            ),
        )

    async def upcoming_appointments(self, actor: Actor, days: int = 7) -> list[Appointment]:
        """List the actor's appointments starting within the next ``days`` days."""
        now = self.clock()
        filters = AppointmentFilters(date_from=now, date_to=now + timedelta(days=days))
        items = await self.store.find_all(self._scope(filters, actor))
        return [
            item for item in items if item.scheduled_date > now and item.status in UPCOMING_STATUSES
        ]

    async def today_appointments(
        self, actor: Actor, clinic_id: UUID | None = None
    ) -> list[Appointment]:
        """List the actor's appointments on the current clinic-local day, any status."""
        today = self.clock().astimezone(self.timezone).date()
        day_start, day_end = local_day_bounds(today, self.timezone)
        filters = AppointmentFilters(date_from=day_start, date_to=day_end, clinic_id=clinic_id)
        items = await self.store.find_all(self._scope(filters, actor))
        return [item for item in items if item.scheduled_date < day_end]
