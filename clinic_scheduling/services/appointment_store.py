"""Persistence for appointment records."""

import asyncio
import hashlib
import weakref
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel
from sqlalchemy import and_, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduling.core.exceptions import ConflictException
from clinic_scheduling.models.appointments import appointments
from clinic_scheduling.models.references import pets
from clinic_scheduling.schemas.appointments import (
    ACTIVE_BLOCKING_STATUSES,
    Appointment,
    AppointmentFilters,
    as_utc,
)

logger = structlog.get_logger(__name__)

# Name of the PostgreSQL exclusion constraint created by the migrations
OVERLAP_CONSTRAINT = "appointments_pet_no_overlap"

_BLOCKING_VALUES = [status.value for status in ACTIVE_BLOCKING_STATUSES]

# Per-key locks for databases without advisory locks (SQLite in tests and
# single-process deployments)
_local_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def pet_lock_key(pet_id: UUID) -> str:
    return f"pet:{pet_id}"


def clinic_lock_key(clinic_id: UUID) -> str:
    return f"clinic:{clinic_id}"


def _advisory_key(key: str) -> int:
    """Map a lock key onto the signed 64-bit space of pg_advisory_xact_lock."""
    digest = hashlib.blake2b(key.encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class AppointmentStore(Protocol):
    """Storage operations the scheduling service relies on."""

    def serialized(self, *keys: str) -> AbstractAsyncContextManager[None]:
        """Run the enclosed check-then-write sequence exclusively for ``keys``."""
        ...

    async def insert(self, values: dict[str, Any]) -> Appointment: ...

    async def update(self, appointment_id: UUID, values: dict[str, Any]) -> Appointment: ...

    async def get(self, appointment_id: UUID) -> Appointment | None: ...

    async def find_blocking_for_pet(
        self,
        pet_id: UUID,
        *,
        starts_before: datetime | None = None,
        exclude_id: UUID | None = None,
    ) -> list[Appointment]: ...

    async def find_blocking_for_clinic(
        self, clinic_id: UUID, start: datetime, end: datetime
    ) -> list[Appointment]: ...

    async def count_blocking_for_clinic(
        self, clinic_id: UUID, start: datetime, end: datetime
    ) -> int: ...

    async def search(
        self, filters: AppointmentFilters, page: int, limit: int
    ) -> tuple[list[Appointment], int]: ...

    async def find_all(self, filters: AppointmentFilters) -> list[Appointment]: ...


class SqlAppointmentStore:
    """
    AppointmentStore over the ``appointments`` table.

    The store is the only component that writes appointments. Every write
    commits the session's current transaction, so the reads performed inside
    ``serialized`` and the write that follows them share one transaction.
    Storage errors are logged and re-raised unchanged; callers decide whether
    to retry.
    """

    def __init__(self, db: AsyncSession):
        """Initialize store with database session."""
        self.db = db

    @property
    def dialect(self) -> str:
        return self.db.get_bind().dialect.name

    @asynccontextmanager
    async def serialized(self, *keys: str) -> AsyncIterator[None]:
        """
        Serialize concurrent check-then-write sequences on the same keys.

        PostgreSQL takes transaction-scoped advisory locks, released by the
        commit of the write (or the rollback on error). Other databases fall
        back to in-process locks. Keys are always taken in sorted order.
        """
        ordered = sorted(set(keys))
        if self.dialect == "postgresql":
            try:
                for key in ordered:
                    await self.db.execute(select(func.pg_advisory_xact_lock(_advisory_key(key))))
                yield
            except BaseException:
                await self.db.rollback()
                raise
            return

        async with AsyncExitStack() as stack:
            for key in ordered:
                lock = _local_locks.get(key)
                if lock is None:
                    lock = asyncio.Lock()
                    _local_locks[key] = lock
                await stack.enter_async_context(lock)
            try:
                yield
            except BaseException:
                await self.db.rollback()
                raise

    @asynccontextmanager
    async def _storage_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as e:
            await self.db.rollback()
            if OVERLAP_CONSTRAINT in str(e.orig):
                logger.info("appointment_overlap_rejected_by_database", operation=operation)
                raise ConflictException(
                    "Appointment conflicts with an existing appointment for this pet"
                ) from e
            logger.error("appointment_store_failed", operation=operation, error=str(e))
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("appointment_store_failed", operation=operation, error=str(e))
            raise

    @staticmethod
    def _prepare(values: dict[str, Any]) -> dict[str, Any]:
        """Convert schema values into column values."""
        prepared: dict[str, Any] = {}
        for field, value in values.items():
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, BaseModel):
                value = value.model_dump(exclude_none=True)
            elif isinstance(value, datetime):
                value = as_utc(value)
            prepared[field] = value

        has_start = "scheduled_date" in prepared
        has_duration = "duration_minutes" in prepared
        if has_start != has_duration:
            raise ValueError("scheduled_date and duration_minutes must be written together")
        if has_start:
            prepared["scheduled_end"] = prepared["scheduled_date"] + timedelta(
                minutes=prepared["duration_minutes"]
            )
        return prepared

    @staticmethod
    def _to_appointment(row: Any) -> Appointment:
        return Appointment.model_validate(dict(row._mapping))

    async def insert(self, values: dict[str, Any]) -> Appointment:
        """
        Insert a new appointment.

        Args:
            values: Column values; ``scheduled_date`` and ``duration_minutes``
                are required

        Returns:
            Stored appointment
        """
        now = datetime.now(UTC)
        row_values = self._prepare(values)
        row_values.setdefault("id", uuid4())
        row_values.setdefault("is_active", True)
        row_values["created_at"] = now
        row_values["updated_at"] = now

        stmt = insert(appointments).values(**row_values).returning(appointments)
        async with self._storage_errors("insert"):
            result = await self.db.execute(stmt)
            row = result.fetchone()
            await self.db.commit()

        return self._to_appointment(row)

    async def update(self, appointment_id: UUID, values: dict[str, Any]) -> Appointment:
        """
        Update an appointment.

        Args:
            appointment_id: Appointment ID
            values: Changed column values

        Returns:
            Updated appointment
        """
        row_values = self._prepare(values)
        row_values["updated_at"] = datetime.now(UTC)

        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**row_values)
            .returning(appointments)
        )
        async with self._storage_errors("update"):
            result = await self.db.execute(stmt)
            row = result.fetchone()
            await self.db.commit()

        return self._to_appointment(row)

    async def get(self, appointment_id: UUID) -> Appointment | None:
        """Get an active appointment by ID."""
        stmt = select(appointments).where(
            and_(
                appointments.c.id == appointment_id,
                appointments.c.is_active.is_(True),
            )
        )
        async with self._storage_errors("get"):
            result = await self.db.execute(stmt)
            row = result.fetchone()

        return self._to_appointment(row) if row else None

    async def find_blocking_for_pet(
        self,
        pet_id: UUID,
        *,
        starts_before: datetime | None = None,
        exclude_id: UUID | None = None,
    ) -> list[Appointment]:
        """
        Get the pet's appointments that occupy its time.

        Args:
            pet_id: Pet ID
            starts_before: Only appointments starting before this instant
            exclude_id: Appointment to leave out (the one being moved)

        Returns:
            Blocking appointments ordered by start
        """
        conditions = [
            appointments.c.pet_id == pet_id,
            appointments.c.status.in_(_BLOCKING_VALUES),
            appointments.c.is_active.is_(True),
        ]
        if starts_before is not None:
            conditions.append(appointments.c.scheduled_date < as_utc(starts_before))
        if exclude_id is not None:
            conditions.append(appointments.c.id != exclude_id)

        stmt = select(appointments).where(and_(*conditions)).order_by(
            appointments.c.scheduled_date.asc()
        )
        async with self._storage_errors("find_blocking_for_pet"):
            result = await self.db.execute(stmt)
            rows = result.fetchall()

        return [self._to_appointment(row) for row in rows]

    @staticmethod
    def _clinic_blocking_conditions(clinic_id: UUID) -> list:
        return [
            appointments.c.clinic_id == clinic_id,
            appointments.c.status.in_(_BLOCKING_VALUES),
            appointments.c.is_active.is_(True),
        ]

    async def find_blocking_for_clinic(
        self, clinic_id: UUID, start: datetime, end: datetime
    ) -> list[Appointment]:
        """
        Get the clinic's blocking appointments overlapping ``[start, end)``.

        Appointments that began before ``start`` and are still running are
        included.
        """
        conditions = self._clinic_blocking_conditions(clinic_id) + [
            appointments.c.scheduled_date < as_utc(end),
            appointments.c.scheduled_end > as_utc(start),
        ]
        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_date.asc())
        )
        async with self._storage_errors("find_blocking_for_clinic"):
            result = await self.db.execute(stmt)
            rows = result.fetchall()

        return [self._to_appointment(row) for row in rows]

    async def count_blocking_for_clinic(
        self, clinic_id: UUID, start: datetime, end: datetime
    ) -> int:
        """Count the clinic's blocking appointments starting in ``[start, end)``."""
        conditions = self._clinic_blocking_conditions(clinic_id) + [
            appointments.c.scheduled_date >= as_utc(start),
            appointments.c.scheduled_date < as_utc(end),
        ]
        stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        async with self._storage_errors("count_blocking_for_clinic"):
            result = await self.db.execute(stmt)
            return result.scalar() or 0

    @staticmethod
    def _filter_conditions(filters: AppointmentFilters) -> list:
        conditions: list = [appointments.c.is_active.is_(True)]

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.appointment_type:
            conditions.append(appointments.c.appointment_type == filters.appointment_type.value)

        if filters.priority:
            conditions.append(appointments.c.priority == filters.priority.value)

        if filters.clinic_id:
            conditions.append(appointments.c.clinic_id == filters.clinic_id)

        if filters.staff_id:
            conditions.append(appointments.c.staff_id == filters.staff_id)

        if filters.pet_id:
            conditions.append(appointments.c.pet_id == filters.pet_id)

        if filters.owner_id:
            conditions.append(appointments.c.owner_id == filters.owner_id)

        if filters.date_from:
            conditions.append(appointments.c.scheduled_date >= filters.date_from)

        if filters.date_to:
            conditions.append(appointments.c.scheduled_date <= filters.date_to)

        if filters.is_telemedicine is not None:
            conditions.append(appointments.c.is_telemedicine.is_(filters.is_telemedicine))

        if filters.is_home_visit is not None:
            conditions.append(appointments.c.is_home_visit.is_(filters.is_home_visit))

        if filters.search:
            pattern = f"%{filters.search}%"
            matching_pets = select(pets.c.id).where(pets.c.name.ilike(pattern))
            conditions.append(
                or_(
                    appointments.c.notes.ilike(pattern),
                    appointments.c.reason.ilike(pattern),
                    appointments.c.symptoms.ilike(pattern),
                    appointments.c.pet_id.in_(matching_pets),
                )
            )

        return conditions

    async def search(
        self, filters: AppointmentFilters, page: int, limit: int
    ) -> tuple[list[Appointment], int]:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter parameters
            page: 1-based page number
            limit: Items per page

        Returns:
            Page of appointments in chronological order and the total count
        """
        conditions = self._filter_conditions(filters)

        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.scheduled_date.asc(), appointments.c.created_at.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        )

        async with self._storage_errors("search"):
            total_result = await self.db.execute(count_stmt)
            total = total_result.scalar() or 0
            result = await self.db.execute(stmt)
            rows = result.fetchall()

        return [self._to_appointment(row) for row in rows], total

    async def find_all(self, filters: AppointmentFilters) -> list[Appointment]:
        """List every matching appointment in chronological order."""
        stmt = (
            select(appointments)
            .where(and_(*self._filter_conditions(filters)))
            .order_by(appointments.c.scheduled_date.asc(), appointments.c.created_at.asc())
        )
        async with self._storage_errors("find_all"):
            result = await self.db.execute(stmt)
            rows = result.fetchall()

        return [self._to_appointment(row) for row in rows]
