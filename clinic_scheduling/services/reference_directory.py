"""Lookups of the pets, clinics, staff and services appointments refer to."""

from collections.abc import Iterable
from typing import Any, Protocol
from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduling.core.redis_client import CacheManager
from clinic_scheduling.models.references import clinic_services, clinic_staff, clinics, pets

logger = structlog.get_logger(__name__)


class ReferenceDirectory(Protocol):
    """Read access to records owned by the rest of the clinic platform."""

    async def get_pet(self, pet_id: UUID) -> dict[str, Any] | None: ...

    async def get_clinic(self, clinic_id: UUID) -> dict[str, Any] | None: ...

    async def get_staff(self, staff_id: UUID, clinic_id: UUID) -> dict[str, Any] | None: ...

    async def get_service(self, service_id: UUID, clinic_id: UUID) -> dict[str, Any] | None: ...

    async def staff_names(self, staff_ids: Iterable[UUID]) -> dict[UUID, str]: ...


class SqlReferenceDirectory:
    """ReferenceDirectory over the reference tables; inactive rows count as missing."""

    CLINIC_CACHE_TTL = 300  # 5 minutes

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize directory with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    @staticmethod
    def _get_clinic_cache_key(clinic_id: UUID) -> str:
        """Generate cache key for clinic."""
        return f"clinic:{clinic_id}"

    async def get_pet(self, pet_id: UUID) -> dict[str, Any] | None:
        """Get an active pet by ID."""
        stmt = select(pets).where(and_(pets.c.id == pet_id, pets.c.is_active.is_(True)))
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def get_clinic(self, clinic_id: UUID) -> dict[str, Any] | None:
        """Get an active clinic by ID, cached."""
        if self.cache:
            cached = self.cache.get_json(self._get_clinic_cache_key(clinic_id))
            if cached:
                return cached

        stmt = select(clinics).where(and_(clinics.c.id == clinic_id, clinics.c.is_active.is_(True)))
        result = await self.db.execute(stmt)
        row = result.fetchone()
        if not row:
            return None

        clinic = dict(row._mapping)
        if self.cache:
            self.cache.set_json(
                self._get_clinic_cache_key(clinic_id), clinic, ttl=self.CLINIC_CACHE_TTL
            )
        return clinic

    async def get_staff(self, staff_id: UUID, clinic_id: UUID) -> dict[str, Any] | None:
        """Get an active staff member working at the clinic."""
        stmt = select(clinic_staff).where(
            and_(
                clinic_staff.c.id == staff_id,
                clinic_staff.c.clinic_id == clinic_id,
                clinic_staff.c.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def get_service(self, service_id: UUID, clinic_id: UUID) -> dict[str, Any] | None:
        """Get an active service offered by the clinic."""
        stmt = select(clinic_services).where(
            and_(
                clinic_services.c.id == service_id,
                clinic_services.c.clinic_id == clinic_id,
                clinic_services.c.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        row = result.fetchone()
        return dict(row._mapping) if row else None

    async def staff_names(self, staff_ids: Iterable[UUID]) -> dict[UUID, str]:
        """Map staff IDs to display names; unknown IDs are left out."""
        ids = set(staff_ids)
        if not ids:
            return {}

        stmt = select(clinic_staff.c.id, clinic_staff.c.name).where(clinic_staff.c.id.in_(ids))
        result = await self.db.execute(stmt)
        names = {row.id: row.name for row in result.fetchall()}

        missing = ids - names.keys()
        if missing:
            logger.debug("staff_names_missing", count=len(missing))
        return names
