"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduling.config import settings
from clinic_scheduling.core.exceptions import ForbiddenException
from clinic_scheduling.core.permissions import Actor, Role
from clinic_scheduling.core.redis_client import CacheManager, get_redis_client
from clinic_scheduling.core.security import decode_access_token
from clinic_scheduling.database import get_db
from clinic_scheduling.services.appointment_store import SqlAppointmentStore
from clinic_scheduling.services.policy_config import PolicyConfigCache, RedisPolicyConfigProvider
from clinic_scheduling.services.reference_directory import SqlReferenceDirectory
from clinic_scheduling.services.scheduling_service import SchedulingService

# Security
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Resolve the caller from the JWT issued by the identity service.

    Args:
        credentials: Bearer token credentials

    Returns:
        Actor built from the ``sub``, ``role`` and ``clinic_id`` claims

    Raises:
        HTTPException: If token is invalid, expired or carries unknown claims
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    user_id_str = payload.get("sub")
    if user_id_str is None or not isinstance(user_id_str, str):
        raise _credentials_error()

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise _credentials_error("Invalid user ID format")

    try:
        role = Role(payload.get("role", Role.PATIENT.value))
    except ValueError:
        raise _credentials_error("Invalid role")

    clinic_id = None
    clinic_id_str = payload.get("clinic_id")
    if clinic_id_str:
        try:
            clinic_id = UUID(str(clinic_id_str))
        except ValueError:
            raise _credentials_error("Invalid clinic ID format")

    return Actor(id=user_id, role=role, clinic_id=clinic_id)


async def require_admin(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Allow only platform administrators."""
    if not actor.is_admin:
        raise ForbiddenException("Administrator access required")
    return actor


def get_cache_manager() -> CacheManager:
    """Get a cache manager over the shared Redis client."""
    return CacheManager(get_redis_client())


@lru_cache
def get_policy_cache() -> PolicyConfigCache:
    """Get the process-wide scheduling policy cache."""
    provider = RedisPolicyConfigProvider(CacheManager(get_redis_client()))
    return PolicyConfigCache(provider, ttl_seconds=settings.policy_cache_ttl_seconds)


def get_scheduling_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[CacheManager, Depends(get_cache_manager)],
    policy_cache: Annotated[PolicyConfigCache, Depends(get_policy_cache)],
) -> SchedulingService:
    """Build the scheduling service for one request."""
    return SchedulingService(
        store=SqlAppointmentStore(db),
        references=SqlReferenceDirectory(db, cache),
        policy_cache=policy_cache,
        timezone=ZoneInfo(settings.clinic_timezone),
        calendar_max_range_days=settings.calendar_max_range_days,
    )


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_admin)]
PolicyCache = Annotated[PolicyConfigCache, Depends(get_policy_cache)]
Scheduling = Annotated[SchedulingService, Depends(get_scheduling_service)]
