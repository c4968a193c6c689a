"""Scheduling policy endpoints."""

import structlog
from fastapi import APIRouter, status

from clinic_scheduling.dependencies import AdminActor, PolicyCache
from clinic_scheduling.schemas.policy import PolicyConfig

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get(
    "/appointments",
    response_model=PolicyConfig,
    status_code=status.HTTP_200_OK,
    tags=["Settings"],
    summary="Current scheduling policy",
)
async def get_appointment_policy(actor: AdminActor, policy_cache: PolicyCache) -> PolicyConfig:
    """
    Get the scheduling policy currently in effect.

    Returns:
        The cached policy (reloaded first if it has expired)
    """
    return policy_cache.get()


@router.post(
    "/appointments/invalidate",
    response_model=PolicyConfig,
    status_code=status.HTTP_200_OK,
    tags=["Settings"],
    summary="Reload scheduling policy",
)
async def invalidate_appointment_policy(
    actor: AdminActor, policy_cache: PolicyCache
) -> PolicyConfig:
    """
    Drop the cached policy so changes to the settings document apply now.

    Returns:
        The freshly loaded policy
    """
    policy_cache.invalidate()
    policy = policy_cache.get()
    logger.info("policy_config_reloaded", actor_id=str(actor.id), **policy.model_dump())
    return policy
