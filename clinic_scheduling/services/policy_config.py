"""
Cached access to the clinic-wide scheduling policy.

The policy document is maintained by the settings administration component,
which writes it to Redis. Booking and cancellation checks read it on every
call, so it is kept in a small in-process cache with a time-to-live.
"""

import time
from collections.abc import Callable
from typing import Protocol

import structlog
from pydantic import ValidationError

from clinic_scheduling.config import Settings, settings
from clinic_scheduling.core.redis_client import CacheManager
from clinic_scheduling.schemas.policy import PolicyConfig

logger = structlog.get_logger(__name__)


class PolicyConfigProvider(Protocol):
    """Source of the current policy document."""

    def load(self) -> PolicyConfig: ...


class SettingsPolicyConfigProvider:
    """Policy defaults from the application settings (environment / .env)."""

    def __init__(self, app_settings: Settings | None = None):
        self.settings = app_settings or settings

    def load(self) -> PolicyConfig:
        return PolicyConfig(
            booking_lead_time_hours=self.settings.booking_lead_time_hours,
            cancellation_window_hours=self.settings.cancellation_window_hours,
            default_duration_minutes=self.settings.default_appointment_duration,
            max_appointments_per_day=self.settings.max_appointments_per_day,
        )


class RedisPolicyConfigProvider:
    """
    Policy document stored as JSON under a Redis key.

    Keys missing from the document take the fallback provider's values; a
    missing or malformed document yields the fallback entirely. Redis errors
    propagate so the caller can keep its last good value.
    """

    def __init__(
        self,
        cache: CacheManager,
        key: str | None = None,
        fallback: PolicyConfigProvider | None = None,
    ):
        self.cache = cache
        self.key = key or settings.policy_settings_key
        self.fallback = fallback or SettingsPolicyConfigProvider()

    def load(self) -> PolicyConfig:
        defaults = self.fallback.load()
        document = self.cache.get_json(self.key, raise_errors=True)
        if not isinstance(document, dict):
            return defaults

        try:
            return PolicyConfig(**{**defaults.model_dump(), **document})
        except ValidationError as e:
            logger.warning("policy_document_invalid", key=self.key, error=str(e))
            return defaults


class PolicyConfigCache:
    """
    Time-limited cache in front of a PolicyConfigProvider.

    ``get`` never raises: when a refresh fails the previous value keeps being
    served (and is retried on the next call); before the first successful
    load the built-in defaults are served.
    """

    def __init__(
        self,
        provider: PolicyConfigProvider,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.ttl_seconds = settings.policy_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._value: PolicyConfig | None = None
        self._loaded_at: float | None = None

    @property
    def is_stale(self) -> bool:
        if self._value is None or self._loaded_at is None:
            return True
        return self.clock() - self._loaded_at >= self.ttl_seconds

    def refresh_if_stale(self) -> PolicyConfig:
        """Reload from the provider when the cached value has expired."""
        if not self.is_stale:
            return self._value  # type: ignore[return-value]

        try:
            value = self.provider.load()
        except Exception as e:
            if self._value is not None:
                logger.warning("policy_config_refresh_failed", error=str(e), serving="stale")
                return self._value
            logger.warning("policy_config_refresh_failed", error=str(e), serving="defaults")
            return PolicyConfig()

        self._value = value
        self._loaded_at = self.clock()
        logger.debug("policy_config_loaded", **value.model_dump())
        return value

    def get(self) -> PolicyConfig:
        return self.refresh_if_stale()

    def invalidate(self) -> None:
        """Force the next ``get`` to reload from the provider."""
        self._loaded_at = None
        logger.info("policy_config_invalidated")
