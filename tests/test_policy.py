"""Tests for the scheduling policy cache and timing rules."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
import redis

from clinic_scheduling.core.redis_client import CacheManager
from clinic_scheduling.schemas.policy import PolicyConfig
from clinic_scheduling.services.policy_config import (
    PolicyConfigCache,
    RedisPolicyConfigProvider,
    SettingsPolicyConfigProvider,
)
from clinic_scheduling.services.policy_guard import SchedulingPolicyGuard

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider:
    """Provider returning queued values (or raising queued exceptions)."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def load(self) -> PolicyConfig:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def guard_with(**policy) -> SchedulingPolicyGuard:
    return SchedulingPolicyGuard(PolicyConfigCache(StubProvider(PolicyConfig(**policy))))


# PolicyConfigCache


def test_cache_loads_once_within_ttl():
    provider = StubProvider(PolicyConfig(booking_lead_time_hours=12))
    clock = FakeClock()
    cache = PolicyConfigCache(provider, ttl_seconds=300, clock=clock)

    assert cache.get().booking_lead_time_hours == 12
    clock.advance(299)
    assert cache.get().booking_lead_time_hours == 12
    assert provider.calls == 1


def test_cache_reloads_after_ttl():
    provider = StubProvider(
        PolicyConfig(booking_lead_time_hours=12), PolicyConfig(booking_lead_time_hours=6)
    )
    clock = FakeClock()
    cache = PolicyConfigCache(provider, ttl_seconds=300, clock=clock)

    cache.get()
    clock.advance(300)

    assert cache.get().booking_lead_time_hours == 6
    assert provider.calls == 2


def test_stale_value_survives_provider_failure():
    provider = StubProvider(
        PolicyConfig(cancellation_window_hours=48), ConnectionError("redis down")
    )
    clock = FakeClock()
    cache = PolicyConfigCache(provider, ttl_seconds=300, clock=clock)

    cache.get()
    clock.advance(301)

    assert cache.get().cancellation_window_hours == 48
    assert cache.is_stale


def test_defaults_served_when_first_load_fails():
    cache = PolicyConfigCache(StubProvider(ConnectionError("redis down")), ttl_seconds=300)

    assert cache.get() == PolicyConfig()


def test_invalidate_forces_reload():
    provider = StubProvider(
        PolicyConfig(max_appointments_per_day=10), PolicyConfig(max_appointments_per_day=20)
    )
    cache = PolicyConfigCache(provider, ttl_seconds=300, clock=FakeClock())

    assert cache.get().max_appointments_per_day == 10
    cache.invalidate()

    assert cache.get().max_appointments_per_day == 20
    assert provider.calls == 2


# Providers


def test_settings_provider_uses_environment_defaults():
    policy = SettingsPolicyConfigProvider().load()

    assert policy == PolicyConfig(
        booking_lead_time_hours=24,
        cancellation_window_hours=24,
        default_duration_minutes=30,
        max_appointments_per_day=50,
    )


def test_redis_provider_merges_document_over_defaults():
    mock_redis = MagicMock()
    mock_redis.get.return_value = json.dumps({"booking_lead_time_hours": 2})
    provider = RedisPolicyConfigProvider(CacheManager(mock_redis), key="settings:appointments")

    policy = provider.load()

    mock_redis.get.assert_called_once_with("settings:appointments")
    assert policy.booking_lead_time_hours == 2
    assert policy.cancellation_window_hours == 24


def test_redis_provider_falls_back_when_key_missing():
    mock_redis = MagicMock()
    mock_redis.get.return_value = None

    policy = RedisPolicyConfigProvider(CacheManager(mock_redis)).load()

    assert policy == SettingsPolicyConfigProvider().load()


def test_redis_provider_falls_back_on_invalid_document():
    mock_redis = MagicMock()
    mock_redis.get.return_value = json.dumps({"default_duration_minutes": 5})

    policy = RedisPolicyConfigProvider(CacheManager(mock_redis)).load()

    assert policy.default_duration_minutes == 30


def test_redis_provider_raises_when_redis_unreachable():
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("refused")

    with pytest.raises(redis.ConnectionError):
        RedisPolicyConfigProvider(CacheManager(mock_redis)).load()


def test_redis_outage_keeps_serving_last_loaded_policy():
    mock_redis = MagicMock()
    mock_redis.get.return_value = json.dumps({"booking_lead_time_hours": 48})
    clock = FakeClock()
    cache = PolicyConfigCache(
        RedisPolicyConfigProvider(CacheManager(mock_redis)), ttl_seconds=300, clock=clock
    )

    assert cache.get().booking_lead_time_hours == 48

    mock_redis.get.side_effect = redis.ConnectionError("refused")
    clock.advance(301)

    assert cache.get().booking_lead_time_hours == 48
    assert cache.is_stale


# SchedulingPolicyGuard


@pytest.mark.parametrize(
    ("hours_ahead", "allowed"),
    [(23, False), (24, True), (25, True)],
)
def test_can_book_enforces_lead_time(hours_ahead, allowed):
    guard = guard_with(booking_lead_time_hours=24)

    decision = guard.can_book(NOW + timedelta(hours=hours_ahead), NOW)

    assert decision.ok is allowed
    if not allowed:
        assert "24 hours" in decision.reason


@pytest.mark.parametrize(
    ("hours_before", "allowed"),
    [(12, False), (24, True), (48, True)],
)
def test_can_cancel_enforces_window(hours_before, allowed):
    guard = guard_with(cancellation_window_hours=24)

    decision = guard.can_cancel(NOW + timedelta(hours=hours_before), NOW)

    assert decision.ok is allowed


def test_daily_cap():
    guard = guard_with(max_appointments_per_day=3)

    assert guard.within_daily_cap(2).ok
    assert not guard.within_daily_cap(3).ok


def test_guard_reads_policy_on_every_call():
    provider = StubProvider(
        PolicyConfig(booking_lead_time_hours=24), PolicyConfig(booking_lead_time_hours=1)
    )
    cache = PolicyConfigCache(provider, ttl_seconds=0)
    guard = SchedulingPolicyGuard(cache)
    start = NOW + timedelta(hours=2)

    assert not guard.can_book(start, NOW).ok
    assert guard.can_book(start, NOW).ok
