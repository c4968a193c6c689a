"""Tests for Redis caching implementation."""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import redis

from clinic_scheduling.core.redis_client import CacheManager
from clinic_scheduling.services.reference_directory import SqlReferenceDirectory


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Test cache miss
    mock_redis.get.return_value = None
    result = cache_manager.get_json("test_key")
    assert result is None
    mock_redis.get.assert_called_once_with("test_key")

    # Test cache hit
    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"booking_lead_time_hours": 12}'
    result = cache_manager.get_json("test_key")
    assert result == {"booking_lead_time_hours": 12}


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    clinic = {"id": uuid4(), "name": "Riverside Vets"}

    assert cache_manager.set_json("clinic:1", clinic) is True
    mock_redis.set.assert_called_once()

    mock_redis.reset_mock()
    assert cache_manager.set_json("clinic:1", clinic, ttl=300) is True
    mock_redis.setex.assert_called_once()
    assert mock_redis.setex.call_args.args[1] == 300


def test_cache_failures_degrade_to_misses():
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("refused")
    mock_redis.setex.side_effect = redis.TimeoutError("timeout")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("settings:appointments") is None
    assert cache_manager.set_json("clinic:1", {"name": "x"}, ttl=60) is False


def test_undecodable_payload_is_a_miss():
    mock_redis = MagicMock()
    mock_redis.get.return_value = "{not json"

    assert CacheManager(redis_client=mock_redis).get_json("settings:appointments") is None


@pytest.mark.asyncio
async def test_clinic_lookup_is_cached(db_session, refs):
    """Clinic lookups go to Redis first and populate it on a miss."""
    mock_redis = MagicMock()
    mock_redis.get.return_value = None
    directory = SqlReferenceDirectory(db_session, CacheManager(mock_redis))

    clinic = await directory.get_clinic(refs["clinic"])

    assert clinic["name"] == "Riverside Vets"
    mock_redis.get.assert_called_once_with(f"clinic:{refs['clinic']}")
    mock_redis.setex.assert_called_once()
    assert mock_redis.setex.call_args.args[0] == f"clinic:{refs['clinic']}"


@pytest.mark.asyncio
async def test_cached_clinic_skips_database(db_session):
    mock_redis = MagicMock()
    clinic_id = uuid4()
    mock_redis.get.return_value = f'{{"id": "{clinic_id}", "name": "Cached Clinic"}}'
    directory = SqlReferenceDirectory(db_session, CacheManager(mock_redis))

    clinic = await directory.get_clinic(clinic_id)

    assert clinic["name"] == "Cached Clinic"


@pytest.mark.asyncio
async def test_inactive_or_unknown_clinic_is_missing(db_session, refs):
    directory = SqlReferenceDirectory(db_session)

    assert await directory.get_clinic(uuid4()) is None
    assert await directory.get_staff(refs["staff"], refs["other_clinic"]) is None
    assert await directory.staff_names([refs["staff"], uuid4()]) == {refs["staff"]: "Dr. Alvarez"}
