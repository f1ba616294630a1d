"""Tests for Redis caching and rate limiting."""

from unittest.mock import MagicMock

import pytest
import redis
from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.redis_client import CacheManager, RateLimiter
from app.models.users import users


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
    mock_redis.get.return_value = '{"name": "Test", "value": 123}'
    result = cache_manager.get_json("test_key")
    assert result == {"name": "Test", "value": 123}
    mock_redis.get.assert_called_once_with("test_key")


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    test_data = {"name": "Test", "value": 123}

    # Test without TTL
    result = cache_manager.set_json("test_key", test_data)
    assert result is True
    mock_redis.set.assert_called_once()

    # Test with TTL
    mock_redis.reset_mock()
    result = cache_manager.set_json("test_key", test_data, ttl=300)
    assert result is True
    mock_redis.setex.assert_called_once()


def test_cache_manager_delete():
    """Test CacheManager delete method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    result = cache_manager.delete("test_key")
    assert result is True
    mock_redis.delete.assert_called_once_with("test_key")


def test_cache_manager_delete_pattern():
    """Test CacheManager delete_pattern method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    mock_redis.keys.return_value = ["public:1:services", "public:1:professionals"]
    mock_redis.delete.return_value = 2

    result = cache_manager.delete_pattern("public:1:*")

    mock_redis.keys.assert_called_once_with("public:1:*")
    assert result == 2


def test_cache_errors_behave_as_misses():
    """An unavailable Redis never breaks a request."""
    mock_redis = MagicMock()
    mock_redis.get.side_effect = redis.ConnectionError("down")
    mock_redis.setex.side_effect = redis.ConnectionError("down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("user:1") is None
    assert cache_manager.set_json("user:1", {"id": 1}, ttl=60) is False


def test_rate_limiter_counts_per_window():
    mock_redis = MagicMock()
    mock_redis.incr.side_effect = [1, 2, 3]
    limiter = RateLimiter(mock_redis)

    assert limiter.check_rate_limit("ratelimit:public:1.2.3.4", limit=2, window=60)
    assert limiter.check_rate_limit("ratelimit:public:1.2.3.4", limit=2, window=60)
    assert not limiter.check_rate_limit("ratelimit:public:1.2.3.4", limit=2, window=60)
    mock_redis.expire.assert_called_once_with("ratelimit:public:1.2.3.4", 60)


@pytest.mark.asyncio
async def test_user_caching(
    client: AsyncClient,
    auth_headers: dict,
    admin_user: dict,
    redis_mock: MagicMock,
    db_session: AsyncSession,
):
    """The profile is served from cache until it is updated through the API."""
    response1 = await client.get("/api/v1/users/me", headers=auth_headers)
    assert response1.status_code == 200
    assert f"user:{admin_user['id']}" in redis_mock.store

    # A change made behind the service's back is not visible yet
    await db_session.execute(
        update(users).where(users.c.id == admin_user["id"]).values(name="Cambiado en BD")
    )
    await db_session.commit()

    response2 = await client.get("/api/v1/users/me", headers=auth_headers)
    assert response2.json() == response1.json()
    assert response2.json()["name"] == "Laura Admin"


@pytest.mark.asyncio
async def test_user_cache_invalidation(
    client: AsyncClient,
    auth_headers: dict,
    admin_user: dict,
    redis_mock: MagicMock,
):
    """Test user cache is invalidated on update."""
    await client.get("/api/v1/users/me", headers=auth_headers)

    response = await client.patch(
        "/api/v1/users/me", headers=auth_headers, json={"name": "Laura Gómez"}
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Laura Gómez"

    response = await client.get("/api/v1/users/me", headers=auth_headers)
    assert response.json()["name"] == "Laura Gómez"


@pytest.mark.asyncio
async def test_public_services_cached_until_catalog_changes(
    client: AsyncClient,
    auth_headers: dict,
    organization: dict,
    service: dict,
    redis_mock: MagicMock,
):
    url = f"/api/v1/public/{organization['id']}/services"

    first = await client.get(url)
    assert [item["name"] for item in first.json()] == ["Fisioterapia"]
    assert f"public:{organization['id']}:services" in redis_mock.store

    created = await client.post(
        "/api/v1/services",
        json={"name": "Osteopatía", "duration": 45, "price": "55"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    assert f"public:{organization['id']}:services" not in redis_mock.store

    second = await client.get(url)
    assert sorted(item["name"] for item in second.json()) == ["Fisioterapia", "Osteopatía"]


@pytest.mark.asyncio
async def test_public_professionals_cached_until_staff_changes(
    client: AsyncClient,
    professional_headers: dict,
    organization: dict,
    professional: dict,
    admin_user: dict,
    redis_mock: MagicMock,
):
    url = f"/api/v1/public/{organization['id']}/professionals"

    first = await client.get(url)
    names = {item["name"] for item in first.json()}
    assert names == {"Pablo Fisio", "Laura Admin"}

    await client.patch(
        "/api/v1/users/me", headers=professional_headers, json={"name": "Pablo Ruiz"}
    )

    second = await client.get(url)
    assert {item["name"] for item in second.json()} == {"Pablo Ruiz", "Laura Admin"}


@pytest.mark.asyncio
async def test_public_routes_are_rate_limited(
    client: AsyncClient, organization: dict, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setattr(settings, "rate_limit_per_minute", 2)
    url = f"/api/v1/public/{organization['id']}/services"

    statuses = [(await client.get(url)).status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
