# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.infra.redis_client import RedisClient


class TestRedisClient:
    """Тесты для RedisClient."""

    @pytest.fixture
    def redis_client(self) -> RedisClient:
        """Создаёт экземпляр RedisClient для тестов."""
        RedisClient._instance = None
        RedisClient._client = None
        return RedisClient()

    @pytest.fixture
    def connected(self, redis_client: RedisClient) -> tuple[RedisClient, AsyncMock]:
        raw = AsyncMock()
        redis_client._client = raw
        return redis_client, raw

    def test_singleton(self, redis_client: RedisClient) -> None:
        assert RedisClient() is redis_client

    def test_client_not_initialized(self, redis_client: RedisClient) -> None:
        with pytest.raises(RuntimeError, match="Redis клиент не инициализирован"):
            _ = redis_client.client

    def test_make_key(self, redis_client: RedisClient) -> None:
        """Проверяет формирование ключа с namespace."""
        assert redis_client._make_key("webhook:evt_1") == "carpool:webhook:evt_1"

    @pytest.mark.asyncio
    async def test_connect_with_url(self, redis_client: RedisClient) -> None:
        raw = AsyncMock()
        with patch("src.infra.redis_client.redis.from_url", return_value=raw) as mock_from_url:
            await redis_client.connect(url="redis://localhost:6379/0", namespace="test")

        mock_from_url.assert_called_once()
        raw.ping.assert_awaited_once()
        assert redis_client._make_key("k") == "test:k"

    @pytest.mark.asyncio
    async def test_disconnect(self, connected: tuple[RedisClient, AsyncMock]) -> None:
        client, raw = connected

        await client.disconnect()

        raw.aclose.assert_awaited_once()
        assert client._client is None

    @pytest.mark.asyncio
    async def test_set_if_absent_new_key(self, connected: tuple[RedisClient, AsyncMock]) -> None:
        """Проверяет атомарную запись ключа с NX."""
        client, raw = connected
        raw.set.return_value = True

        assert await client.set_if_absent("webhook:evt_1", "1", ttl=259200) is True
        raw.set.assert_awaited_once_with("carpool:webhook:evt_1", "1", ex=259200, nx=True)

    @pytest.mark.asyncio
    async def test_set_if_absent_existing_key(self, connected: tuple[RedisClient, AsyncMock]) -> None:
        client, raw = connected
        raw.set.return_value = None

        assert await client.set_if_absent("webhook:evt_1", "1", ttl=60) is False

    @pytest.mark.asyncio
    async def test_exists(self, connected: tuple[RedisClient, AsyncMock]) -> None:
        client, raw = connected
        raw.exists.return_value = 0

        assert await client.exists("key") is False

    @pytest.mark.asyncio
    async def test_health_check(self, connected: tuple[RedisClient, AsyncMock]) -> None:
        client, raw = connected
        raw.ping.return_value = True

        assert await client.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure(self, connected: tuple[RedisClient, AsyncMock]) -> None:
        """Проверяет, что ошибка ping не пробрасывается наружу."""
        client, raw = connected
        raw.ping.side_effect = ConnectionError("down")

        assert await client.health_check() is False
