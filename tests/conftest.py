# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test_api_key")
os.environ.setdefault("GATEWAY_API_KEY", "sk_test_key")
os.environ.setdefault("WEBHOOK_SECRET", "whsec_test")

from src.core.geo.service import Location, RouteInfo  # noqa: E402
from src.core.notifications.service import NotificationService  # noqa: E402
from tests.fakes import FakeDatabase, FakeStore  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок DatabaseManager."""
    db = AsyncMock()
    db.execute.return_value = "OK"
    db.fetch.return_value = []
    db.fetchrow.return_value = None
    db.fetchval.return_value = None
    db.health_check.return_value = True
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок RedisClient."""
    redis = AsyncMock()
    redis.set_if_absent.return_value = True
    redis.exists.return_value = False
    redis.health_check.return_value = True
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок EventBus."""
    bus = AsyncMock()
    bus.publish.return_value = True
    bus.health_check.return_value = True
    return bus


@pytest.fixture
def mock_geo() -> MagicMock:
    """Геосервис, который распознаёт любой адрес."""
    coordinates = {
        "Kyiv": (50.4501, 30.5234),
        "Lviv": (49.8397, 24.0297),
        "Odesa": (46.4825, 30.7233),
        "Brovary": (50.5111, 30.7909),
    }

    async def geocode(address: str) -> Location:
        lat, lng = coordinates.get(address, (48.0, 30.0))
        return Location(latitude=lat, longitude=lng, address=address)

    geo = MagicMock()
    geo.geocode = AsyncMock(side_effect=geocode)
    geo.route_distance = AsyncMock(return_value=RouteInfo(distance_km=100.0, duration_minutes=90))
    return geo


# =============================================================================
# IN-MEMORY ХРАНИЛИЩЕ
# =============================================================================

@pytest.fixture
def store() -> FakeStore:
    """Общее хранилище для фейковых репозиториев."""
    return FakeStore()


@pytest.fixture
def fake_db(store: FakeStore) -> FakeDatabase:
    """База с транзакциями поверх хранилища."""
    return FakeDatabase(store)


@pytest.fixture
def notifications(mock_event_bus: AsyncMock) -> NotificationService:
    """Уведомления, уходящие в мок шины."""
    return NotificationService(mock_event_bus)


# =============================================================================
# ФИКСТУРЫ ДАННЫХ
# =============================================================================

@pytest.fixture
def future_departure() -> datetime:
    """Время отправления через трое суток."""
    return datetime.now(timezone.utc) + timedelta(days=3)


@pytest.fixture
def sample_user_data() -> dict[str, Any]:
    """Пример данных пользователя."""
    return {
        "id": "user-1",
        "email": "driver@example.com",
        "name": "Taras",
        "avatar": None,
        "rating": 4.8,
        "is_active": True,
        "gateway_customer_id": None,
        "gateway_account_id": None,
    }


@pytest.fixture
def sample_ride_data(future_departure: datetime) -> dict[str, Any]:
    """Пример строки поездки."""
    return {
        "id": "ride-1",
        "driver_id": "user-1",
        "passenger_id": None,
        "start_location": "Kyiv",
        "start_lat": 50.4501,
        "start_lng": 30.5234,
        "end_location": "Lviv",
        "end_lat": 49.8397,
        "end_lng": 24.0297,
        "departure_time": future_departure,
        "available_seats": 3,
        "vehicle_type": "Sedan",
        "status": "active",
        "fare": "59.00",
        "distance": 100.0,
        "duration": 90,
        "payment_type": "both",
        "selected_card_id": None,
        "created_at": datetime.now(timezone.utc),
        "updated_at": datetime.now(timezone.utc),
    }
