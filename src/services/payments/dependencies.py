# src/services/payments/dependencies.py
"""
Dependency Injection для Payments Service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.payments.gateway import PaymentGateway
    from src.core.payments.service import PaymentService
    from src.infra.database import DatabaseManager
    from src.infra.event_bus import EventBus
    from src.infra.redis_client import RedisClient


# Синглтоны для инфраструктуры
_db: "DatabaseManager | None" = None
_redis: "RedisClient | None" = None
_event_bus: "EventBus | None" = None
_gateway: "PaymentGateway | None" = None

# Синглтоны для сервисов
_payment_service: "PaymentService | None" = None


async def init_dependencies(
    db: "DatabaseManager",
    redis: "RedisClient",
    event_bus: "EventBus",
    gateway: "PaymentGateway | None" = None,
) -> None:
    """Инициализировать зависимости при старте приложения."""
    global _db, _redis, _event_bus, _gateway
    _db = db
    _redis = redis
    _event_bus = event_bus
    _gateway = gateway


def get_db() -> "DatabaseManager":
    """Получить менеджер базы данных."""
    if _db is None:
        raise RuntimeError("База данных не инициализирована. Вызовите init_dependencies()")
    return _db


def get_redis() -> "RedisClient":
    """Получить клиент Redis."""
    if _redis is None:
        raise RuntimeError("Redis не инициализирован. Вызовите init_dependencies()")
    return _redis


def get_event_bus() -> "EventBus":
    """Получить шину событий."""
    if _event_bus is None:
        raise RuntimeError("EventBus не инициализирован. Вызовите init_dependencies()")
    return _event_bus


def get_gateway() -> "PaymentGateway":
    """Получить клиент платёжного шлюза (создаётся из конфига при первом обращении)."""
    global _gateway
    if _gateway is None:
        from src.core.payments.gateway import PaymentGateway
        _gateway = PaymentGateway()
    return _gateway


def get_payment_service() -> "PaymentService":
    """Получить сервис расчётов."""
    global _payment_service

    if _payment_service is None:
        from src.core.payments.service import PaymentService
        _payment_service = PaymentService(
            db=get_db(),
            gateway=get_gateway(),
            redis=get_redis(),
            event_bus=get_event_bus(),
        )

    return _payment_service


async def cleanup_dependencies() -> None:
    """Очистить ресурсы при остановке приложения."""
    global _payment_service, _gateway
    _payment_service = None
    if _gateway is not None:
        await _gateway.close()
        _gateway = None
