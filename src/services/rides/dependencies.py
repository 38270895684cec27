# src/services/rides/dependencies.py
"""
Dependency Injection для Rides Service.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.bookings.service import BookingService
    from src.core.geo.service import GeoService
    from src.core.rides.service import RideService
    from src.infra.database import DatabaseManager
    from src.infra.event_bus import EventBus


# Синглтоны для инфраструктуры
_db: "DatabaseManager | None" = None
_event_bus: "EventBus | None" = None
_geo: "GeoService | None" = None

# Синглтоны для сервисов
_ride_service: "RideService | None" = None
_booking_service: "BookingService | None" = None


async def init_dependencies(
    db: "DatabaseManager",
    event_bus: "EventBus",
    geo: "GeoService | None" = None,
) -> None:
    """Инициализировать зависимости при старте приложения."""
    global _db, _event_bus, _geo
    _db = db
    _event_bus = event_bus
    _geo = geo


def get_db() -> "DatabaseManager":
    """Получить менеджер базы данных."""
    if _db is None:
        raise RuntimeError("База данных не инициализирована. Вызовите init_dependencies()")
    return _db


def get_event_bus() -> "EventBus":
    """Получить шину событий."""
    if _event_bus is None:
        raise RuntimeError("EventBus не инициализирован. Вызовите init_dependencies()")
    return _event_bus


def get_geo() -> "GeoService":
    """Получить геосервис (создаётся из конфига при первом обращении)."""
    global _geo
    if _geo is None:
        from src.core.geo.service import GeoService
        _geo = GeoService()
    return _geo


def get_ride_service() -> "RideService":
    """Получить сервис поездок."""
    global _ride_service

    if _ride_service is None:
        from src.core.notifications.service import NotificationService
        from src.core.rides.service import RideService
        _ride_service = RideService(
            db=get_db(),
            geo=get_geo(),
            notifications=NotificationService(get_event_bus()),
            event_bus=get_event_bus(),
        )

    return _ride_service


def get_booking_service() -> "BookingService":
    """Получить сервис бронирования."""
    global _booking_service

    if _booking_service is None:
        from src.core.bookings.service import BookingService
        from src.core.notifications.service import NotificationService
        _booking_service = BookingService(
            db=get_db(),
            notifications=NotificationService(get_event_bus()),
            event_bus=get_event_bus(),
        )

    return _booking_service


async def cleanup_dependencies() -> None:
    """Очистить ресурсы при остановке приложения."""
    global _ride_service, _booking_service, _geo
    _ride_service = None
    _booking_service = None
    if _geo is not None:
        await _geo.close()
        _geo = None
