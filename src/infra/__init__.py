# src/infra/__init__.py
"""
Инфраструктурный слой: PostgreSQL, Redis, RabbitMQ.
"""

from src.infra.database import DatabaseManager, get_db
from src.infra.event_bus import DomainEvent, EventBus, EventTypes, get_event_bus
from src.infra.redis_client import RedisClient, get_redis

__all__ = [
    "DatabaseManager",
    "get_db",
    "RedisClient",
    "get_redis",
    "EventBus",
    "DomainEvent",
    "EventTypes",
    "get_event_bus",
]
