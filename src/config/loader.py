# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "carpool_backend"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Адреса и порты сервисов."""
    RIDES_SERVICE_HOST: str = "rides_service"
    RIDES_SERVICE_PORT: int = 8085
    PAYMENTS_SERVICE_HOST: str = "payments_service"
    PAYMENTS_SERVICE_PORT: int = 8087


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/carpool.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class GoogleMapsSettings(BaseModel):
    """Настройки Google Maps API."""
    GOOGLE_MAPS_API_KEY: str = ""
    GEOCODING_LANGUAGE: str = "uk"
    GOOGLE_MAPS_TIMEOUT: float = 10.0

    @field_validator("GOOGLE_MAPS_API_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает API ключ из переменных окружения."""
        if not v:
            return os.getenv("GOOGLE_MAPS_API_KEY", "")
        return v


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "carpool"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "carpool"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RedisTTLSettings(BaseModel):
    """Настройки TTL ключей."""
    WEBHOOK_EVENT_TTL: int = 259200


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "carpool.events"
    RABBITMQ_PREFETCH_COUNT: int = 10

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class FareSettings(BaseModel):
    """Настройки тарифов."""
    RATE_PER_KM: float = 0.50
    RATE_PER_MINUTE: float = 0.10


class PaymentSettings(BaseModel):
    """Настройки платёжного шлюза и комиссии платформы."""
    PLATFORM_COMMISSION_RATE: float = Field(default=0.15, ge=0.0, le=1.0)
    CURRENCY: str = "uah"
    GATEWAY_API_KEY: str = ""
    GATEWAY_BASE_URL: str = "https://api.stripe.com/v1"
    GATEWAY_TIMEOUT: float = 15.0
    WEBHOOK_SECRET: str = ""
    WEBHOOK_TOLERANCE_SECONDS: int = 300


class SearchSettings(BaseModel):
    """Значения поиска поездок по умолчанию."""
    DEFAULT_DATE_RANGE_DAYS: int = 2
    DEFAULT_MAX_DISTANCE_KM: float = 10.0
    DEFAULT_LIMIT: int = 10
    MAX_LIMIT: int = 100


class RideSettings(BaseModel):
    """Правила жизненного цикла поездки."""
    EDIT_LOCK_HOURS: int = 24
    DEFAULT_VEHICLE_TYPE: str = "Unknown"


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    google_maps: GoogleMapsSettings = Field(default_factory=GoogleMapsSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    redis_ttl: RedisTTLSettings = Field(default_factory=RedisTTLSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    fares: FareSettings = Field(default_factory=FareSettings)
    payments: PaymentSettings = Field(default_factory=PaymentSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    rides: RideSettings = Field(default_factory=RideSettings)

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты и адреса инфраструктуры переопределяются из окружения.
        """
        data = load_config_json()

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "carpool_backend"),
                VERSION=data.get("VERSION", "0.1.0"),
                DEBUG=data.get("DEBUG", False),
                LOG_LEVEL=data.get("LOG_LEVEL", "INFO"),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                RIDES_SERVICE_HOST=os.getenv("RIDES_SERVICE_HOST", data.get("RIDES_SERVICE_HOST", "rides_service")),
                RIDES_SERVICE_PORT=data.get("RIDES_SERVICE_PORT", 8085),
                PAYMENTS_SERVICE_HOST=os.getenv("PAYMENTS_SERVICE_HOST", data.get("PAYMENTS_SERVICE_HOST", "payments_service")),
                PAYMENTS_SERVICE_PORT=data.get("PAYMENTS_SERVICE_PORT", 8087),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=data.get("LOG_LEVEL", "INFO"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/carpool.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            google_maps=GoogleMapsSettings(
                GOOGLE_MAPS_API_KEY=os.getenv("GOOGLE_MAPS_API_KEY", data.get("GOOGLE_MAPS_API_KEY", "")),
                GEOCODING_LANGUAGE=data.get("GEOCODING_LANGUAGE", "uk"),
                GOOGLE_MAPS_TIMEOUT=data.get("GOOGLE_MAPS_TIMEOUT", 10.0),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "carpool")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 5),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 20),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 60),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", data.get("REDIS_PORT", 6379))),
                REDIS_DB=data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", data.get("REDIS_PASSWORD", "")),
                REDIS_NAMESPACE=data.get("REDIS_NAMESPACE", "carpool"),
                REDIS_MAX_CONNECTIONS=data.get("REDIS_MAX_CONNECTIONS", 50),
            ),
            redis_ttl=RedisTTLSettings(
                WEBHOOK_EVENT_TTL=data.get("WEBHOOK_EVENT_TTL", 259200),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=os.getenv("RABBITMQ_PASSWORD", data.get("RABBITMQ_PASSWORD", "guest")),
                RABBITMQ_VHOST=data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=data.get("RABBITMQ_EXCHANGE", "carpool.events"),
                RABBITMQ_PREFETCH_COUNT=data.get("RABBITMQ_PREFETCH_COUNT", 10),
            ),
            fares=FareSettings(
                RATE_PER_KM=data.get("RATE_PER_KM", 0.50),
                RATE_PER_MINUTE=data.get("RATE_PER_MINUTE", 0.10),
            ),
            payments=PaymentSettings(
                PLATFORM_COMMISSION_RATE=float(
                    os.getenv("PLATFORM_COMMISSION_RATE", data.get("PLATFORM_COMMISSION_RATE", 0.15))
                ),
                CURRENCY=data.get("PAYMENT_CURRENCY", "uah"),
                GATEWAY_API_KEY=os.getenv("GATEWAY_API_KEY", data.get("GATEWAY_API_KEY", "")),
                GATEWAY_BASE_URL=data.get("GATEWAY_BASE_URL", "https://api.stripe.com/v1"),
                GATEWAY_TIMEOUT=data.get("GATEWAY_TIMEOUT", 15.0),
                WEBHOOK_SECRET=os.getenv("WEBHOOK_SECRET", data.get("WEBHOOK_SECRET", "")),
                WEBHOOK_TOLERANCE_SECONDS=data.get("WEBHOOK_TOLERANCE_SECONDS", 300),
            ),
            search=SearchSettings(
                DEFAULT_DATE_RANGE_DAYS=data.get("DEFAULT_DATE_RANGE_DAYS", 2),
                DEFAULT_MAX_DISTANCE_KM=data.get("DEFAULT_MAX_DISTANCE_KM", 10.0),
                DEFAULT_LIMIT=data.get("DEFAULT_LIMIT", 10),
                MAX_LIMIT=data.get("MAX_LIMIT", 100),
            ),
            rides=RideSettings(
                EDIT_LOCK_HOURS=data.get("EDIT_LOCK_HOURS", 24),
                DEFAULT_VEHICLE_TYPE=data.get("DEFAULT_VEHICLE_TYPE", "Unknown"),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
