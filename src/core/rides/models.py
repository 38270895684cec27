# src/core/rides/models.py
"""
Модели поездок: сущность, DTO создания/редактирования/поиска и результаты.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from src.common.constants import PaymentType, RideStatus
from src.core.users.models import UserSummary


class Ride(BaseModel):
    """Поездка, предложенная водителем."""

    id: str = Field(..., description="UUID поездки")
    driver_id: str = Field(..., description="ID водителя")
    passenger_id: Optional[str] = Field(None, description="Пассажир (поле одиночного бронирования)")

    start_location: str
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    end_location: str
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None

    departure_time: datetime
    available_seats: int = Field(..., ge=0)
    vehicle_type: str = "Unknown"
    status: RideStatus = RideStatus.ACTIVE

    fare: Optional[Decimal] = Field(None, description="Стоимость, 2 знака после запятой")
    distance: Optional[float] = Field(None, description="Расстояние, км")
    duration: Optional[int] = Field(None, description="Время в пути, минуты")

    payment_type: PaymentType = PaymentType.BOTH
    selected_card_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    driver: Optional[UserSummary] = Field(None, description="Карточка водителя (в ответах API)")

    class Config:
        from_attributes = True

    @property
    def has_coordinates(self) -> bool:
        """Известны ли координаты начала и конца маршрута."""
        return None not in (self.start_lat, self.start_lng, self.end_lat, self.end_lng)

    @property
    def route_label(self) -> str:
        return f"{self.start_location} → {self.end_location}"


class RideCreateDTO(BaseModel):
    """Данные для создания поездки."""

    start_location: str = Field(..., min_length=1)
    end_location: str = Field(..., min_length=1)
    departure_time: datetime
    available_seats: int
    vehicle_type: Optional[str] = None
    payment_type: PaymentType = PaymentType.BOTH
    selected_card_id: Optional[str] = None


class RideUpdateDTO(BaseModel):
    """Изменения поездки. Пустые и отсутствующие поля не меняются."""

    start_location: Optional[str] = None
    end_location: Optional[str] = None
    departure_time: Optional[datetime] = None
    available_seats: Optional[int] = None
    vehicle_type: Optional[str] = None
    payment_type: Optional[PaymentType] = None
    selected_card_id: Optional[str] = None


class RideSearchDTO(BaseModel):
    """Критерии поиска поездок."""

    start_location: Optional[str] = None
    end_location: Optional[str] = None
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None

    departure_date: datetime = Field(..., description="Дата поездки (время отбрасывается)")
    date_range: Optional[int] = Field(None, description="Окно поиска ± дней")
    passengers: int = 1
    max_distance: Optional[float] = Field(None, description="Радиус близости, км")
    limit: Optional[int] = None
    offset: int = 0


class RideSearchResult(BaseModel):
    """Поездка в результатах поиска с расстояниями до точек запроса."""

    ride: Ride
    start_distance: float = 0.0
    end_distance: float = 0.0
    total_distance: float = 0.0


class RideSearchPage(BaseModel):
    """Страница результатов поиска."""

    success: bool = True
    rides: list[RideSearchResult] = Field(default_factory=list)
    total: int = Field(0, description="Количество поездок до фильтра по расстоянию")


class RideResult(BaseModel):
    """Результат операции над поездкой."""

    success: bool = True
    ride: Ride


class RideList(BaseModel):
    """Поездки пользователя."""

    success: bool = True
    rides: list[Ride] = Field(default_factory=list)
