# src/core/bookings/models.py
"""
Модели заявок на бронирование.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.common.constants import BookingStatus
from src.core.users.models import UserSummary


class BookingRequest(BaseModel):
    """Заявка пассажира на места в поездке."""

    id: str
    ride_id: str
    passenger_id: str
    passenger_count: int = Field(1, ge=1)
    status: BookingStatus = BookingStatus.PENDING
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingRequestView(BaseModel):
    """Заявка в ответах API с карточками участников."""

    id: str
    ride_id: str
    passenger_id: str
    passenger_count: int
    status: BookingStatus
    created_at: Optional[str] = Field(None, description="ISO-8601")
    passenger: Optional[UserSummary] = None
    driver: Optional[UserSummary] = None

    @classmethod
    def build(
        cls,
        request: BookingRequest,
        passenger: UserSummary | None = None,
        driver: UserSummary | None = None,
    ) -> "BookingRequestView":
        return cls(
            id=request.id,
            ride_id=request.ride_id,
            passenger_id=request.passenger_id,
            passenger_count=request.passenger_count,
            status=request.status,
            created_at=request.created_at.isoformat() if request.created_at else None,
            passenger=passenger,
            driver=driver,
        )


class BookingResult(BaseModel):
    """Результат операции над заявкой."""

    success: bool = True
    booking: BookingRequestView
    auto_rejected: list[str] = Field(default_factory=list, description="ID автоматически отклонённых заявок")


class BookingRequestList(BaseModel):
    """Заявки пользователя: входящие на его поездки и его собственные."""

    success: bool = True
    incoming: list[BookingRequestView] = Field(default_factory=list)
    outgoing: list[BookingRequestView] = Field(default_factory=list)
