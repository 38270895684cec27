# src/core/users/models.py
"""
Модели справочника пользователей в объёме, нужном ядру.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    """Пользователь платформы."""

    id: str = Field(..., description="ID пользователя")
    email: str = Field(..., description="Email")
    name: str = Field(..., description="Имя")
    avatar: Optional[str] = Field(None, description="URL аватара")
    rating: Optional[float] = Field(None, description="Рейтинг")
    is_active: bool = Field(True, description="Активен ли аккаунт")

    gateway_customer_id: Optional[str] = Field(None, description="ID покупателя в платёжном шлюзе")
    gateway_account_id: Optional[str] = Field(None, description="ID аккаунта выплат водителя")

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    """Краткая карточка пользователя в ответах API."""

    id: str
    name: str
    avatar: Optional[str] = None
    rating: float = 0.0

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "UserSummary":
        return cls(
            id=profile.id,
            name=profile.name,
            avatar=profile.avatar,
            rating=profile.rating if profile.rating is not None else 0.0,
        )


class SavedPaymentMethod(BaseModel):
    """Сохранённый способ оплаты (карта) пользователя."""

    id: str
    user_id: str
    gateway_payment_method_id: str
    type: str
    last4: Optional[str] = None
    brand: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        from_attributes = True
