# src/core/payments/models.py
"""
Модели платежей и выплат.
Суммы хранятся в минимальных единицах валюты (копейки, центы).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel, Field

from src.common.constants import PaymentMethod


class Payment(BaseModel):
    """Платёж пассажира за поездку."""

    id: str
    ride_id: str
    user_id: str
    gateway_payment_id: Optional[str] = None
    amount: int = Field(..., ge=0, description="Сумма, минимальные единицы")
    commission: int = Field(..., ge=0)
    driver_amount: int = Field(..., ge=0)
    currency: str
    payment_method: PaymentMethod
    status: str
    is_paid: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Payout(BaseModel):
    """Выплата заработка водителю."""

    id: str
    user_id: str
    gateway_payout_id: str
    amount: int = Field(..., gt=0)
    currency: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentHistoryItem(Payment):
    """Платёж в истории с маршрутом поездки."""

    start_location: Optional[str] = None
    end_location: Optional[str] = None


# =============================================================================
# ЗАПРОСЫ
# =============================================================================

class PaymentCreateDTO(BaseModel):
    """Запрос на оплату поездки."""

    ride_id: str
    method: str = Field(..., description="cash | google_pay | apple_pay")
    gateway_payment_method_id: Optional[str] = Field(None, description="Токен способа оплаты шлюза")


class PayoutRequestDTO(BaseModel):
    """Запрос водителя на выплату (сумма в основных единицах)."""

    amount: Decimal
    currency: Optional[str] = None


class PaymentMethodCreateDTO(BaseModel):
    """Сохранение способа оплаты."""

    gateway_payment_method_id: str = Field(..., min_length=1)


# =============================================================================
# РЕЗУЛЬТАТЫ
# =============================================================================

class PaymentResult(BaseModel):
    success: bool = True
    payment: Payment


class PayoutResult(BaseModel):
    success: bool = True
    payout: Payout
    balance: int = Field(..., description="Остаток после выплаты, минимальные единицы")


class PaymentHistory(BaseModel):
    success: bool = True
    payments: list[PaymentHistoryItem] = Field(default_factory=list)
    total: int = 0


class PayoutHistory(BaseModel):
    success: bool = True
    payouts: list[Payout] = Field(default_factory=list)
    total: int = 0


class GatewayAccountResult(BaseModel):
    """ID покупателя или аккаунта выплат в шлюзе."""

    success: bool = True
    gateway_id: str
    created: bool = Field(..., description="Создан этим вызовом")


class WebhookResult(BaseModel):
    success: bool = True
    event_id: str
    event_type: str
    handled: bool = Field(..., description="False для неизвестных типов и повторов")


# =============================================================================
# РАСЧЁТ СУММ
# =============================================================================

@dataclass(frozen=True)
class AmountSplit:
    """Разделение суммы платежа между платформой и водителем."""
    amount: int
    commission: int
    driver_amount: int


def to_minor_units(value: Decimal) -> int:
    """Переводит сумму в основных единицах в минимальные (×100, округление half-up)."""
    return int((Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_amount(fare: Decimal, commission_rate: float) -> AmountSplit:
    """
    Считает сумму, комиссию и долю водителя.

    Example:
        split_amount(Decimal("59.00"), 0.15) -> AmountSplit(5900, 885, 5015)
    """
    amount = to_minor_units(fare)
    commission = int(
        (Decimal(amount) * Decimal(str(commission_rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    return AmountSplit(amount=amount, commission=commission, driver_amount=amount - commission)
