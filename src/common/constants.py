# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RideStatus(str, Enum):
    """Статусы поездки."""
    ACTIVE = "active"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, Enum):
    """Статусы заявки на бронирование."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CONFIRMED = "confirmed"


class PaymentType(str, Enum):
    """Способы оплаты, которые принимает водитель."""
    CARD = "card"
    CASH = "cash"
    BOTH = "both"


class PaymentMethod(str, Enum):
    """Способы оплаты пассажиром."""
    CASH = "cash"
    GOOGLE_PAY = "google_pay"
    APPLE_PAY = "apple_pay"

    @property
    def is_digital(self) -> bool:
        """Оплата через платёжный шлюз."""
        return self is not PaymentMethod.CASH


class PaymentStatus(str, Enum):
    """Статусы платежа (совпадают со статусами шлюза)."""
    PENDING = "pending"
    PROCESSING = "processing"
    REQUIRES_ACTION = "requires_action"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class PayoutStatus(str, Enum):
    """Статусы выплаты (совпадают со статусами шлюза)."""
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"


# Платёж в этих статусах не считается активным
INACTIVE_PAYMENT_STATUSES: tuple[str, ...] = (
    PaymentStatus.FAILED.value,
    PaymentStatus.CANCELED.value,
    PaymentStatus.REFUNDED.value,
)

# Выплаты в этих статусах не уменьшают баланс водителя
VOID_PAYOUT_STATUSES: tuple[str, ...] = (
    PayoutStatus.FAILED.value,
    PayoutStatus.CANCELED.value,
)
