# src/core/payments/__init__.py
"""
Домен расчётов: платежи за поездки, выплаты водителям, платёжный шлюз.
"""

from src.core.payments.gateway import GatewayEvent, PaymentGateway
from src.core.payments.models import Payment, Payout, split_amount
from src.core.payments.repository import PaymentRepository, PayoutRepository
from src.core.payments.service import PaymentService

__all__ = [
    "Payment",
    "Payout",
    "split_amount",
    "GatewayEvent",
    "PaymentGateway",
    "PaymentRepository",
    "PayoutRepository",
    "PaymentService",
]
