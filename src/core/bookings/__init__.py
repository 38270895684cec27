# src/core/bookings/__init__.py
"""
Домен бронирования: заявки пассажиров и распределение мест.
"""

from src.core.bookings.models import BookingRequest, BookingRequestList, BookingRequestView, BookingResult
from src.core.bookings.repository import BookingRepository
from src.core.bookings.service import BookingService

__all__ = [
    "BookingRequest",
    "BookingRequestView",
    "BookingResult",
    "BookingRequestList",
    "BookingRepository",
    "BookingService",
]
