# src/core/users/__init__.py
"""
Справочник пользователей: профили, идентификаторы платёжного шлюза, карты.
"""

from src.core.users.models import SavedPaymentMethod, UserProfile, UserSummary
from src.core.users.repository import UserRepository

__all__ = [
    "UserProfile",
    "UserSummary",
    "SavedPaymentMethod",
    "UserRepository",
]
